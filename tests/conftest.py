"""Shared fixtures: fake classifiers, manifests and a mocked certificate service."""

from collections.abc import Callable, Iterator
from pathlib import Path
from types import SimpleNamespace

import httpx
import numpy as np
import pytest

from src.opalforge.context import AppContext
from src.opalforge.main import app
from src.opalforge.services.certificate_client import CertificateClient
from src.opalforge.services.manifest import LabelManifest
from src.opalforge.services.model_service import ClassifierModel

SERVICE_URL = "https://certs.test"


class Dense:
    def get_config(self) -> dict:
        return {"activation": "softmax"}


class FakeKerasBackend:
    """Stands in for a ``tf.keras.Model``: callable, with inputs/outputs/layers."""

    def __init__(self, output: list[float]) -> None:
        self.output = np.asarray(output, dtype=np.float32).reshape(1, -1)
        self.inputs = [SimpleNamespace(shape=(None, 224, 224, 3))]
        self.outputs = [SimpleNamespace(shape=(None, self.output.shape[1]))]
        self.layers = [object(), Dense()]
        self.batches: list[np.ndarray] = []

    def __call__(self, batch: np.ndarray, training: bool = False) -> np.ndarray:
        self.batches.append(batch)
        return self.output


def make_model(output: list[float]) -> ClassifierModel:
    return ClassifierModel(FakeKerasBackend(output), "keras", Path("fake.keras"))


class RecordingService:
    """``httpx.MockTransport`` handler that records every request.

    A route mapped to an ``httpx.HTTPError`` raises it instead of answering.
    """

    def __init__(self, routes: dict[tuple[str, str], httpx.Response | httpx.HTTPError]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get((request.method, request.url.path))
        if response is None:
            return httpx.Response(404, json={"error": "not found"})
        if isinstance(response, httpx.HTTPError):
            raise response
        return response

    @property
    def calls(self) -> list[tuple[str, str]]:
        return [(r.method, r.url.path) for r in self.requests]


@pytest.fixture
def manifest() -> LabelManifest:
    return LabelManifest(labels=["Authentic", "Replica"]).resolve_label_order()


@pytest.fixture
def app_context(manifest: LabelManifest) -> Iterator[AppContext]:
    """Install a fresh context with an authentic-leaning model on the app."""
    previous = app.state.context
    context = AppContext(model=make_model([0.9, 0.1]), manifest=manifest)
    app.state.context = context
    yield context
    app.state.context = previous


@pytest.fixture
def service_factory() -> Callable[..., tuple[CertificateClient, RecordingService]]:
    def _factory(routes: dict[tuple[str, str], httpx.Response]) -> tuple[CertificateClient, RecordingService]:
        service = RecordingService(routes)
        client = CertificateClient(
            SERVICE_URL,
            transport=httpx.MockTransport(service),
            public_base_url="https://opalforge.test",
        )
        return client, service

    return _factory


@pytest.fixture
def model_factory() -> Callable[[list[float]], ClassifierModel]:
    return make_model

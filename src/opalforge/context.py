"""Application context – the loaded classifier and recent predictions.

One ``AppContext`` lives on ``app.state.context`` and is handed to each
request handler through the ``get_context`` dependency.
"""

from __future__ import annotations

import logging
import secrets
from collections import OrderedDict
from dataclasses import dataclass, field

from fastapi import Request

from src.opalforge.config import Settings
from src.opalforge.services.confidence import PredictionResult
from src.opalforge.services.decision import DecisionPolicy, policy_from_settings
from src.opalforge.services.manifest import LabelManifest, load_label_manifest
from src.opalforge.services.model_service import ClassifierModel, load_classifier, release_backend

logger = logging.getLogger(__name__)

# Oldest prediction tokens are evicted past this count.
MAX_STORED_PREDICTIONS = 256


@dataclass
class AppContext:
    model: ClassifierModel | None = None
    manifest: LabelManifest | None = None
    load_error: str | None = None
    predictions: OrderedDict[str, PredictionResult] = field(default_factory=OrderedDict)
    policy: DecisionPolicy | None = None

    def __post_init__(self) -> None:
        if self.policy is None:
            self.policy = policy_from_settings()

    @property
    def model_loaded(self) -> bool:
        return self.model is not None and self.manifest is not None

    def record_prediction(self, result: PredictionResult) -> str:
        """Store ``result`` and return the token a client mints with."""
        prediction_id = secrets.token_urlsafe(16)
        self.predictions[prediction_id] = result
        while len(self.predictions) > MAX_STORED_PREDICTIONS:
            self.predictions.popitem(last=False)
        return prediction_id

    def prediction_confidence(self, prediction_id: str) -> float | None:
        result = self.predictions.get(prediction_id)
        return None if result is None else result.confidence

    def load(self, settings: Settings) -> None:
        """Load manifest and classifier; failures are recorded, not raised."""
        try:
            manifest = load_label_manifest(
                settings.manifest_path,
                settings.authentic_label,
                settings.replica_label,
            )
            model = load_classifier(settings.model_path, settings.tflite_path)
        except (OSError, RuntimeError, ValueError) as exc:
            logger.error("Model loading error: %s", exc, exc_info=True)
            self.load_error = str(exc)
            return

        self.manifest = manifest
        self.model = model
        self.load_error = None

    def clear(self) -> None:
        self.model = None
        self.manifest = None
        self.predictions.clear()
        release_backend()
        logger.info("Model released from context.")


def get_context(request: Request) -> AppContext:
    return request.app.state.context

"""Tests for image preprocessing, the TFLite path and model diagnostics."""

from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from src.opalforge.services.diagnostic_service import classify_output, run_diagnostics
from src.opalforge.services.manifest import LabelManifest
from src.opalforge.services.model_service import (
    ClassifierModel,
    ImageDecodeError,
    ModelNotLoadedError,
    decode_image,
    load_classifier,
    preprocess_image,
    run_inference,
)


class FakeQuantizedInterpreter:
    """Minimal uint8 TFLite interpreter stand-in."""

    def __init__(self, raw_output: list[int]) -> None:
        self.raw_output = np.asarray([raw_output], dtype=np.uint8)
        self.inputs: list[np.ndarray] = []

    def get_input_details(self) -> list[dict]:
        return [{"index": 0, "shape": np.array([1, 224, 224, 3]), "dtype": np.uint8,
                 "quantization": (1 / 255, 0)}]

    def get_output_details(self) -> list[dict]:
        return [{"index": 1, "shape": np.array([1, 2]), "dtype": np.uint8,
                 "quantization": (1 / 256, 0)}]

    def set_tensor(self, index: int, value: np.ndarray) -> None:
        self.inputs.append(value)

    def invoke(self) -> None:
        pass

    def get_tensor(self, index: int) -> np.ndarray:
        return self.raw_output


# ──────────────────────────────────────────────
# Preprocessing
# ──────────────────────────────────────────────
def test_preprocess_strips_alpha_and_normalises() -> None:
    image = Image.new("RGBA", (10, 20), color=(255, 0, 0, 0))
    batch = preprocess_image(image, 32)
    assert batch.shape == (1, 32, 32, 3)
    assert batch.dtype == np.float32
    assert batch[0, 0, 0, 0] == pytest.approx(1.0)
    assert batch[0, 0, 0, 1] == pytest.approx(0.0)


def test_decode_image_rejects_garbage() -> None:
    with pytest.raises(ImageDecodeError):
        decode_image(b"definitely not a png")


# ──────────────────────────────────────────────
# Inference
# ──────────────────────────────────────────────
def test_run_inference_requires_model(manifest: LabelManifest) -> None:
    with pytest.raises(ModelNotLoadedError):
        run_inference(None, manifest, Image.new("RGB", (8, 8)))


def test_run_inference_respects_manifest_order(model_factory) -> None:
    manifest = LabelManifest(labels=["Replica", "Authentic"]).resolve_label_order()
    result = run_inference(model_factory([0.25, 0.75]), manifest, Image.new("RGB", (8, 8)))
    assert result.confidence == pytest.approx(75.0)


def test_tflite_quantised_input_and_output(manifest: LabelManifest) -> None:
    interpreter = FakeQuantizedInterpreter([230, 26])
    model = ClassifierModel(interpreter, "tflite", Path("fake.tflite"))

    result = run_inference(model, manifest, Image.new("RGB", (8, 8), color="white"))

    assert interpreter.inputs[-1].dtype == np.uint8
    assert interpreter.inputs[-1].max() >= 254
    assert result.confidence == pytest.approx(230 / 256 * 100, abs=0.01)
    assert model.input_shape == (1, 224, 224, 3)
    assert model.output_shape == (1, 2)


def test_load_classifier_without_files(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_classifier(tmp_path / "model.keras", tmp_path / "model.tflite")


# ──────────────────────────────────────────────
# Diagnostics
# ──────────────────────────────────────────────
@pytest.mark.parametrize(
    ("values", "kind"),
    [([0.7], "sigmoid"), ([0.3, 0.7], "probabilities"), ([2.5, -1.0], "logits")],
)
def test_classify_output(values: list[float], kind: str) -> None:
    assert classify_output(np.array(values)) == kind


def test_run_diagnostics_report(model_factory, manifest: LabelManifest) -> None:
    report = run_diagnostics(model_factory([3.0, 1.0]), manifest, seed=0)

    assert report["model_type"] == "keras"
    assert report["input_shape"] == [None, 224, 224, 3]
    assert report["total_layers"] == 2
    assert report["last_layer_activation"] == "softmax"
    assert report["output_kind"] == "logits"
    assert report["synthetic_predictions"]["black"] == [3.0, 1.0]
    assert any("softmax" in line for line in report["recommendations"])

"""Service layer – classifier loading, image decoding, and inference.

Supports both **full TensorFlow** (Keras models, development) and
**tflite-runtime** (production).  When only ``tflite-runtime`` is installed
the ``.keras`` path is skipped and the ``.tflite`` file is used instead.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Any

import httpx
import numpy as np
from PIL import Image, UnidentifiedImageError

from src.opalforge.services.confidence import PredictionResult, interpret_output
from src.opalforge.services.manifest import LabelManifest

logger = logging.getLogger(__name__)

# ── Optional: full TensorFlow (only in dev) ──
try:
    import tensorflow as tf  # type: ignore[import-untyped]

    _HAS_TF = True
except ImportError:
    _HAS_TF = False


class ModelNotLoadedError(RuntimeError):
    """Inference was requested before a classifier was loaded."""


class ImageDecodeError(ValueError):
    """The supplied bytes are not a readable image."""


# ──────────────────────────────────────────────
# Classifier wrapper
# ──────────────────────────────────────────────
class ClassifierModel:
    """A loaded Keras model or TFLite interpreter behind one ``predict`` call."""

    def __init__(self, backend: Any, kind: str, source: Path) -> None:
        self.backend = backend
        self.kind = kind  # 'keras' | 'tflite'
        self.source = Path(source)

    @property
    def input_shape(self) -> tuple:
        if self.kind == "keras":
            return tuple(self.backend.inputs[0].shape)
        return tuple(int(d) for d in self.backend.get_input_details()[0]["shape"])

    @property
    def output_shape(self) -> tuple:
        if self.kind == "keras":
            return tuple(self.backend.outputs[0].shape)
        return tuple(int(d) for d in self.backend.get_output_details()[0]["shape"])

    def layer_summary(self) -> dict[str, Any]:
        """Layer count and last-layer details (Keras only)."""
        if self.kind != "keras":
            return {}
        last = self.backend.layers[-1]
        config = last.get_config()
        return {
            "total_layers": len(self.backend.layers),
            "last_layer_type": type(last).__name__,
            "last_layer_activation": config.get("activation"),
        }

    def predict(self, batch: np.ndarray) -> np.ndarray:
        """Run a ``(1, H, W, 3)`` batch and return the first output row."""
        if self.kind == "keras":
            # Eager call; the returned tensor is dropped once copied to numpy.
            outputs = self.backend(batch, training=False)
            return np.array(outputs)[0]

        if self.kind == "tflite":
            input_info = self.backend.get_input_details()[0]
            output_info = self.backend.get_output_details()[0]

            # ---------- INPUT ----------
            if input_info["dtype"] == np.uint8:
                scale, zero_point = input_info["quantization"]
                batch = (batch / scale + zero_point).astype(np.uint8)
            else:
                batch = batch.astype(np.float32)

            self.backend.set_tensor(input_info["index"], batch)
            self.backend.invoke()

            # ---------- OUTPUT ----------
            output_data = self.backend.get_tensor(output_info["index"])[0]
            if output_info["dtype"] == np.uint8:
                scale, zero_point = output_info["quantization"]
                output_data = (output_data.astype(np.float32) - zero_point) * scale
            return output_data

        raise ValueError(f"Unknown model type: {self.kind}")


# ──────────────────────────────────────────────
# Model life-cycle helpers
# ──────────────────────────────────────────────
def load_keras_model(path: Path) -> ClassifierModel:
    if not _HAS_TF:
        raise RuntimeError("Full TensorFlow is required for Keras models.")
    logger.info("Loading Keras model from %s …", path)
    model = tf.keras.models.load_model(str(path))
    logger.info("✅ Keras model loaded successfully.")
    return ClassifierModel(model, "keras", path)


def load_tflite_model(path: Path) -> ClassifierModel:
    from src.opalforge.compat import Interpreter

    logger.info("Loading TFLite model from %s …", path)
    interpreter = Interpreter(model_path=str(path))
    interpreter.allocate_tensors()
    logger.info("✅ TFLite model loaded successfully.")
    return ClassifierModel(interpreter, "tflite", path)


def load_classifier(keras_path: Path | None, tflite_path: Path | None) -> ClassifierModel:
    """Load the Keras model when TensorFlow is available, else the TFLite file."""
    if _HAS_TF and keras_path and Path(keras_path).exists():
        return load_keras_model(Path(keras_path))
    if tflite_path and Path(tflite_path).exists():
        return load_tflite_model(Path(tflite_path))

    raise FileNotFoundError(
        f"No model file found. Expected: {keras_path} or {tflite_path}",
    )


def release_backend() -> None:
    """Drop TensorFlow's global graph state (called at shutdown)."""
    if _HAS_TF:
        tf.keras.backend.clear_session()


# ──────────────────────────────────────────────
# Image helpers
# ──────────────────────────────────────────────
def decode_image(content: bytes) -> Image.Image:
    """Decode uploaded bytes into a PIL Image."""
    try:
        image = Image.open(io.BytesIO(content))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise ImageDecodeError(f"Could not decode image: {exc}") from exc
    return image


async def fetch_image(image_url: str, timeout: float = 30.0) -> Image.Image:
    """Download an image from *image_url* and return a PIL Image."""
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(str(image_url))
        response.raise_for_status()
    return decode_image(response.content)


def preprocess_image(image: Image.Image, size: int) -> np.ndarray:
    """Strip alpha, resize to ``size × size`` and scale to [0, 1] with a batch axis."""
    image = image.convert("RGB").resize((size, size), Image.BILINEAR)
    arr = np.asarray(image, dtype=np.float32) / 255.0
    return np.expand_dims(arr, axis=0)  # (1, H, W, 3)


# ──────────────────────────────────────────────
# Prediction
# ──────────────────────────────────────────────
def run_inference(
    model: ClassifierModel | None,
    manifest: LabelManifest | None,
    image: Image.Image,
) -> PredictionResult:
    if model is None or manifest is None:
        raise ModelNotLoadedError("Model not loaded yet.")

    batch = preprocess_image(image, manifest.image_size)
    output = model.predict(batch)
    result = interpret_output(output, manifest.authentic_index, manifest.num_labels)

    logger.debug(
        "Raw output %s → authentic=%.4f replica=%.4f (softmax=%s)",
        result.raw_output, result.authentic, result.replica, result.softmax_applied,
    )
    return result

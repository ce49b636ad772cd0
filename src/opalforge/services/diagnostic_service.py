"""Service layer – model diagnostics.

Runs the classifier on synthetic inputs (black, white, uniform noise) and
inspects the output to tell whether the model emits softmax probabilities,
a single sigmoid score, or raw logits.  Useful when confidence scores look
inverted or saturated.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np

from src.opalforge.services.manifest import LabelManifest
from src.opalforge.services.model_service import ClassifierModel

logger = logging.getLogger(__name__)

PROBABILITY_TOLERANCE = 0.01


def classify_output(values: np.ndarray) -> str:
    """Return ``'sigmoid'``, ``'probabilities'`` or ``'logits'``."""
    values = np.asarray(values, dtype=np.float64).reshape(-1)
    if values.size == 1:
        return "sigmoid"
    if abs(values.sum() - 1.0) < PROBABILITY_TOLERANCE:
        return "probabilities"
    return "logits"


def synthetic_inputs(size: int, seed: int | None = None) -> dict[str, np.ndarray]:
    rng = np.random.default_rng(seed)
    shape = (1, size, size, 3)
    return {
        "black": np.zeros(shape, dtype=np.float32),
        "white": np.ones(shape, dtype=np.float32),
        "noise": rng.uniform(0.0, 1.0, size=shape).astype(np.float32),
    }


def run_diagnostics(
    model: ClassifierModel,
    manifest: LabelManifest,
    seed: int | None = None,
) -> dict[str, Any]:
    """Collect architecture info, synthetic predictions and recommendations."""
    predictions = {
        name: [float(v) for v in np.asarray(model.predict(batch)).reshape(-1)]
        for name, batch in synthetic_inputs(manifest.image_size, seed).items()
    }

    noise_output = np.asarray(predictions["noise"])
    output_kind = classify_output(noise_output)

    recommendations = [
        "Check the label order used in training (was 'authentic' or 'replica' first?) "
        "against the label manifest.",
        "Check the final activation function (softmax, sigmoid, or none).",
    ]
    if output_kind == "logits":
        recommendations.append("Outputs do not sum to 1; softmax normalisation is applied at inference.")
    if noise_output.size not in (1, 2):
        recommendations.append(
            f"Model emits {noise_output.size} outputs; only 1 (sigmoid) or 2 (softmax) are supported.",
        )

    report = {
        "model_type": model.kind,
        "source": str(model.source),
        "input_shape": [None if d is None else int(d) for d in model.input_shape],
        "output_shape": [None if d is None else int(d) for d in model.output_shape],
        **model.layer_summary(),
        "labels": list(manifest.labels),
        "authentic_index": manifest.authentic_index,
        "synthetic_predictions": predictions,
        "output_sum": float(noise_output.sum()),
        "output_kind": output_kind,
        "recommendations": recommendations,
    }
    logger.info("Model diagnostics: output_kind=%s predictions=%s", output_kind, predictions)
    return report

"""Service layer – turning raw classifier output into an authenticity confidence."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

# Two-class outputs further than this from summing to 1 are treated as logits.
SUM_TOLERANCE = 0.1


class InvalidModelOutputError(ValueError):
    """The classifier produced an output vector that cannot be interpreted."""


@dataclass(frozen=True)
class PredictionResult:
    """Probabilities for the authentic and replica classes, both in [0, 1]."""

    authentic: float
    replica: float
    raw_output: tuple[float, ...]
    softmax_applied: bool = False

    @property
    def confidence(self) -> float:
        """Authentic probability as a clamped percentage."""
        return clamp_percentage(self.authentic * 100.0)

    @property
    def replica_confidence(self) -> float:
        return clamp_percentage(self.replica * 100.0)


def clamp_percentage(value: float) -> float:
    return float(min(max(value, 0.0), 100.0))


def clamp_probability(value: float) -> float:
    return float(min(max(value, 0.0), 1.0))


def softmax(values: np.ndarray) -> np.ndarray:
    exp = np.exp(values - np.max(values))
    return exp / exp.sum()


def interpret_output(
    output: np.ndarray,
    authentic_index: int,
    num_labels: int,
) -> PredictionResult:
    """
    Map a raw output vector onto (authentic, replica) probabilities.

    * one element  → sigmoid score, read directly as P(authentic).
    * two elements → class probabilities in manifest order; softmax is
      applied first when they do not sum to ≈1.

    Both probabilities are clamped to [0, 1]; ``raw_output`` keeps the
    unclamped values.  Any other shape raises ``InvalidModelOutputError``.
    """
    values = np.asarray(output, dtype=np.float64).reshape(-1)

    if values.size == 0 or not np.all(np.isfinite(values)):
        raise InvalidModelOutputError(f"Model output is empty or non-finite: {values.tolist()}")

    raw = tuple(float(v) for v in values)

    if values.size == 1:
        score = clamp_probability(raw[0])
        return PredictionResult(authentic=score, replica=1.0 - score, raw_output=raw)

    if values.size == 2:
        if num_labels != 2:
            raise InvalidModelOutputError(
                f"Model emits 2 outputs but the label manifest declares {num_labels}.",
            )
        if authentic_index not in (0, 1):
            raise InvalidModelOutputError(f"Invalid authentic index: {authentic_index}")

        applied = abs(values.sum() - 1.0) > SUM_TOLERANCE
        probs = softmax(values) if applied else values
        return PredictionResult(
            authentic=clamp_probability(probs[authentic_index]),
            replica=clamp_probability(probs[1 - authentic_index]),
            raw_output=raw,
            softmax_applied=bool(applied),
        )

    raise InvalidModelOutputError(
        f"Expected 1 or 2 output values, got {values.size}.",
    )

"""Service layer – confidence bands and the minting gate."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from src.opalforge.config import settings


class Band(str, Enum):
    AUTHENTIC = "authentic"
    UNCERTAIN = "uncertain"
    REPLICA = "replica"


BAND_MESSAGES: dict[Band, str] = {
    Band.AUTHENTIC: "Authentic. You can mint a certificate for this item.",
    Band.UNCERTAIN: "Uncertain. Try another photo with better lighting.",
    Band.REPLICA: "Likely replica.",
}


@dataclass(frozen=True)
class DecisionPolicy:
    """
    Classify a confidence percentage into a display band.

    ``three_band`` (default): authentic ≥ ``authentic_threshold``,
    uncertain ≥ ``uncertain_threshold``, replica below.
    ``two_band``: authentic ≥ ``authentic_threshold``, replica below.

    Only the authentic band unlocks minting.
    """

    mode: str = "three_band"
    authentic_threshold: float = 85.0
    uncertain_threshold: float = 50.0

    def __post_init__(self) -> None:
        if self.mode not in ("three_band", "two_band"):
            raise ValueError(f"Unknown decision policy: {self.mode}")
        if self.mode == "three_band" and self.uncertain_threshold > self.authentic_threshold:
            raise ValueError("uncertain_threshold must not exceed authentic_threshold")

    def classify(self, confidence: float) -> Band:
        if confidence >= self.authentic_threshold:
            return Band.AUTHENTIC
        if self.mode == "three_band" and confidence >= self.uncertain_threshold:
            return Band.UNCERTAIN
        return Band.REPLICA

    def mint_enabled(self, confidence: float) -> bool:
        return self.classify(confidence) is Band.AUTHENTIC


def policy_from_settings() -> DecisionPolicy:
    return DecisionPolicy(
        mode=settings.decision_policy,
        authentic_threshold=settings.authentic_threshold,
        uncertain_threshold=settings.uncertain_threshold,
    )

"""Tests for the confidence bands."""

import pytest

from src.opalforge.services.decision import Band, DecisionPolicy


@pytest.mark.parametrize(
    ("confidence", "band"),
    [
        (100.0, Band.AUTHENTIC),
        (85.0, Band.AUTHENTIC),
        (84.99, Band.UNCERTAIN),
        (50.0, Band.UNCERTAIN),
        (49.99, Band.REPLICA),
        (0.0, Band.REPLICA),
    ],
)
def test_three_band_policy(confidence: float, band: Band) -> None:
    policy = DecisionPolicy()
    assert policy.classify(confidence) is band
    assert policy.mint_enabled(confidence) is (band is Band.AUTHENTIC)


def test_two_band_policy_has_no_uncertain_band() -> None:
    policy = DecisionPolicy(mode="two_band")
    assert policy.classify(85.0) is Band.AUTHENTIC
    assert policy.classify(70.0) is Band.REPLICA
    assert policy.mint_enabled(70.0) is False


def test_custom_thresholds() -> None:
    policy = DecisionPolicy(authentic_threshold=90.0, uncertain_threshold=60.0)
    assert policy.classify(88.0) is Band.UNCERTAIN
    assert policy.classify(59.0) is Band.REPLICA


def test_invalid_policy_rejected() -> None:
    with pytest.raises(ValueError):
        DecisionPolicy(mode="five_band")
    with pytest.raises(ValueError):
        DecisionPolicy(authentic_threshold=40.0, uncertain_threshold=50.0)

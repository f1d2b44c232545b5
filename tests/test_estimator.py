import pytest

from agentcontext.context.estimator import CharacterEstimator, estimate_tokens


def test_default_estimator_100_chars_is_25() -> None:
    """100 characters at 4 chars per unit cost exactly 25."""
    assert estimate_tokens("a" * 100) == 25


def test_estimator_rounds_up() -> None:
    assert estimate_tokens("abcde") == 2
    assert estimate_tokens("a") == 1


def test_empty_text_costs_nothing() -> None:
    assert estimate_tokens("") == 0


def test_custom_ratio() -> None:
    estimator = CharacterEstimator(chars_per_token=2)
    assert estimator("abcdef") == 3


def test_non_positive_ratio_rejected() -> None:
    with pytest.raises(ValueError):
        CharacterEstimator(chars_per_token=0)

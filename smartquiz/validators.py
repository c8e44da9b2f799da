"""Validation utilities for session configuration prior to scoring."""
from __future__ import annotations

import math
from typing import Mapping

from .domain import SessionConfig
from .errors import InvalidWeightConfig


WEIGHT_KEYS = ("recency", "difficulty", "performance", "mastery", "variety")


def _assert_finite(value: float, context: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidWeightConfig(f"{context} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise InvalidWeightConfig(f"{context} must be finite, got {value!r}")


def validate_weights(weights: Mapping[str, float]) -> None:
    """Validate a five-element priority weight vector."""

    missing = [key for key in WEIGHT_KEYS if key not in weights]
    if missing:
        raise InvalidWeightConfig(f"Missing weight(s): {', '.join(missing)}")
    unknown = sorted(set(weights) - set(WEIGHT_KEYS))
    if unknown:
        raise InvalidWeightConfig(f"Unknown weight(s): {', '.join(unknown)}")

    for key in WEIGHT_KEYS:
        value = weights[key]
        _assert_finite(value, f"Weight '{key}'")
        if value < 0:
            raise InvalidWeightConfig(f"Weight '{key}' must be non-negative, got {value}")
    if sum(weights[key] for key in WEIGHT_KEYS) <= 0:
        raise InvalidWeightConfig("At least one weight must be positive")


def validate_session_config(config: SessionConfig) -> None:
    """Reject a configuration before it reaches the scorer."""

    validate_weights(config.weights.as_dict())

    if isinstance(config.max_questions_per_session, bool) or not isinstance(
        config.max_questions_per_session, int
    ):
        raise InvalidWeightConfig("max_questions_per_session must be an integer")
    if config.max_questions_per_session < 1:
        raise InvalidWeightConfig("max_questions_per_session must be at least 1")

    _assert_finite(config.mastery_threshold, "mastery_threshold")
    if not 0.0 <= config.mastery_threshold <= 1.0:
        raise InvalidWeightConfig("mastery_threshold must lie within [0, 1]")

    _assert_finite(config.min_time_between_repeats, "min_time_between_repeats")
    if config.min_time_between_repeats < 0:
        raise InvalidWeightConfig("min_time_between_repeats must be non-negative")


__all__ = ["InvalidWeightConfig", "WEIGHT_KEYS", "validate_session_config", "validate_weights"]

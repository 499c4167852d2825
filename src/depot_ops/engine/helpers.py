"""Numeric helpers shared by the engines."""

from __future__ import annotations

import math


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round with ties away from zero for positives (2.5 → 3, 0.125 → 0.13).

    Python's ``round`` uses banker's rounding; decision thresholds here are
    defined with half-up rounding.
    """
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def safe_ratio(numerator: float, denominator: float) -> float:
    """``numerator / denominator``, or 0 when the denominator is 0."""
    return numerator / denominator if denominator else 0.0

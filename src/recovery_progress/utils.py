"""Shared numeric helpers."""

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    if value < 0:
        return -math.floor(-value + 0.5)
    return math.floor(value + 0.5)


def clamp_percentage(value: float) -> int:
    """Round half-up and clamp into [0, 100]."""
    return min(100, max(0, round_half_up(value)))

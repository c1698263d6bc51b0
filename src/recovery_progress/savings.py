"""Money not spent since the sobriety date."""

from __future__ import annotations

import math
from typing import Any

from .models import DEFAULT_DAILY_COST


def resolve_daily_cost(value: Any, default: float = DEFAULT_DAILY_COST) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    cost = float(value)
    if not math.isfinite(cost) or cost < 0:
        return default
    return cost


def money_saved(sobriety_days: int, daily_cost: Any) -> float:
    return round(max(0, sobriety_days) * resolve_daily_cost(daily_cost), 2)


def savings_projection(daily_cost: Any) -> dict[str, float]:
    cost = resolve_daily_cost(daily_cost)
    return {
        "week": round(cost * 7, 2),
        "month": round(cost * 30, 2),
        "year": round(cost * 365, 2),
    }

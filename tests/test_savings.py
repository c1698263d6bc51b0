import math

import pytest

from recovery_progress.savings import money_saved, resolve_daily_cost, savings_projection


def test_money_saved_multiplies_days_by_cost():
    assert money_saved(10, 15.5) == 155.0


def test_money_saved_without_sobriety_data():
    assert money_saved(0, 15.5) == 0.0


@pytest.mark.parametrize("value", ["abc", None, True, -3, math.nan, math.inf])
def test_unusable_cost_falls_back_to_default(value):
    assert resolve_daily_cost(value) == 20.0
    assert money_saved(10, value) == 200.0


def test_zero_cost_is_valid():
    assert resolve_daily_cost(0) == 0.0


def test_savings_projection():
    assert savings_projection(12.5) == {"week": 87.5, "month": 375.0, "year": 4562.5}

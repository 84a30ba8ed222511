from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from models import to_cents
from stats import aggregate, daily_totals, month_bounds, percentage_change


def exp(amount, category, day):
    return SimpleNamespace(amount_cents=to_cents(amount), category=category, date=date.fromisoformat(day))


def test_aggregate_scenario():
    stats = aggregate([
        exp(20, "Food", "2024-01-01"),
        exp(10, "Food", "2024-01-02"),
        exp(15, "Transport", "2024-01-02"),
    ])
    assert stats.to_dict() == {
        "total": 45.0,
        "categories": [
            {"category": "Food", "total": 30.0, "count": 2},
            {"category": "Transport", "total": 15.0, "count": 1},
        ],
        "average_daily": 22.5,
    }


def test_empty_input_is_all_zero():
    stats = aggregate([])
    assert stats.total == 0
    assert stats.categories == []
    assert stats.average_daily == 0
    assert stats.to_dict() == {"total": 0.0, "categories": [], "average_daily": 0.0}


def test_total_is_exact_to_the_cent():
    stats = aggregate([exp("10.10", "Food", "2024-01-01"), exp("5.05", "Food", "2024-01-03")])
    assert stats.total == Decimal("15.15")
    assert stats.to_dict()["total"] == 15.15

    drift = aggregate([exp("0.1", "A", "2024-01-01"), exp("0.2", "A", "2024-01-01")])
    assert drift.to_dict()["total"] == 0.3


def test_average_daily_is_mean_of_daily_totals():
    stats = aggregate([exp(10, "A", "2024-03-01"), exp(5, "B", "2024-03-01"), exp(30, "A", "2024-03-02")])
    assert stats.average_daily == Decimal("22.50")


def test_average_daily_rounds_to_cents():
    stats = aggregate([exp(10, "A", "2024-03-01"), exp(10, "A", "2024-03-02"), exp("0.01", "A", "2024-03-03")])
    # 20.01 / 3 = 6.67
    assert stats.average_daily == Decimal("6.67")


def test_category_ties_keep_first_seen_order():
    stats = aggregate([
        exp(5, "Bills", "2024-01-01"),
        exp(7, "Food", "2024-01-02"),
        exp(5, "Fun", "2024-01-02"),
        exp(2, "Bills", "2024-01-03"),
    ])
    # Bills=7, Food=7, Fun=5
    assert [c.category for c in stats.categories] == ["Bills", "Food", "Fun"]


def test_daily_totals():
    totals = daily_totals([exp(1, "A", "2024-01-02"), exp(2, "B", "2024-01-01"), exp(3, "A", "2024-01-02")])
    assert totals == {date(2024, 1, 2): 400, date(2024, 1, 1): 200}


@pytest.mark.parametrize("today, period, expected", [
    (date(2024, 3, 15), "current_month", (date(2024, 3, 1), date(2024, 3, 31))),
    (date(2024, 3, 15), "last_month", (date(2024, 2, 1), date(2024, 2, 29))),
    (date(2023, 3, 1), "last_month", (date(2023, 2, 1), date(2023, 2, 28))),
    (date(2024, 1, 31), "last_month", (date(2023, 12, 1), date(2023, 12, 31))),
    (date(2024, 4, 30), "current_month", (date(2024, 4, 1), date(2024, 4, 30))),
])
def test_month_bounds(today, period, expected):
    assert month_bounds(period, today) == expected


def test_month_bounds_rejects_unknown_period():
    with pytest.raises(ValueError):
        month_bounds("last_week", date(2024, 1, 1))


def test_percentage_change():
    assert percentage_change(Decimal("150"), Decimal("100")) == 50.0
    assert percentage_change(Decimal("50"), Decimal("100")) == -50.0
    assert percentage_change(Decimal("10"), 0) == 100.0
    assert percentage_change(0, 0) == 0.0

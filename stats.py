"""Spending statistics over a set of expenses.

All sums are done in integer minor units (``amount_cents``) so totals are
exact; amounts only become ``Decimal``/``float`` when they are serialized.
"""

import calendar
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Tuple

from models import from_cents

PERIODS = ("current_month", "last_month")


@dataclass
class CategoryTotal:
    category: str
    total_cents: int = 0
    count: int = 0


@dataclass
class Statistics:
    total_cents: int = 0
    categories: List[CategoryTotal] = field(default_factory=list)
    average_daily_cents: Decimal = Decimal(0)

    @property
    def total(self) -> Decimal:
        return from_cents(self.total_cents)

    @property
    def average_daily(self) -> Decimal:
        return (self.average_daily_cents / 100).quantize(Decimal("0.01"))

    def to_dict(self) -> dict:
        return {
            "total": float(self.total),
            "categories": [
                {"category": c.category, "total": float(from_cents(c.total_cents)), "count": c.count}
                for c in self.categories
            ],
            "average_daily": float(self.average_daily),
        }


def daily_totals(expenses: Iterable) -> dict:
    """Sum of amounts per calendar date, in cents, in first-seen date order."""
    totals = {}
    for e in expenses:
        totals[e.date] = totals.get(e.date, 0) + e.amount_cents
    return totals


def aggregate(expenses: Iterable) -> Statistics:
    expenses = list(expenses)

    by_category = {}
    total = 0
    for e in expenses:
        total += e.amount_cents
        item = by_category.setdefault(e.category, CategoryTotal(category=e.category))
        item.total_cents += e.amount_cents
        item.count += 1

    # sorted() is stable: equal totals keep first-encountered order
    categories = sorted(by_category.values(), key=lambda c: c.total_cents, reverse=True)

    per_day = daily_totals(expenses)
    if per_day:
        average = (Decimal(sum(per_day.values())) / len(per_day)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    else:
        average = Decimal(0)

    return Statistics(total_cents=total, categories=categories, average_daily_cents=average)


def month_bounds(period: str, today: Optional[date] = None) -> Tuple[date, date]:
    """First and last calendar day of the current or previous month."""
    if period not in PERIODS:
        raise ValueError(f"Unknown period: {period}")
    today = today or date.today()
    first = today.replace(day=1)
    if period == "last_month":
        first = (first - timedelta(days=1)).replace(day=1)
    last_day = calendar.monthrange(first.year, first.month)[1]
    return first, first.replace(day=last_day)


def percentage_change(current, previous) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return float((Decimal(current) - Decimal(previous)) / Decimal(previous) * 100)

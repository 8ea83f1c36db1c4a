"""Date-range reports folded from an in-memory transaction collection.

Everything here is pure: callers pass whatever transactions they already hold
(ORM rows or ``TransactionOut`` records from the client cache) and get derived
views back without touching storage. Amounts are accumulated as full-precision
``Decimal`` and only rounded when a report is serialized.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from models import TransactionType
from periods import Period

CENT = Decimal("0.01")
FALLBACK_CATEGORY_COLOR = "#8884d8"
UNCATEGORIZED = {
    TransactionType.income: ("Uncategorized Income", "#10b981"),
    TransactionType.expense: ("Uncategorized Expense", "#ef4444"),
}


def money(value: Decimal) -> float:
    return float(value.quantize(CENT, rounding=ROUND_HALF_UP))


def month_label(year: int, month: int) -> str:
    return date(year, month, 1).strftime("%b %Y")


@dataclass
class CategoryTotal:
    name: str
    amount: Decimal
    color: str

    def to_dict(self) -> dict[str, object]:
        return {"name": self.name, "amount": money(self.amount), "color": self.color}


@dataclass
class MonthTotal:
    year: int
    month: int
    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")

    @property
    def label(self) -> str:
        return month_label(self.year, self.month)

    @property
    def profit(self) -> Decimal:
        return self.income - self.expenses

    def to_dict(self) -> dict[str, object]:
        return {
            "month": self.label,
            "income": money(self.income),
            "expenses": money(self.expenses),
            "profit": money(self.profit),
        }


@dataclass
class Report:
    period: Period
    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    income_by_category: list[CategoryTotal] = field(default_factory=list)
    expenses_by_category: list[CategoryTotal] = field(default_factory=list)
    monthly_trend: list[MonthTotal] = field(default_factory=list)

    @property
    def net_balance(self) -> Decimal:
        return self.total_income - self.total_expenses

    def to_dict(self) -> dict[str, object]:
        return {
            "start": self.period.start.isoformat(),
            "end": self.period.end.isoformat(),
            "total_income": money(self.total_income),
            "total_expenses": money(self.total_expenses),
            "net_balance": money(self.net_balance),
            "income_by_category": [c.to_dict() for c in self.income_by_category],
            "expenses_by_category": [c.to_dict() for c in self.expenses_by_category],
            "monthly_trend": [m.to_dict() for m in self.monthly_trend],
        }


def filter_by_period(transactions: Iterable, period: Period) -> list:
    return [txn for txn in transactions if period.contains(txn.date)]


def _category_bucket(txn) -> Optional[tuple[str, str]]:
    category = getattr(txn, "category", None)
    if category is not None:
        return category.name, category.color or FALLBACK_CATEGORY_COLOR
    if txn.category_id is not None:
        return UNCATEGORIZED[TransactionType(txn.type)]
    return None


def category_totals(transactions: Iterable, transaction_type: TransactionType) -> list[CategoryTotal]:
    """Sum amounts per category name for one transaction type.

    Rows pointing at a category that could not be resolved fall into the
    synthetic "Uncategorized" bucket; rows without any category reference are
    left out of the breakdown.
    """
    buckets: dict[str, CategoryTotal] = {}
    for txn in transactions:
        if TransactionType(txn.type) != transaction_type:
            continue
        bucket = _category_bucket(txn)
        if bucket is None:
            continue
        name, color = bucket
        entry = buckets.get(name)
        if entry is None:
            buckets[name] = CategoryTotal(name, Decimal(txn.amount), color)
        else:
            entry.amount += Decimal(txn.amount)
            entry.color = color
    return list(buckets.values())


def monthly_trend(transactions: Iterable) -> list[MonthTotal]:
    months: dict[tuple[int, int], MonthTotal] = {}
    for txn in transactions:
        key = (txn.date.year, txn.date.month)
        entry = months.setdefault(key, MonthTotal(*key))
        if TransactionType(txn.type) == TransactionType.income:
            entry.income += Decimal(txn.amount)
        else:
            entry.expenses += Decimal(txn.amount)
    return [months[key] for key in sorted(months)]


def build_report(transactions: Iterable, start: date, end: date) -> Report:
    period = Period(start, end)
    selected = filter_by_period(transactions, period)

    report = Report(period=period)
    for txn in selected:
        if TransactionType(txn.type) == TransactionType.income:
            report.total_income += Decimal(txn.amount)
        else:
            report.total_expenses += Decimal(txn.amount)
    report.income_by_category = category_totals(selected, TransactionType.income)
    report.expenses_by_category = category_totals(selected, TransactionType.expense)
    report.monthly_trend = monthly_trend(selected)
    return report

"""
Budget Metrics

Deterministic aggregations over stored transactions. Totals shown to the
user are always computed here from the real amounts; nothing in this
module talks to the AI or writes to storage.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from src.config import get_settings
from src.models.finance import Transaction, TransactionType, is_valid_month_key
from src.models.metrics import (
    FinancialHealth,
    HealthComponent,
    HealthMetric,
    MonthlySummary,
    TrendPoint,
)


class MetricsError(Exception):
    """Invalid metrics request."""
    pass


# Category name fragments per C-S-I-Z bucket, checked in this order.
# Anything else counts as consumption.
ZIS_KEYWORDS = ("Zakat/Infaq/Sedekah", "Sedekah", "Infaq", "Zakat", "Amal")
INVESTMENT_KEYWORDS = ("Investasi", "Emas", "Reksa Dana", "Saham")
SAVING_KEYWORDS = ("Tabungan", "Dana Darurat")

# (component, label, target %, target is a maximum, status if met, status if not)
HEALTH_TARGETS = (
    (HealthComponent.CONSUMPTION, "Konsumsi (C)", 65, True, "Sehat", "Boros"),
    (HealthComponent.SAVING, "Tabungan (S)", 10, False, "Bagus", "Kurang"),
    (HealthComponent.INVESTMENT, "Investasi (I)", 20, False, "Hebat", "Perlu Ditingkatkan"),
    (HealthComponent.ZIS, "Zakat/Infaq (Z)", 5, False, "Mulia", "Jangan Lupa"),
)


def filter_month(
    transactions: Iterable[Transaction],
    month_key: str,
) -> list[Transaction]:
    """Transactions whose date falls in ``month_key`` (YYYY-MM), order kept."""
    if not is_valid_month_key(month_key):
        raise MetricsError(f"Invalid month key: {month_key!r}")
    return [t for t in transactions if t.month_key == month_key]


def monthly_summary(
    transactions: Iterable[Transaction],
    month_key: str,
) -> MonthlySummary:
    """Income, expense, balance and per-category totals for one month."""
    monthly = filter_month(transactions, month_key)

    income_by_category: dict[str, Decimal] = defaultdict(Decimal)
    expense_by_category: dict[str, Decimal] = defaultdict(Decimal)
    for t in monthly:
        if t.type == TransactionType.INCOME:
            income_by_category[t.category] += t.amount
        else:
            expense_by_category[t.category] += t.amount

    total_income = sum(income_by_category.values(), Decimal("0"))
    total_expense = sum(expense_by_category.values(), Decimal("0"))

    return MonthlySummary(
        month_key=month_key,
        total_income=total_income,
        total_expense=total_expense,
        balance=total_income - total_expense,
        transaction_count=len(monthly),
        expense_by_category=dict(expense_by_category),
        income_by_category=dict(income_by_category),
    )


def monthly_trends(
    transactions: Iterable[Transaction],
    months: Optional[int] = None,
) -> list[TrendPoint]:
    """
    Income/expense per month, oldest first.

    Only months that have transactions appear; the most recent
    ``months`` of them are kept (default from settings).
    """
    limit = months if months is not None else get_settings().app.trend_months
    if limit < 1:
        raise MetricsError("months must be at least 1")

    points: dict[str, TrendPoint] = {}
    for t in transactions:
        point = points.setdefault(t.month_key, TrendPoint(month_key=t.month_key))
        if t.type == TransactionType.INCOME:
            point.income += t.amount
        else:
            point.expense += t.amount

    ordered = [points[key] for key in sorted(points)]
    return ordered[-limit:]


def classify_health_component(category: str) -> HealthComponent:
    """Bucket a category name by keyword containment."""
    if any(kw in category for kw in ZIS_KEYWORDS):
        return HealthComponent.ZIS
    if any(kw in category for kw in INVESTMENT_KEYWORDS):
        return HealthComponent.INVESTMENT
    if any(kw in category for kw in SAVING_KEYWORDS):
        return HealthComponent.SAVING
    return HealthComponent.CONSUMPTION


def financial_health(transactions: Sequence[Transaction]) -> FinancialHealth:
    """
    C-S-I-Z split of expenses as a percentage of income.

    Targets: consumption at most 65%, saving at least 10%, investment
    at least 20%, ZIS at least 5%. With no income the percentages are
    taken against 1 so they stay finite.
    """
    total_income = sum(
        (t.amount for t in transactions if t.type == TransactionType.INCOME),
        Decimal("0"),
    )

    amounts: dict[HealthComponent, Decimal] = {c: Decimal("0") for c in HealthComponent}
    for t in transactions:
        if t.type == TransactionType.EXPENSE:
            amounts[classify_health_component(t.category)] += t.amount

    safe_income = total_income or Decimal("1")

    metrics = []
    for component, label, target, is_limit, good, bad in HEALTH_TARGETS:
        amount = amounts[component]
        percentage = round(float(amount / safe_income * 100), 2)
        on_target = percentage <= target if is_limit else percentage >= target
        metrics.append(
            HealthMetric(
                component=component,
                label=label,
                amount=amount,
                percentage=percentage,
                target_percentage=target,
                is_limit=is_limit,
                status=good if on_target else bad,
            )
        )

    return FinancialHealth(total_income=total_income, metrics=metrics)

"""
Derived Metric Models

Results of the deterministic budget queries. Never stored; always
recomputed from the transactions they summarize.
"""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class MonthlySummary(BaseModel):
    """Income, expense and balance for one month key."""

    month_key: str
    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    transaction_count: int = 0
    expense_by_category: dict[str, Decimal] = Field(default_factory=dict)
    income_by_category: dict[str, Decimal] = Field(default_factory=dict)


class TrendPoint(BaseModel):
    """One bar of the income/expense trend."""

    month_key: str
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")


class HealthComponent(str, Enum):
    """C-S-I-Z budget buckets."""
    CONSUMPTION = "C"
    SAVING = "S"
    INVESTMENT = "I"
    ZIS = "Z"


class HealthMetric(BaseModel):
    """
    One C-S-I-Z bucket measured against its target.

    ``is_limit`` means the target is a maximum (consumption);
    otherwise it is a minimum.
    """

    component: HealthComponent
    label: str
    amount: Decimal = Decimal("0")
    percentage: float = 0.0
    target_percentage: int
    is_limit: bool = False
    status: str

    @property
    def on_target(self) -> bool:
        if self.is_limit:
            return self.percentage <= self.target_percentage
        return self.percentage >= self.target_percentage


class FinancialHealth(BaseModel):
    """C-S-I-Z split of expenses as a share of income."""

    total_income: Decimal = Decimal("0")
    metrics: list[HealthMetric] = Field(default_factory=list)

    @property
    def on_target_count(self) -> int:
        return sum(1 for m in self.metrics if m.on_target)

    def get(self, component: HealthComponent) -> HealthMetric:
        for metric in self.metrics:
            if metric.component == component:
                return metric
        raise KeyError(component)

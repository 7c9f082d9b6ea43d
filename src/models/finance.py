"""
Core Data Models for SakuPintar

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Amounts are Decimal, never float.
Totals and percentages are derived from these amounts locally,
so they must add up exactly.
"""

import re
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


# Field names below shadow `date` inside class bodies.
CalendarDate = date

MONTH_KEY_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def new_id() -> str:
    """Opaque unique identifier for transactions and debts."""
    return str(uuid4())


def month_key(value: date) -> str:
    """Canonical YYYY-MM key for the month containing ``value``."""
    return f"{value.year:04d}-{value.month:02d}"


def is_valid_month_key(key: str) -> bool:
    return isinstance(key, str) and bool(MONTH_KEY_PATTERN.match(key))


def _coerce_timestamp(value: Any) -> Any:
    """
    Accept datetimes, plain dates and YYYY-MM-DD strings.

    Aware datetimes are converted to naive UTC so that stored
    timestamps stay comparable with each other.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            return datetime.strptime(text, "%Y-%m-%d")
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return _coerce_timestamp(parsed)
    return value


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money flow."""
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class Verdict(str, Enum):
    """
    Whether an expense was essential or discretionary.

    WANT is the conservative default whenever the AI gives no verdict.
    """
    NEED = "NEED"
    WANT = "WANT"


class DebtType(str, Enum):
    """PAYABLE = I owe someone, RECEIVABLE = someone owes me."""
    PAYABLE = "PAYABLE"
    RECEIVABLE = "RECEIVABLE"


class DebtStatus(str, Enum):
    """Debt lifecycle. UNPAID -> PAID only."""
    UNPAID = "UNPAID"
    PAID = "PAID"


# =============================================================================
# TRANSACTIONS AND CATEGORIES
# =============================================================================

class Transaction(BaseModel):
    """
    A single income or expense record.

    Immutable once created except for deletion. The category is a free
    string: it SHOULD exist in the category registry but nothing enforces it.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(
        default_factory=new_id,
        min_length=1,
        description="Opaque unique identifier"
    )
    date: datetime = Field(
        default_factory=datetime.now,
        description="When the transaction happened"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Non-negative amount in the app currency"
    )
    category: str = Field(
        ...,
        description="Category name (free string, not a foreign key)"
    )
    description: str = Field(
        default="",
        max_length=500,
    )
    type: TransactionType

    @field_validator('date', mode='before')
    @classmethod
    def normalize_date(cls, v: Any) -> Any:
        return _coerce_timestamp(v)

    @property
    def month_key(self) -> str:
        return month_key(self.date)

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE


class CategoryState(BaseModel):
    """Category names partitioned by transaction type."""

    income: list[str] = Field(default_factory=list)
    expense: list[str] = Field(default_factory=list)

    def for_type(self, transaction_type: TransactionType) -> list[str]:
        if transaction_type == TransactionType.INCOME:
            return self.income
        return self.expense

    def to_dict(self) -> dict[str, list[str]]:
        return {
            TransactionType.INCOME.value: list(self.income),
            TransactionType.EXPENSE.value: list(self.expense),
        }


DEFAULT_INCOME_CATEGORIES = (
    "Uang Saku",
    "Hadiah",
    "Kerja Part-time",
    "Lainnya",
)

DEFAULT_EXPENSE_CATEGORIES = (
    "Makanan",
    "Transportasi",
    "Buku/Alat Tulis",
    "Pulsa/Data",
    "Hiburan",
    "Tabungan",
    "Investasi",
    "Zakat/Infaq/Sedekah",
    "Lainnya",
)

FALLBACK_CATEGORY = "Lainnya"


def default_categories() -> CategoryState:
    """Fresh copy of the built-in category set."""
    return CategoryState(
        income=list(DEFAULT_INCOME_CATEGORIES),
        expense=list(DEFAULT_EXPENSE_CATEGORIES),
    )


# =============================================================================
# AI ANALYSIS MODELS
# =============================================================================

class TransactionVerdict(BaseModel):
    """NEED/WANT verdict for one transaction."""

    transaction_id: str = Field(..., min_length=1)
    verdict: Verdict


class NeedsWantsSummary(BaseModel):
    """
    Monthly needs-vs-wants analysis (the cached MonthlyAnalysisRecord).

    Totals and percentages are always computed locally from the
    transaction amounts. Only the verdicts and insight come from the AI.
    This is a point-in-time snapshot.
    """

    needs_total: Decimal = Field(default=Decimal("0"), ge=0)
    wants_total: Decimal = Field(default=Decimal("0"), ge=0)
    needs_percentage: int = Field(default=0, ge=0, le=100)
    wants_percentage: int = Field(default=0, ge=0, le=100)
    insight: str = ""
    breakdown: list[TransactionVerdict] = Field(default_factory=list)
    is_fallback: bool = Field(
        default=False,
        description="True when the AI call failed and verdicts are defaults"
    )

    @property
    def verdict_map(self) -> dict[str, Verdict]:
        return {item.transaction_id: item.verdict for item in self.breakdown}


class PurchaseAnalysis(BaseModel):
    """Advisory verdict for a single purchase the user is considering."""

    verdict: Verdict
    score: int = Field(
        ...,
        ge=0,
        le=100,
        description="Necessity score (0 = pure want, 100 = essential)"
    )
    reasoning: str
    recommendation: str
    alternatives: Optional[str] = None


# =============================================================================
# DEBTS
# =============================================================================

class DebtRecord(BaseModel):
    """
    Money owed to or by the user.

    Created UNPAID. The only transition is UNPAID -> PAID.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id, min_length=1)
    person: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0)
    date: datetime = Field(default_factory=datetime.now)
    due_date: CalendarDate = Field(default_factory=CalendarDate.today)
    description: str = Field(default="", max_length=500)
    type: DebtType
    status: DebtStatus = DebtStatus.UNPAID

    @field_validator('date', mode='before')
    @classmethod
    def normalize_date(cls, v: Any) -> Any:
        return _coerce_timestamp(v)

    @property
    def is_paid(self) -> bool:
        return self.status == DebtStatus.PAID

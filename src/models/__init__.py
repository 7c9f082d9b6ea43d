"""
Data Models Package

This package contains all Pydantic models used in SakuPintar.
All data flowing through the system must conform to these schemas.
"""

from src.models.finance import (
    DEFAULT_EXPENSE_CATEGORIES,
    DEFAULT_INCOME_CATEGORIES,
    FALLBACK_CATEGORY,
    CategoryState,
    DebtRecord,
    DebtStatus,
    DebtType,
    NeedsWantsSummary,
    PurchaseAnalysis,
    Transaction,
    TransactionType,
    TransactionVerdict,
    Verdict,
    default_categories,
    is_valid_month_key,
    month_key,
    new_id,
)
from src.models.chat import (
    ChatMessage,
    ChatRole,
    ChatTurnResult,
    ParsedTransaction,
    TextReply,
    ToolRequest,
    ToolResult,
)
from src.models.metrics import (
    FinancialHealth,
    HealthComponent,
    HealthMetric,
    MonthlySummary,
    TrendPoint,
)
from src.models.validation import ValidationIssue, ValidationResult
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "DEFAULT_EXPENSE_CATEGORIES",
    "DEFAULT_INCOME_CATEGORIES",
    "FALLBACK_CATEGORY",
    "CategoryState",
    "DebtRecord",
    "DebtStatus",
    "DebtType",
    "NeedsWantsSummary",
    "PurchaseAnalysis",
    "Transaction",
    "TransactionType",
    "TransactionVerdict",
    "Verdict",
    "default_categories",
    "is_valid_month_key",
    "month_key",
    "new_id",
    # Chat models
    "ChatMessage",
    "ChatRole",
    "ChatTurnResult",
    "ParsedTransaction",
    "TextReply",
    "ToolRequest",
    "ToolResult",
    # Metric models
    "FinancialHealth",
    "HealthComponent",
    "HealthMetric",
    "MonthlySummary",
    "TrendPoint",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]

"""
Audit Models for SakuPintar

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability of every write to the finance store
2. Debugging information when an AI call falls back
3. A record of what the chat assistant did on the user's behalf

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Storage lifecycle
    STORE_INITIALIZED = "store_initialized"
    PERSIST_FAILED = "persist_failed"

    # Transactions and categories
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_DELETED = "transaction_deleted"
    CATEGORY_ADDED = "category_added"

    # Analysis cache
    ANALYSIS_SAVED = "analysis_saved"
    ANALYSIS_INVALIDATED = "analysis_invalidated"

    # Debts
    DEBT_ADDED = "debt_added"
    DEBT_SETTLED = "debt_settled"
    DEBT_DELETED = "debt_deleted"

    # Chat assistant
    TOOL_CALL_RECEIVED = "tool_call_received"
    TOOL_CALL_EXECUTED = "tool_call_executed"
    TOOL_CALL_REJECTED = "tool_call_rejected"

    # AI and system
    AI_FALLBACK_USED = "ai_fallback_used"
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'debt', 'analysis')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one chat turn)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_added(txn_id, "EXPENSE", "15000", "Makanan")
        event = AuditEventBuilder.tool_call_executed("addTransaction", txn_id, correlation_id)
    """

    @staticmethod
    def store_initialized(store_name: str, loaded: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_INITIALIZED,
            entity_type="store",
            entity_id=store_name,
            description=(
                f"Store {store_name} loaded from durable image"
                if loaded
                else f"Store {store_name} created with default categories"
            ),
            details={"loaded_existing": loaded},
        )

    @staticmethod
    def persist_failed(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSIST_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="store",
            correlation_id=correlation_id,
            description=f"Durable write failed after {operation}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def transaction_added(
        transaction_id: str,
        transaction_type: str,
        amount: str,
        category: str,
        correlation_id: Optional[UUID] = None,
        is_user_action: bool = True,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"{transaction_type} of {amount} recorded in {category}",
            details={
                "type": transaction_type,
                "amount": amount,
                "category": category,
            },
            is_user_action=is_user_action,
        )

    @staticmethod
    def transaction_deleted(transaction_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def category_added(name: str, category_type: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_ADDED,
            entity_type="category",
            entity_id=f"{category_type}:{name}",
            description=f"Category added: {name} ({category_type})",
            details={"name": name, "type": category_type},
            is_user_action=True,
        )

    @staticmethod
    def analysis_saved(month_key: str, needs_percentage: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYSIS_SAVED,
            entity_type="analysis",
            entity_id=month_key,
            description=f"Needs/wants analysis cached for {month_key}",
            details={"needs_percentage": needs_percentage},
        )

    @staticmethod
    def analysis_invalidated(month_key: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYSIS_INVALIDATED,
            entity_type="analysis",
            entity_id=month_key,
            description=f"Cached analysis for {month_key} removed: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def debt_added(debt_id: str, debt_type: str, person: str, amount: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_ADDED,
            entity_type="debt",
            entity_id=debt_id,
            description=f"{debt_type} debt recorded with {person}",
            details={"type": debt_type, "person": person, "amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def debt_settled(
        debt_id: str,
        companion_transaction_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_SETTLED,
            entity_type="debt",
            entity_id=debt_id,
            description="Debt marked as paid",
            details={"companion_transaction_id": companion_transaction_id},
            is_user_action=True,
        )

    @staticmethod
    def debt_deleted(debt_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_DELETED,
            entity_type="debt",
            entity_id=debt_id,
            description="Debt deleted",
            is_user_action=True,
        )

    @staticmethod
    def tool_call_received(
        tool_name: str,
        args: dict,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOOL_CALL_RECEIVED,
            entity_type="tool_call",
            entity_id=tool_name,
            correlation_id=correlation_id,
            description=f"Model requested tool {tool_name}",
            details={"args": {k: str(v) for k, v in args.items()}},
        )

    @staticmethod
    def tool_call_executed(
        tool_name: str,
        transaction_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOOL_CALL_EXECUTED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Tool {tool_name} executed",
            details={"tool": tool_name},
        )

    @staticmethod
    def tool_call_rejected(
        tool_name: str,
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOOL_CALL_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="tool_call",
            entity_id=tool_name,
            correlation_id=correlation_id,
            description=f"Tool call {tool_name} not executed",
            error_message=reason,
        )

    @staticmethod
    def ai_fallback_used(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AI_FALLBACK_USED,
            severity=AuditSeverity.WARNING,
            entity_type="ai_operation",
            entity_id=operation,
            correlation_id=correlation_id,
            description=f"AI operation {operation} returned its fallback",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )

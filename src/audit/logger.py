"""
Audit Logger

DESIGN DECISION: Every write to the finance store and every action the
chat assistant takes on the user's behalf is logged.
This provides:
1. Complete traceability
2. Debugging capability when AI calls fall back
3. A history of what was changed and why

The audit logger:
- Is async so it sits naturally inside the async flows
- Gracefully handles failures (never crashes the app if logging fails)
- Supports correlation IDs to trace the events of one chat turn
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Events go to the structured local log. ``recent_events`` keeps the
    last events of this process so the UI can show an activity feed.
    """

    def __init__(self, max_recent: int = 200):
        self._logger = structlog.get_logger("src.audit")
        self._recent: list[AuditEvent] = []
        self._max_recent = max_recent

    @property
    def recent_events(self) -> list[AuditEvent]:
        """Most recent events, newest first."""
        return list(reversed(self._recent))

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns False if the local log write failed.
        """
        self._recent.append(event)
        if len(self._recent) > self._max_recent:
            del self._recent[0]

        log_dict = event.to_log_dict()
        try:
            if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception:
            # Logging must never break the main flow
            return False
        return True

    async def log_store_initialized(self, store_name: str, loaded: bool) -> None:
        await self.log(AuditEventBuilder.store_initialized(store_name, loaded))

    async def log_persist_failed(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a durable write that failed after all retries."""
        event = AuditEventBuilder.persist_failed(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_added(
        self,
        transaction_id: str,
        transaction_type: str,
        amount: str,
        category: str,
        correlation_id: Optional[UUID] = None,
        is_user_action: bool = True,
    ) -> None:
        event = AuditEventBuilder.transaction_added(
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            amount=amount,
            category=category,
            correlation_id=correlation_id,
            is_user_action=is_user_action,
        )
        await self.log(event)

    async def log_transaction_deleted(self, transaction_id: str) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(transaction_id))

    async def log_category_added(self, name: str, category_type: str) -> None:
        await self.log(AuditEventBuilder.category_added(name, category_type))

    async def log_analysis_saved(self, month_key: str, needs_percentage: int) -> None:
        await self.log(AuditEventBuilder.analysis_saved(month_key, needs_percentage))

    async def log_analysis_invalidated(self, month_key: str, reason: str) -> None:
        await self.log(AuditEventBuilder.analysis_invalidated(month_key, reason))

    async def log_debt_added(
        self,
        debt_id: str,
        debt_type: str,
        person: str,
        amount: str,
    ) -> None:
        await self.log(AuditEventBuilder.debt_added(debt_id, debt_type, person, amount))

    async def log_debt_settled(
        self,
        debt_id: str,
        companion_transaction_id: Optional[str],
    ) -> None:
        await self.log(AuditEventBuilder.debt_settled(debt_id, companion_transaction_id))

    async def log_debt_deleted(self, debt_id: str) -> None:
        await self.log(AuditEventBuilder.debt_deleted(debt_id))

    async def log_tool_call_received(
        self,
        tool_name: str,
        args: dict,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.tool_call_received(tool_name, args, correlation_id))

    async def log_tool_call_executed(
        self,
        tool_name: str,
        transaction_id: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(
            AuditEventBuilder.tool_call_executed(tool_name, transaction_id, correlation_id)
        )

    async def log_tool_call_rejected(
        self,
        tool_name: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.tool_call_rejected(tool_name, reason, correlation_id))

    async def log_ai_fallback(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log that an AI entry point returned its fallback value."""
        event = AuditEventBuilder.ai_fallback_used(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., one chat turn).
    Pass it through all subsequent operations.
    """
    return uuid4()

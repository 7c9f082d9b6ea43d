"""
Main Orchestrator for SakuPintar

This module ties together all the components and defines the
end-to-end flows for:
1. Chat (user text -> model -> optional addTransaction -> model -> reply)
2. Analytics (month -> cached or fresh needs/wants classification)
3. Debts (settle -> optional companion transaction)

FinanceTracker is the one object UI code talks to. Every method returns
data or a defined fallback; only storage initialization failure is
allowed to escape, because nothing works without the store.

Every significant step is audited.
"""

from datetime import datetime, time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence
from uuid import UUID

import structlog

from src.agents import (
    ChatModelSession,
    FinanceAdvisorAgent,
    GeminiChatSession,
    JsonModelClient,
    ModelClientError,
    NeedsWantsAgent,
    PurchaseAdvisorAgent,
    TransactionParserAgent,
    build_chat_instruction,
)
from src.audit import AuditLogger, create_correlation_id
from src.config import get_settings
from src.models.chat import (
    ChatMessage,
    ChatRole,
    ChatTurnResult,
    ParsedTransaction,
    TextReply,
    ToolRequest,
    ToolResult,
)
from src.models.finance import (
    CategoryState,
    DebtRecord,
    DebtType,
    NeedsWantsSummary,
    PurchaseAnalysis,
    Transaction,
    TransactionType,
    is_valid_month_key,
)
from src.models.metrics import FinancialHealth, MonthlySummary, TrendPoint
from src.queries import (
    MetricsError,
    filter_month,
    financial_health,
    monthly_summary,
    monthly_trends,
)
from src.services.storage import (
    AnalysisCache,
    CategoryMatcher,
    CategoryRegistry,
    DuplicateError,
    FileBlobStore,
    FinanceStorageInterface,
    PersistError,
    SQLiteFinanceStorage,
    StorageError,
    StorageInitError,
    keyword_matcher,
)
from src.validation import ToolCallValidator, parse_amount, parse_tool_date


logger = structlog.get_logger(__name__)


CHAT_GREETING = "Halo! Aku SakuBot 🤖. Mau curhat keuangan atau catat transaksi? Bilang aja!"
CHAT_CONNECTION_FALLBACK = "Waduh, koneksi ke otak AI terputus sebentar. Coba lagi ya!"
CHAT_EMPTY_REPLY = "Maaf, saya tidak mengerti."
CHAT_BUSY_REPLY = "Tunggu sebentar ya, pesan sebelumnya masih diproses."
TOOL_FOLLOWUP_FALLBACK = "Berhasil disimpan, tapi saya lupa mau bilang apa."
TOOL_FOLLOWUP_EMPTY = "Oke!"
TOOL_REJECTED_REPLY = (
    "Maaf, data transaksinya belum lengkap atau tidak valid, jadi belum "
    "saya catat. Sebutkan jenis, jumlah, dan kategorinya ya!"
)
TOOL_SAVE_FAILED_REPLY = "Maaf, transaksinya gagal disimpan. Coba lagi ya!"

TOOL_SUCCESS_MESSAGE = "Transaction saved successfully."

INVALID_MONTH_INSIGHT = "Bulan tidak valid. Gunakan format YYYY-MM."

DEBT_PAYMENT_CATEGORY = "Bayar Hutang (Keluar)"
DEBT_COLLECTION_CATEGORY = "Pelunasan Hutang (Masuk)"


class ChatState(str, Enum):
    """Where a conversation is within the current turn."""
    IDLE = "idle"
    AWAITING_MODEL_RESPONSE = "awaiting_model_response"
    EXECUTING_TOOL = "executing_tool"
    AWAITING_FOLLOWUP = "awaiting_followup"


class ChatToolOrchestrator:
    """
    Drives one conversation with tool calling.

    Turn state machine:
    1. IDLE -> user text -> AWAITING_MODEL_RESPONSE
    2. Text reply -> IDLE; tool request -> EXECUTING_TOOL
    3. EXECUTING_TOOL: validate, build the Transaction, store it,
       send the tool result back -> AWAITING_FOLLOWUP
    4. Follow-up text -> IDLE

    Any failure ends the turn in IDLE with a fallback reply. The
    session itself survives and is used for the next turn.
    Only the first tool call of a model turn is handled.
    """

    def __init__(
        self,
        session: ChatModelSession,
        storage: FinanceStorageInterface,
        registry: Optional[CategoryRegistry] = None,
        validator: Optional[ToolCallValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        greeting: Optional[str] = CHAT_GREETING,
    ):
        self._session = session
        self._storage = storage
        self._registry = registry or CategoryRegistry(storage, matcher=keyword_matcher)
        self._validator = validator or ToolCallValidator()
        self._audit_logger = audit_logger
        self._state = ChatState.IDLE
        self._transcript: list[ChatMessage] = []
        if greeting:
            self._transcript.append(ChatMessage(role=ChatRole.MODEL, text=greeting))

    @property
    def state(self) -> ChatState:
        return self._state

    @property
    def transcript(self) -> list[ChatMessage]:
        return list(self._transcript)

    async def send_turn(self, text: str) -> ChatTurnResult:
        """Run one user turn to completion. Never raises."""
        if self._state != ChatState.IDLE:
            return ChatTurnResult(reply=CHAT_BUSY_REPLY, is_fallback=True)

        text = (text or "").strip()
        if not text:
            return ChatTurnResult(reply=CHAT_EMPTY_REPLY, is_fallback=True)

        correlation_id = create_correlation_id()
        self._transcript.append(ChatMessage(role=ChatRole.USER, text=text))
        self._state = ChatState.AWAITING_MODEL_RESPONSE

        try:
            result = await self._run_turn(text, correlation_id)
        except Exception as e:
            # Anything unexpected still ends the turn cleanly
            logger.exception("chat_turn_failed", correlation_id=str(correlation_id))
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            result = ChatTurnResult(reply=CHAT_CONNECTION_FALLBACK, is_fallback=True)
        finally:
            self._state = ChatState.IDLE

        self._transcript.append(ChatMessage(role=ChatRole.MODEL, text=result.reply))
        return result

    async def _run_turn(self, text: str, correlation_id: UUID) -> ChatTurnResult:
        try:
            response = await self._session.send_turn(text)
        except ModelClientError as e:
            await self._log_fallback("chat_turn", e, correlation_id)
            return ChatTurnResult(reply=CHAT_CONNECTION_FALLBACK, is_fallback=True)

        if isinstance(response, TextReply):
            return ChatTurnResult(reply=response.text or CHAT_EMPTY_REPLY)

        self._state = ChatState.EXECUTING_TOOL
        return await self._handle_tool_request(response, correlation_id)

    async def _handle_tool_request(
        self,
        request: ToolRequest,
        correlation_id: UUID,
    ) -> ChatTurnResult:
        if self._audit_logger:
            await self._audit_logger.log_tool_call_received(
                tool_name=request.name,
                args=request.args,
                correlation_id=correlation_id,
            )

        validation = self._validator.validate(request)
        if not validation.is_valid:
            reason = validation.summary()
            logger.warning("tool_call_rejected", tool=request.name, reason=reason)
            if self._audit_logger:
                await self._audit_logger.log_tool_call_rejected(
                    tool_name=request.name,
                    reason=reason,
                    correlation_id=correlation_id,
                )
            return await self._report_failure(
                request,
                ToolResult(status="error", message=f"Invalid arguments: {reason}"),
                TOOL_REJECTED_REPLY,
                correlation_id,
            )

        try:
            transaction = await self._execute_add_transaction(request)
        except StorageError as e:
            logger.error("tool_call_storage_failed", tool=request.name, error=str(e))
            if self._audit_logger:
                if isinstance(e, PersistError):
                    await self._audit_logger.log_persist_failed(
                        operation=request.name,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                else:
                    await self._audit_logger.log_error(
                        error_type=type(e).__name__,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
            return await self._report_failure(
                request,
                ToolResult(status="error", message="Failed to save the transaction."),
                TOOL_SAVE_FAILED_REPLY,
                correlation_id,
            )

        if self._audit_logger:
            await self._audit_logger.log_transaction_added(
                transaction_id=transaction.id,
                transaction_type=transaction.type.value,
                amount=str(transaction.amount),
                category=transaction.category,
                correlation_id=correlation_id,
                is_user_action=False,
            )
            await self._audit_logger.log_tool_call_executed(
                tool_name=request.name,
                transaction_id=transaction.id,
                correlation_id=correlation_id,
            )

        self._state = ChatState.AWAITING_FOLLOWUP
        try:
            followup = await self._session.send_tool_result(
                request, ToolResult(status="success", message=TOOL_SUCCESS_MESSAGE)
            )
            reply = followup.text or TOOL_FOLLOWUP_EMPTY
            is_fallback = False
        except ModelClientError as e:
            await self._log_fallback("tool_followup", e, correlation_id)
            reply = TOOL_FOLLOWUP_FALLBACK
            is_fallback = True

        return ChatTurnResult(
            reply=reply,
            transaction=transaction,
            tool_name=request.name,
            is_fallback=is_fallback,
        )

    async def _execute_add_transaction(self, request: ToolRequest) -> Transaction:
        """Build and store the Transaction. Arguments are already validated."""
        args = request.args
        transaction_type = TransactionType(str(args["type"]).strip().upper())
        category = await self._registry.resolve(transaction_type, str(args["category"]))

        tx_date = parse_tool_date(args.get("date"))
        when = datetime.combine(tx_date, time()) if tx_date else datetime.now()

        transaction = Transaction(
            type=transaction_type,
            amount=parse_amount(args["amount"]),
            category=category,
            description=str(args.get("description") or "").strip(),
            date=when,
        )
        await self._storage.add_transaction(transaction)
        return transaction

    async def _report_failure(
        self,
        request: ToolRequest,
        result: ToolResult,
        fallback_reply: str,
        correlation_id: UUID,
    ) -> ChatTurnResult:
        """Tell the model the call failed and relay its answer, if any."""
        self._state = ChatState.AWAITING_FOLLOWUP
        try:
            followup = await self._session.send_tool_result(request, result)
        except ModelClientError as e:
            await self._log_fallback("tool_followup", e, correlation_id)
            followup = TextReply(text="")

        return ChatTurnResult(
            reply=followup.text or fallback_reply,
            tool_name=request.name,
            is_fallback=True,
        )

    async def _log_fallback(
        self,
        operation: str,
        error: Exception,
        correlation_id: UUID,
    ) -> None:
        logger.warning("chat_fallback", operation=operation, error=str(error))
        if self._audit_logger:
            await self._audit_logger.log_ai_fallback(
                operation=operation,
                error_message=str(error),
                correlation_id=correlation_id,
            )


class AnalyticsFlow:
    """
    Cache-aside needs/wants classification per month.

    Flow:
    1. Check the cached record for the month key
    2. On a miss, classify that month's transactions with the AI
    3. Store the result unless it is a fallback
    """

    def __init__(
        self,
        storage: FinanceStorageInterface,
        needs_wants_agent: Optional[NeedsWantsAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._cache = AnalysisCache(storage)
        self._agent = needs_wants_agent or NeedsWantsAgent()
        self._audit_logger = audit_logger

    async def get_monthly_analysis(self, month_key: str) -> Optional[NeedsWantsSummary]:
        return await self._cache.get(month_key)

    async def save_monthly_analysis(self, month_key: str, record: NeedsWantsSummary) -> None:
        await self._cache.save(month_key, record)
        if self._audit_logger:
            await self._audit_logger.log_analysis_saved(month_key, record.needs_percentage)

    async def classify_month(
        self,
        month_key: str,
        force: bool = False,
    ) -> tuple[NeedsWantsSummary, bool]:
        """
        Returns:
            (summary, from_cache). An invalid month key yields a
            fallback summary and no AI call.
        """
        if not is_valid_month_key(month_key):
            logger.warning("invalid_month_key", operation="classify_month", month_key=month_key)
            return NeedsWantsSummary(insight=INVALID_MONTH_INSIGHT, is_fallback=True), False

        async def compute() -> NeedsWantsSummary:
            transactions = filter_month(await self._storage.list_transactions(), month_key)
            return await self._agent.classify(transactions)

        record, from_cache = await self._cache.get_or_compute(month_key, compute, force=force)

        if self._audit_logger and not from_cache:
            if not record.is_fallback:
                await self._audit_logger.log_analysis_saved(month_key, record.needs_percentage)
            elif record.breakdown:
                await self._audit_logger.log_ai_fallback(
                    operation="classify_month",
                    error_message=record.insight,
                )

        return record, from_cache

    async def reset(self, month_key: str) -> bool:
        """Forget the month's analysis, durable record included."""
        removed = await self._cache.invalidate(month_key)
        if removed and self._audit_logger:
            await self._audit_logger.log_analysis_invalidated(month_key, "reset by user")
        return removed


def build_companion_transaction(debt: DebtRecord) -> Transaction:
    """The transaction that records money actually moving for a settled debt."""
    if debt.type == DebtType.PAYABLE:
        return Transaction(
            type=TransactionType.EXPENSE,
            amount=debt.amount,
            category=DEBT_PAYMENT_CATEGORY,
            description=f"Bayar hutang ke {debt.person}",
        )
    return Transaction(
        type=TransactionType.INCOME,
        amount=debt.amount,
        category=DEBT_COLLECTION_CATEGORY,
        description=f"Terima piutang dari {debt.person}",
    )


class DebtFlow:
    """
    Debt lifecycle: UNPAID -> PAID, once.

    Settling can record a companion transaction. The two writes are not
    atomic: a failed companion write leaves the debt PAID.
    """

    def __init__(
        self,
        storage: FinanceStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    async def add_debt(self, debt: DebtRecord) -> None:
        await self._storage.add_debt(debt)
        if self._audit_logger:
            await self._audit_logger.log_debt_added(
                debt_id=debt.id,
                debt_type=debt.type.value,
                person=debt.person,
                amount=str(debt.amount),
            )

    async def list_debts(self) -> list[DebtRecord]:
        return await self._storage.list_debts()

    async def delete_debt(self, debt_id: str) -> bool:
        removed = await self._storage.delete_debt(debt_id)
        if removed and self._audit_logger:
            await self._audit_logger.log_debt_deleted(debt_id)
        return removed

    async def settle_debt(
        self,
        debt_id: str,
        record_transaction: bool = True,
    ) -> tuple[Optional[DebtRecord], Optional[Transaction]]:
        """
        Mark a debt PAID.

        Returns:
            (updated_debt, companion_transaction). The debt is None when
            the id is unknown or already PAID; the transaction is None when
            not requested or when storing it failed.
        """
        debt = await self._storage.mark_debt_paid(debt_id)
        if debt is None:
            return None, None

        companion = None
        if record_transaction:
            companion = build_companion_transaction(debt)
            try:
                await self._storage.add_transaction(companion)
            except StorageError as e:
                logger.warning("debt_companion_failed", debt_id=debt_id, error=str(e))
                if self._audit_logger:
                    await self._audit_logger.log_error(
                        error_type=type(e).__name__,
                        error_message=str(e),
                        details={"debt_id": debt_id},
                    )
                companion = None

        if self._audit_logger:
            await self._audit_logger.log_debt_settled(
                debt_id=debt.id,
                companion_transaction_id=companion.id if companion else None,
            )
        return debt, companion


ChatSessionFactory = Callable[[str], ChatModelSession]


class FinanceTracker:
    """
    Collaborator-facing API.

    Mutations return True/False instead of raising: False means the
    change was rejected or could not be written durably (the audit log
    says which).
    """

    def __init__(
        self,
        storage: FinanceStorageInterface,
        json_client: Optional[JsonModelClient] = None,
        session_factory: Optional[ChatSessionFactory] = None,
        audit_logger: Optional[AuditLogger] = None,
        matcher: Optional[CategoryMatcher] = keyword_matcher,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._registry = CategoryRegistry(storage, matcher=matcher)
        self._parser = TransactionParserAgent(json_client, matcher=matcher)
        self._purchase_advisor = PurchaseAdvisorAgent(json_client)
        self._finance_advisor = FinanceAdvisorAgent(json_client)
        self._analytics = AnalyticsFlow(
            storage,
            NeedsWantsAgent(json_client),
            self._audit_logger,
        )
        self._debts = DebtFlow(storage, self._audit_logger)
        self._session_factory = session_factory or GeminiChatSession
        self._chat: Optional[ChatToolOrchestrator] = None

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit_logger

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """Open the store. StorageInitError is fatal and propagates."""
        try:
            await self._storage.initialize()
        except StorageInitError as e:
            await self._audit_logger.log_external_service_error("durable_store", str(e))
            raise
        await self._audit_logger.log_store_initialized(
            store_name=getattr(self._storage, "store_name", "store"),
            loaded=getattr(self._storage, "loaded_existing", False),
        )

    async def close(self) -> None:
        await self._storage.close()

    async def _mutate(self, operation: str, action: Callable[[], Awaitable]) -> bool:
        try:
            await action()
        except PersistError as e:
            logger.error("persist_failed", operation=operation, error=str(e))
            await self._audit_logger.log_persist_failed(operation, str(e))
            return False
        except DuplicateError as e:
            logger.warning("duplicate_rejected", operation=operation, error=str(e))
            return False
        except StorageError as e:
            logger.error("storage_failed", operation=operation, error=str(e))
            await self._audit_logger.log_error(type(e).__name__, str(e))
            return False
        return True

    # -------------------------------------------------------------------------
    # Transactions and categories
    # -------------------------------------------------------------------------

    async def get_transactions(self) -> list[Transaction]:
        return await self._storage.list_transactions()

    async def add_transaction(self, transaction: Transaction) -> bool:
        ok = await self._mutate(
            "add_transaction", lambda: self._storage.add_transaction(transaction)
        )
        if ok:
            await self._audit_logger.log_transaction_added(
                transaction_id=transaction.id,
                transaction_type=transaction.type.value,
                amount=str(transaction.amount),
                category=transaction.category,
            )
        return ok

    async def delete_transaction(self, transaction_id: str) -> bool:
        """True if a transaction was removed. Unknown ids are a no-op."""
        removed: list[Optional[Transaction]] = []

        async def action() -> None:
            removed.append(await self._storage.delete_transaction(transaction_id))

        ok = await self._mutate("delete_transaction", action)
        if not ok or not removed or removed[0] is None:
            return False
        await self._audit_logger.log_transaction_deleted(transaction_id)
        return True

    async def get_categories(self) -> CategoryState:
        return await self._registry.list()

    async def add_category(self, category_type: TransactionType, name: str) -> bool:
        """True if a new category was created. Duplicates return False."""
        added: list[bool] = []

        async def action() -> None:
            added.append(await self._registry.add(category_type, name))

        ok = await self._mutate("add_category", action)
        if not ok or not added or not added[0]:
            return False
        await self._audit_logger.log_category_added(name.strip(), category_type.value)
        return True

    # -------------------------------------------------------------------------
    # Analysis
    # -------------------------------------------------------------------------

    async def get_monthly_analysis(self, month_key: str) -> Optional[NeedsWantsSummary]:
        return await self._analytics.get_monthly_analysis(month_key)

    async def save_monthly_analysis(self, month_key: str, record: NeedsWantsSummary) -> bool:
        if not is_valid_month_key(month_key):
            logger.warning("invalid_month_key", operation="save_monthly_analysis", month_key=month_key)
            return False
        return await self._mutate(
            "save_monthly_analysis",
            lambda: self._analytics.save_monthly_analysis(month_key, record),
        )

    async def reset_monthly_analysis(self, month_key: str) -> bool:
        removed: list[bool] = []

        async def action() -> None:
            removed.append(await self._analytics.reset(month_key))

        ok = await self._mutate("reset_monthly_analysis", action)
        return ok and bool(removed and removed[0])

    async def classify_month(self, month_key: str, force: bool = False) -> NeedsWantsSummary:
        record, _ = await self._analytics.classify_month(month_key, force=force)
        return record

    async def analyze_single_purchase(
        self,
        item: str,
        price: Any,
        reason: str,
    ) -> PurchaseAnalysis:
        return await self._purchase_advisor.analyze(item, price, reason)

    async def parse_transaction(self, text: str) -> Optional[ParsedTransaction]:
        """Parse free text; the caller confirms before add_transaction."""
        categories = await self.get_categories()
        return await self._parser.parse(text, categories)

    async def analyze_finances(
        self,
        transactions: Optional[Sequence[Transaction]] = None,
    ) -> str:
        if transactions is None:
            transactions = await self.get_transactions()
        return await self._finance_advisor.analyze(transactions)

    async def monthly_summary(self, month_key: str) -> MonthlySummary:
        """Empty summary for an invalid month key."""
        try:
            return monthly_summary(await self.get_transactions(), month_key)
        except MetricsError as e:
            logger.warning("metrics_rejected", operation="monthly_summary", error=str(e))
            return MonthlySummary(month_key=month_key)

    async def monthly_trends(self, months: Optional[int] = None) -> list[TrendPoint]:
        try:
            return monthly_trends(await self.get_transactions(), months)
        except MetricsError as e:
            logger.warning("metrics_rejected", operation="monthly_trends", error=str(e))
            return []

    async def financial_health(self, month_key: Optional[str] = None) -> FinancialHealth:
        """Health over no transactions for an invalid month key."""
        transactions = await self.get_transactions()
        if month_key is not None:
            try:
                transactions = filter_month(transactions, month_key)
            except MetricsError as e:
                logger.warning("metrics_rejected", operation="financial_health", error=str(e))
                transactions = []
        return financial_health(transactions)

    # -------------------------------------------------------------------------
    # Chat
    # -------------------------------------------------------------------------

    async def start_chat(self) -> ChatToolOrchestrator:
        """Start a new conversation. Prior turn context is dropped."""
        instruction = build_chat_instruction(await self.get_categories())
        self._chat = ChatToolOrchestrator(
            session=self._session_factory(instruction),
            storage=self._storage,
            registry=self._registry,
            audit_logger=self._audit_logger,
        )
        return self._chat

    async def send_chat_turn(self, text: str) -> ChatTurnResult:
        if self._chat is None:
            await self.start_chat()
        return await self._chat.send_turn(text)

    @property
    def chat_transcript(self) -> list[ChatMessage]:
        return self._chat.transcript if self._chat else []

    # -------------------------------------------------------------------------
    # Debts
    # -------------------------------------------------------------------------

    async def get_debts(self) -> list[DebtRecord]:
        return await self._debts.list_debts()

    async def add_debt(self, debt: DebtRecord) -> bool:
        return await self._mutate("add_debt", lambda: self._debts.add_debt(debt))

    async def delete_debt(self, debt_id: str) -> bool:
        removed: list[bool] = []

        async def action() -> None:
            removed.append(await self._debts.delete_debt(debt_id))

        ok = await self._mutate("delete_debt", action)
        return ok and bool(removed and removed[0])

    async def settle_debt(
        self,
        debt_id: str,
        record_transaction: bool = True,
    ) -> tuple[Optional[DebtRecord], Optional[Transaction]]:
        try:
            return await self._debts.settle_debt(debt_id, record_transaction)
        except StorageError as e:
            logger.error("settle_debt_failed", debt_id=debt_id, error=str(e))
            if isinstance(e, PersistError):
                await self._audit_logger.log_persist_failed("settle_debt", str(e))
            else:
                await self._audit_logger.log_error(type(e).__name__, str(e))
            return None, None


def create_app_components(
    storage: Optional[FinanceStorageInterface] = None,
) -> FinanceTracker:
    """
    Factory function to create the application facade.

    Args:
        storage: Injected store. Defaults to the SQLite store mirrored
                 to files under the configured data directory.

    Call ``await tracker.initialize()`` before use.
    """
    settings = get_settings()
    if storage is None:
        blob_store = FileBlobStore(settings.storage.data_dir)
        storage = SQLiteFinanceStorage(blob_store)

    return FinanceTracker(storage=storage, audit_logger=AuditLogger())

"""
Serialized SQLite Storage Implementation

DESIGN DECISION: The whole relational store lives in an in-memory SQLite
database. After every mutation the full database is serialized and written
to the durable blob layer under one fixed key. On startup the blob is
deserialized back into memory.

TRADEOFFS:
- Write cost grows with the store size (fine for one student's data)
- No write-ahead log: a crash during the blob write can lose the image
- Last writer wins if two processes share the same data directory

Durable writes are retried with tenacity. When every attempt fails the
mutation stays in memory and PersistError is raised to the caller.
"""

import sqlite3
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

import structlog
from pydantic import ValidationError
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from src.config import get_settings
from src.models.finance import (
    DEFAULT_EXPENSE_CATEGORIES,
    DEFAULT_INCOME_CATEGORIES,
    CategoryState,
    DebtRecord,
    DebtStatus,
    DebtType,
    NeedsWantsSummary,
    Transaction,
    TransactionType,
    is_valid_month_key,
)
from src.services.storage.interface import (
    DuplicateError,
    DurableBlobStore,
    FinanceStorageInterface,
    PersistError,
    StorageError,
    StorageInitError,
)


logger = structlog.get_logger(__name__)

# Fixed width, so lexical order in SQL equals chronological order
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id TEXT PRIMARY KEY,
        date TEXT NOT NULL,
        amount TEXT NOT NULL,
        category TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        type TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        type TEXT NOT NULL,
        UNIQUE (name, type)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS monthly_analysis (
        month_id TEXT PRIMARY KEY,
        data TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS debts (
        id TEXT PRIMARY KEY,
        person TEXT NOT NULL,
        amount TEXT NOT NULL,
        date TEXT NOT NULL,
        due_date TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        type TEXT NOT NULL,
        status TEXT NOT NULL
    )
    """,
)


class SQLiteFinanceStorage(FinanceStorageInterface):
    """
    Finance store backed by a serialized in-memory SQLite database.

    One instance per process. Inject it into collaborators instead of
    importing a global, and call close() when done.
    """

    def __init__(
        self,
        blob_store: DurableBlobStore,
        store_name: Optional[str] = None,
        retry_attempts: Optional[int] = None,
        retry_wait_seconds: Optional[float] = None,
        invalidate_analysis_on_change: Optional[bool] = None,
    ):
        settings = get_settings()
        storage_settings = settings.storage

        self._blob_store = blob_store
        self._store_name = store_name or storage_settings.store_name
        self._retry_attempts = retry_attempts or storage_settings.persist_retry_attempts
        self._retry_wait = (
            storage_settings.persist_retry_wait_seconds
            if retry_wait_seconds is None
            else retry_wait_seconds
        )
        self._invalidate_on_change = (
            settings.app.invalidate_analysis_on_change
            if invalidate_analysis_on_change is None
            else invalidate_analysis_on_change
        )
        self._conn: Optional[sqlite3.Connection] = None
        self._loaded_existing = False

    @property
    def store_name(self) -> str:
        return self._store_name

    @property
    def is_initialized(self) -> bool:
        return self._conn is not None

    @property
    def loaded_existing(self) -> bool:
        """True if initialize() loaded a prior durable image."""
        return self._loaded_existing

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        if self._conn is not None:
            return

        try:
            image = await self._blob_store.read(self._store_name)
        except Exception as e:
            raise StorageInitError(f"Durable storage unreachable: {e}") from e

        conn = sqlite3.connect(":memory:")
        try:
            if image:
                conn.deserialize(image)
            with conn:
                for statement in SCHEMA:
                    conn.execute(statement)
                if not image:
                    self._seed_default_categories(conn)
        except sqlite3.Error as e:
            conn.close()
            raise StorageInitError(
                f"Failed to load store {self._store_name}: {e}"
            ) from e

        self._conn = conn
        self._loaded_existing = bool(image)

        if not image:
            try:
                await self._persist()
            except PersistError as e:
                self._conn = None
                conn.close()
                raise StorageInitError(str(e)) from e

        logger.info(
            "store_initialized",
            store=self._store_name,
            loaded_existing=self._loaded_existing,
        )

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    async def _ensure_initialized(self) -> sqlite3.Connection:
        if self._conn is None:
            await self.initialize()
        return self._conn

    @staticmethod
    def _seed_default_categories(conn: sqlite3.Connection) -> None:
        (count,) = conn.execute("SELECT count(*) FROM categories").fetchone()
        if count:
            return
        rows = [(name, TransactionType.INCOME.value) for name in DEFAULT_INCOME_CATEGORIES]
        rows += [(name, TransactionType.EXPENSE.value) for name in DEFAULT_EXPENSE_CATEGORIES]
        conn.executemany("INSERT INTO categories (name, type) VALUES (?, ?)", rows)

    async def _persist(self) -> None:
        """Serialize the whole store and write it to the durable layer."""
        data = self._conn.serialize()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_attempts),
                wait=wait_exponential(multiplier=self._retry_wait, max=10),
                reraise=True,
            ):
                with attempt:
                    await self._blob_store.write(self._store_name, data)
        except Exception as e:
            logger.error(
                "persist_failed",
                store=self._store_name,
                attempts=self._retry_attempts,
                error=str(e),
            )
            raise PersistError(f"Failed to persist store {self._store_name}: {e}") from e

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    @staticmethod
    def _format_timestamp(value: datetime) -> str:
        return value.strftime(TIMESTAMP_FORMAT)

    @staticmethod
    def _row_to_transaction(row: tuple) -> Transaction:
        return Transaction(
            id=row[0],
            date=datetime.strptime(row[1], TIMESTAMP_FORMAT),
            amount=Decimal(row[2]),
            category=row[3],
            description=row[4] or "",
            type=TransactionType(row[5]),
        )

    @staticmethod
    def _row_to_debt(row: tuple) -> DebtRecord:
        return DebtRecord(
            id=row[0],
            person=row[1],
            amount=Decimal(row[2]),
            date=datetime.strptime(row[3], TIMESTAMP_FORMAT),
            due_date=date.fromisoformat(row[4]),
            description=row[5] or "",
            type=DebtType(row[6]),
            status=DebtStatus(row[7]),
        )

    def _invalidate_analysis_for(
        self,
        conn: sqlite3.Connection,
        transaction: Transaction,
        reason: str,
    ) -> None:
        """Drop the cached month analysis an expense change makes stale."""
        if not (self._invalidate_on_change and transaction.is_expense):
            return
        cursor = conn.execute(
            "DELETE FROM monthly_analysis WHERE month_id = ?",
            (transaction.month_key,),
        )
        if cursor.rowcount:
            logger.info(
                "analysis_invalidated",
                month_key=transaction.month_key,
                reason=reason,
                transaction_id=transaction.id,
            )

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def list_transactions(self) -> list[Transaction]:
        conn = await self._ensure_initialized()
        try:
            rows = conn.execute(
                "SELECT id, date, amount, category, description, type "
                "FROM transactions ORDER BY date DESC, rowid DESC"
            ).fetchall()
        except sqlite3.Error as e:
            logger.warning("transactions_unreadable", error=str(e))
            return []

        transactions = []
        for row in rows:
            try:
                transactions.append(self._row_to_transaction(row))
            except (ValueError, InvalidOperation, ValidationError) as e:
                # Skip malformed rows
                logger.warning("transaction_row_skipped", row_id=row[0], error=str(e))
        return transactions

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        conn = await self._ensure_initialized()
        try:
            row = conn.execute(
                "SELECT id, date, amount, category, description, type "
                "FROM transactions WHERE id = ?",
                (transaction_id,),
            ).fetchone()
            return self._row_to_transaction(row) if row else None
        except (sqlite3.Error, ValueError, InvalidOperation, ValidationError) as e:
            logger.warning("transaction_unreadable", transaction_id=transaction_id, error=str(e))
            return None

    async def add_transaction(self, transaction: Transaction) -> None:
        conn = await self._ensure_initialized()
        try:
            with conn:
                conn.execute(
                    "INSERT INTO transactions (id, date, amount, category, description, type) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        transaction.id,
                        self._format_timestamp(transaction.date),
                        str(transaction.amount),
                        transaction.category,
                        transaction.description,
                        transaction.type.value,
                    ),
                )
                self._invalidate_analysis_for(conn, transaction, "transaction added")
        except sqlite3.IntegrityError as e:
            raise DuplicateError(f"Transaction already exists: {transaction.id}") from e
        except sqlite3.Error as e:
            raise StorageError(f"Failed to add transaction: {e}") from e

        await self._persist()

    async def delete_transaction(self, transaction_id: str) -> Optional[Transaction]:
        existing = await self.get_transaction(transaction_id)
        if existing is None:
            return None

        conn = self._conn
        try:
            with conn:
                conn.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))
                self._invalidate_analysis_for(conn, existing, "transaction deleted")
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete transaction: {e}") from e

        await self._persist()
        return existing

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def list_categories(self) -> CategoryState:
        conn = await self._ensure_initialized()
        categories = CategoryState()
        try:
            rows = conn.execute("SELECT name, type FROM categories ORDER BY id").fetchall()
        except sqlite3.Error as e:
            logger.warning("categories_unreadable", error=str(e))
            rows = []

        for name, category_type in rows:
            if category_type == TransactionType.INCOME.value:
                categories.income.append(name)
            elif category_type == TransactionType.EXPENSE.value:
                categories.expense.append(name)

        # Safety net only; seeding normally fills both partitions
        if not categories.income:
            categories.income = list(DEFAULT_INCOME_CATEGORIES)
        if not categories.expense:
            categories.expense = list(DEFAULT_EXPENSE_CATEGORIES)
        return categories

    async def add_category(self, category_type: TransactionType, name: str) -> bool:
        conn = await self._ensure_initialized()
        name = (name or "").strip()
        if not name:
            logger.warning("category_name_empty", type=category_type.value)
            return False

        try:
            with conn:
                exists = conn.execute(
                    "SELECT 1 FROM categories WHERE name = ? AND type = ?",
                    (name, category_type.value),
                ).fetchone()
                if exists:
                    return False
                conn.execute(
                    "INSERT INTO categories (name, type) VALUES (?, ?)",
                    (name, category_type.value),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to add category: {e}") from e

        await self._persist()
        return True

    # -------------------------------------------------------------------------
    # Analysis cache
    # -------------------------------------------------------------------------

    async def get_monthly_analysis(self, month_key: str) -> Optional[NeedsWantsSummary]:
        if not is_valid_month_key(month_key):
            logger.warning("month_key_invalid", month_key=month_key)
            return None

        conn = await self._ensure_initialized()
        try:
            row = conn.execute(
                "SELECT data FROM monthly_analysis WHERE month_id = ?",
                (month_key,),
            ).fetchone()
            if row is None:
                return None
            return NeedsWantsSummary.model_validate_json(row[0])
        except (sqlite3.Error, ValidationError, ValueError) as e:
            # Best-effort cache: corruption is a miss
            logger.warning("analysis_unreadable", month_key=month_key, error=str(e))
            return None

    async def save_monthly_analysis(self, month_key: str, record: NeedsWantsSummary) -> None:
        if not is_valid_month_key(month_key):
            raise ValueError(f"Month key must be YYYY-MM, got {month_key!r}")

        conn = await self._ensure_initialized()
        try:
            with conn:
                conn.execute(
                    "INSERT OR REPLACE INTO monthly_analysis (month_id, data) VALUES (?, ?)",
                    (month_key, record.model_dump_json()),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to save analysis: {e}") from e

        await self._persist()

    async def delete_monthly_analysis(self, month_key: str) -> bool:
        conn = await self._ensure_initialized()
        try:
            with conn:
                cursor = conn.execute(
                    "DELETE FROM monthly_analysis WHERE month_id = ?",
                    (month_key,),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete analysis: {e}") from e

        if not cursor.rowcount:
            return False
        await self._persist()
        return True

    # -------------------------------------------------------------------------
    # Debts
    # -------------------------------------------------------------------------

    async def list_debts(self) -> list[DebtRecord]:
        conn = await self._ensure_initialized()
        try:
            rows = conn.execute(
                "SELECT id, person, amount, date, due_date, description, type, status "
                "FROM debts ORDER BY date DESC, rowid DESC"
            ).fetchall()
        except sqlite3.Error as e:
            logger.warning("debts_unreadable", error=str(e))
            return []

        debts = []
        for row in rows:
            try:
                debts.append(self._row_to_debt(row))
            except (ValueError, InvalidOperation, ValidationError) as e:
                logger.warning("debt_row_skipped", row_id=row[0], error=str(e))
        return debts

    async def add_debt(self, debt: DebtRecord) -> None:
        conn = await self._ensure_initialized()
        try:
            with conn:
                conn.execute(
                    "INSERT INTO debts "
                    "(id, person, amount, date, due_date, description, type, status) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        debt.id,
                        debt.person,
                        str(debt.amount),
                        self._format_timestamp(debt.date),
                        debt.due_date.isoformat(),
                        debt.description,
                        debt.type.value,
                        debt.status.value,
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateError(f"Debt already exists: {debt.id}") from e
        except sqlite3.Error as e:
            raise StorageError(f"Failed to add debt: {e}") from e

        await self._persist()

    async def mark_debt_paid(self, debt_id: str) -> Optional[DebtRecord]:
        conn = await self._ensure_initialized()
        try:
            row = conn.execute(
                "SELECT id, person, amount, date, due_date, description, type, status "
                "FROM debts WHERE id = ?",
                (debt_id,),
            ).fetchone()
            if row is None:
                return None
            debt = self._row_to_debt(row)
            if debt.is_paid:
                return None
            with conn:
                conn.execute(
                    "UPDATE debts SET status = ? WHERE id = ? AND status = ?",
                    (DebtStatus.PAID.value, debt_id, DebtStatus.UNPAID.value),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to update debt: {e}") from e

        await self._persist()
        return debt.model_copy(update={"status": DebtStatus.PAID})

    async def delete_debt(self, debt_id: str) -> bool:
        conn = await self._ensure_initialized()
        try:
            with conn:
                cursor = conn.execute("DELETE FROM debts WHERE id = ?", (debt_id,))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete debt: {e}") from e

        if not cursor.rowcount:
            return False
        await self._persist()
        return True

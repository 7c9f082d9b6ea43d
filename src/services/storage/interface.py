"""
Abstract Storage Interface

DESIGN DECISION: We define abstract interfaces for storage operations.
This allows us to:
1. Swap the serialized SQLite store for something incremental later
2. Use in-memory blobs for testing
3. Keep the chat orchestrator decoupled from storage implementation

Two layers:
- FinanceStorageInterface: what collaborators call (CRUD on the domain)
- DurableBlobStore: the narrow persist interface underneath it
  (one opaque byte blob per fixed key)
"""

from abc import ABC, abstractmethod
from typing import Optional

from src.models.finance import (
    CategoryState,
    DebtRecord,
    NeedsWantsSummary,
    Transaction,
    TransactionType,
)


class DurableBlobStore(ABC):
    """
    Durable key-value layer holding whole serialized images.

    Writes replace the full value for a key. There is no partial update.
    """

    @abstractmethod
    async def read(self, key: str) -> Optional[bytes]:
        """
        Read the blob stored under ``key``.

        Returns:
            The bytes, or None if nothing was ever written

        Raises:
            StorageError: If the layer cannot be reached
        """
        pass

    @abstractmethod
    async def write(self, key: str, data: bytes) -> None:
        """Replace the blob stored under ``key``."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the blob. No-op if absent."""
        pass


class FinanceStorageInterface(ABC):
    """
    Abstract interface for the finance store.

    Every mutating method updates the in-memory state first and then
    awaits a full persist of the store before returning.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """
        Load the durable image, or create the schema and seed default
        categories when there is none. Idempotent.

        Raises:
            StorageInitError: If the engine or durable layer is unusable
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the in-memory store."""
        pass

    # --- Transactions ---

    @abstractmethod
    async def list_transactions(self) -> list[Transaction]:
        """
        All transactions, newest first.

        Returns an empty list (never raises) when the table is missing,
        empty or unreadable.
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def add_transaction(self, transaction: Transaction) -> None:
        """
        Insert a transaction. No amount or category validation here.

        Raises:
            PersistError: If the durable write fails after retries
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """
        Remove a transaction by id.

        Returns:
            The removed transaction, or None if the id was absent (no-op)
        """
        pass

    # --- Categories ---

    @abstractmethod
    async def list_categories(self) -> CategoryState:
        """
        Categories by type. An empty partition falls back to the
        built-in defaults for that partition only.
        """
        pass

    @abstractmethod
    async def add_category(self, category_type: TransactionType, name: str) -> bool:
        """
        Add a category unless (name, type) already exists.

        Returns:
            True if inserted, False for a duplicate (silent no-op)
        """
        pass

    # --- Analysis cache ---

    @abstractmethod
    async def get_monthly_analysis(self, month_key: str) -> Optional[NeedsWantsSummary]:
        """
        Cached analysis for a month, or None.

        Never raises: a corrupt record is treated as a cache miss.
        """
        pass

    @abstractmethod
    async def save_monthly_analysis(self, month_key: str, record: NeedsWantsSummary) -> None:
        """Upsert: replaces any record stored for the key."""
        pass

    @abstractmethod
    async def delete_monthly_analysis(self, month_key: str) -> bool:
        """
        Remove the cached record for a month.

        Returns:
            True if a record existed
        """
        pass

    # --- Debts ---

    @abstractmethod
    async def list_debts(self) -> list[DebtRecord]:
        pass

    @abstractmethod
    async def add_debt(self, debt: DebtRecord) -> None:
        pass

    @abstractmethod
    async def mark_debt_paid(self, debt_id: str) -> Optional[DebtRecord]:
        """
        Transition a debt from UNPAID to PAID.

        Returns:
            The updated record, or None if absent or already PAID
        """
        pass

    @abstractmethod
    async def delete_debt(self, debt_id: str) -> bool:
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageInitError(StorageError):
    """The store could not be created or loaded. Fatal for dependent features."""
    pass


class PersistError(StorageError):
    """The durable image could not be written after all retries."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert an entity whose id already exists."""
    pass

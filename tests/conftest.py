"""Shared fixtures. Every test gets a fresh in-memory store."""

from datetime import datetime
from decimal import Decimal

import pytest

from src.models.finance import Transaction, TransactionType
from src.services.storage import MemoryBlobStore, SQLiteFinanceStorage
from tests.fakes import FakeChatSession, FakeJsonClient


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def storage(blob_store):
    """Not initialized yet; the first operation initializes it."""
    return SQLiteFinanceStorage(
        blob_store,
        store_name="test_store.db",
        retry_attempts=1,
        retry_wait_seconds=0,
        invalidate_analysis_on_change=True,
    )


@pytest.fixture
def json_client():
    return FakeJsonClient()


@pytest.fixture
def chat_session():
    return FakeChatSession()


@pytest.fixture
def make_transaction():
    """Factory for transactions with sensible defaults."""

    def _make(
        amount="15000",
        category="Makanan",
        transaction_type=TransactionType.EXPENSE,
        when=datetime(2024, 3, 5, 12, 0),
        description="",
    ) -> Transaction:
        return Transaction(
            type=transaction_type,
            amount=Decimal(amount),
            category=category,
            date=when,
            description=description,
        )

    return _make

"""Tests for the serialized SQLite finance store."""

import pytest
from datetime import datetime
from decimal import Decimal

from src.models.finance import (
    DEFAULT_EXPENSE_CATEGORIES,
    DEFAULT_INCOME_CATEGORIES,
    DebtRecord,
    DebtStatus,
    DebtType,
    NeedsWantsSummary,
    TransactionType,
    TransactionVerdict,
    Verdict,
)
from src.services.storage import (
    DuplicateError,
    FileBlobStore,
    MemoryBlobStore,
    PersistError,
    SQLiteFinanceStorage,
    StorageInitError,
)
from tests.fakes import FlakyBlobStore


def _summary(insight: str, needs: str = "0") -> NeedsWantsSummary:
    return NeedsWantsSummary(
        needs_total=Decimal(needs),
        wants_total=Decimal("0"),
        needs_percentage=100 if needs != "0" else 0,
        insight=insight,
        breakdown=[TransactionVerdict(transaction_id="t-1", verdict=Verdict.NEED)],
    )


class TestLifecycle:
    """Initialization, seeding and reload."""

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, storage, blob_store):
        await storage.initialize()
        writes = blob_store.write_count
        await storage.initialize()
        assert storage.is_initialized
        assert blob_store.write_count == writes

    @pytest.mark.asyncio
    async def test_new_store_is_seeded_and_persisted(self, storage, blob_store):
        await storage.initialize()
        assert storage.loaded_existing is False
        assert blob_store.write_count == 1
        assert await blob_store.read("test_store.db")

    @pytest.mark.asyncio
    async def test_fresh_store_lists_default_categories(self, storage):
        """Seed nothing, list categories: exactly the built-in set."""
        categories = await storage.list_categories()
        assert sorted(categories.income) == sorted(DEFAULT_INCOME_CATEGORIES)
        assert sorted(categories.expense) == sorted(DEFAULT_EXPENSE_CATEGORIES)

    @pytest.mark.asyncio
    async def test_reload_from_durable_image(self, storage, blob_store, make_transaction):
        t = make_transaction()
        await storage.add_transaction(t)
        await storage.add_category(TransactionType.INCOME, "Beasiswa")
        await storage.close()

        reopened = SQLiteFinanceStorage(blob_store, store_name="test_store.db")
        await reopened.initialize()
        assert reopened.loaded_existing is True
        assert await reopened.list_transactions() == [t]
        assert "Beasiswa" in (await reopened.list_categories()).income

    @pytest.mark.asyncio
    async def test_file_blob_store_round_trip(self, tmp_path, make_transaction):
        t = make_transaction()
        first = SQLiteFinanceStorage(FileBlobStore(tmp_path), store_name="saku.db")
        await first.add_transaction(t)
        await first.close()

        second = SQLiteFinanceStorage(FileBlobStore(tmp_path), store_name="saku.db")
        assert await second.list_transactions() == [t]
        assert (tmp_path / "saku.db").exists()

    @pytest.mark.asyncio
    async def test_unreachable_blob_store_is_init_error(self):
        storage = SQLiteFinanceStorage(FlakyBlobStore(fail_reads=True), store_name="x.db")
        with pytest.raises(StorageInitError):
            await storage.initialize()

    @pytest.mark.asyncio
    async def test_corrupt_image_is_init_error(self):
        blob_store = MemoryBlobStore({"x.db": b"this is not a database" * 100})
        storage = SQLiteFinanceStorage(blob_store, store_name="x.db")
        with pytest.raises(StorageInitError):
            await storage.initialize()

    @pytest.mark.asyncio
    async def test_first_persist_failure_is_init_error(self):
        storage = SQLiteFinanceStorage(
            FlakyBlobStore(failures=5),
            store_name="x.db",
            retry_attempts=2,
            retry_wait_seconds=0,
        )
        with pytest.raises(StorageInitError):
            await storage.initialize()
        assert storage.is_initialized is False


class TestTransactions:
    """Transaction CRUD and ordering."""

    @pytest.mark.asyncio
    async def test_add_then_delete_scenario(self, storage):
        """Add an expense, see it first; delete it, see an empty list."""
        from src.models.finance import Transaction

        t = Transaction(
            type=TransactionType.EXPENSE,
            amount=15000,
            category="Makanan",
            date="2024-03-05",
        )
        await storage.add_transaction(t)

        listed = await storage.list_transactions()
        assert listed[0].id == t.id
        assert listed[0].amount == Decimal("15000")

        await storage.delete_transaction(t.id)
        assert await storage.list_transactions() == []

    @pytest.mark.asyncio
    async def test_round_trip_is_field_for_field(self, storage, make_transaction):
        t = make_transaction(
            amount="12500.75",
            description="Nasi goreng + es teh",
            when=datetime(2024, 3, 5, 13, 45, 10, 123456),
        )
        await storage.add_transaction(t)
        listed = await storage.list_transactions()
        assert listed.count(t) == 1
        assert listed[0].model_dump() == t.model_dump()

    @pytest.mark.asyncio
    async def test_ordered_by_date_descending(self, storage, make_transaction):
        old = make_transaction(when=datetime(2024, 1, 1))
        new = make_transaction(when=datetime(2024, 3, 1))
        mid = make_transaction(when=datetime(2024, 2, 1))
        for t in (old, new, mid):
            await storage.add_transaction(t)
        assert [t.id for t in await storage.list_transactions()] == [new.id, mid.id, old.id]

    @pytest.mark.asyncio
    async def test_same_date_newest_insertion_first(self, storage, make_transaction):
        when = datetime(2024, 3, 5, 12, 0)
        first = make_transaction(when=when)
        second = make_transaction(when=when)
        await storage.add_transaction(first)
        await storage.add_transaction(second)
        assert [t.id for t in await storage.list_transactions()] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_every_mutation_persists(self, storage, blob_store, make_transaction):
        await storage.initialize()
        before = blob_store.write_count
        t = make_transaction()
        await storage.add_transaction(t)
        await storage.delete_transaction(t.id)
        assert blob_store.write_count == before + 2

    @pytest.mark.asyncio
    async def test_delete_missing_id_is_noop(self, storage, blob_store):
        await storage.initialize()
        before = blob_store.write_count
        assert await storage.delete_transaction("missing") is None
        assert blob_store.write_count == before

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, storage, make_transaction):
        t = make_transaction()
        await storage.add_transaction(t)
        with pytest.raises(DuplicateError):
            await storage.add_transaction(t)

    @pytest.mark.asyncio
    async def test_unknown_category_is_stored(self, storage, make_transaction):
        t = make_transaction(category="Kategori Baru")
        await storage.add_transaction(t)
        assert (await storage.get_transaction(t.id)).category == "Kategori Baru"


class TestPersistFailures:
    """Durable write failures are retried, then raised."""

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, make_transaction):
        blob_store = FlakyBlobStore()
        storage = SQLiteFinanceStorage(
            blob_store, store_name="x.db", retry_attempts=3, retry_wait_seconds=0
        )
        await storage.initialize()
        blob_store.failures = 2
        attempts_before = blob_store.write_attempts

        await storage.add_transaction(make_transaction())
        assert blob_store.write_attempts == attempts_before + 3

    @pytest.mark.asyncio
    async def test_persistent_failure_raises_and_keeps_memory(self, make_transaction):
        blob_store = FlakyBlobStore()
        storage = SQLiteFinanceStorage(
            blob_store, store_name="x.db", retry_attempts=2, retry_wait_seconds=0
        )
        await storage.initialize()
        blob_store.failures = 10

        t = make_transaction()
        with pytest.raises(PersistError):
            await storage.add_transaction(t)
        assert await storage.list_transactions() == [t]


class TestCategories:
    """Category uniqueness."""

    @pytest.mark.asyncio
    async def test_add_category_twice_keeps_one(self, storage):
        assert await storage.add_category(TransactionType.EXPENSE, "Kos") is True
        assert await storage.add_category(TransactionType.EXPENSE, "Kos") is False
        assert (await storage.list_categories()).expense.count("Kos") == 1

    @pytest.mark.asyncio
    async def test_same_name_allowed_in_other_partition(self, storage):
        assert await storage.add_category(TransactionType.INCOME, "Makanan") is True
        categories = await storage.list_categories()
        assert "Makanan" in categories.income
        assert categories.expense.count("Makanan") == 1

    @pytest.mark.asyncio
    async def test_blank_name_is_ignored(self, storage):
        assert await storage.add_category(TransactionType.EXPENSE, "   ") is False


class TestMonthlyAnalysis:
    """Analysis cache records."""

    @pytest.mark.asyncio
    async def test_missing_month_is_none(self, storage):
        assert await storage.get_monthly_analysis("2024-03") is None

    @pytest.mark.asyncio
    async def test_save_replaces_not_merges(self, storage):
        a = _summary("pertama", needs="100")
        b = NeedsWantsSummary(insight="kedua")
        await storage.save_monthly_analysis("2024-03", a)
        await storage.save_monthly_analysis("2024-03", b)
        assert await storage.get_monthly_analysis("2024-03") == b

    @pytest.mark.asyncio
    async def test_invalid_key_on_save_raises(self, storage):
        with pytest.raises(ValueError):
            await storage.save_monthly_analysis("March", _summary("x"))

    @pytest.mark.asyncio
    async def test_corrupt_record_reads_as_miss(self, storage):
        await storage.initialize()
        with storage._conn:
            storage._conn.execute(
                "INSERT INTO monthly_analysis (month_id, data) VALUES (?, ?)",
                ("2024-03", "{not json"),
            )
        assert await storage.get_monthly_analysis("2024-03") is None

    @pytest.mark.asyncio
    async def test_delete_monthly_analysis(self, storage):
        await storage.save_monthly_analysis("2024-03", _summary("x"))
        assert await storage.delete_monthly_analysis("2024-03") is True
        assert await storage.delete_monthly_analysis("2024-03") is False
        assert await storage.get_monthly_analysis("2024-03") is None

    @pytest.mark.asyncio
    async def test_expense_change_invalidates_month(self, storage, make_transaction):
        await storage.save_monthly_analysis("2024-03", _summary("x"))
        await storage.save_monthly_analysis("2024-04", _summary("y"))

        t = make_transaction(when=datetime(2024, 3, 10))
        await storage.add_transaction(t)
        assert await storage.get_monthly_analysis("2024-03") is None
        assert await storage.get_monthly_analysis("2024-04") is not None

    @pytest.mark.asyncio
    async def test_income_change_keeps_analysis(self, storage, make_transaction):
        await storage.save_monthly_analysis("2024-03", _summary("x"))
        await storage.add_transaction(
            make_transaction(category="Uang Saku", transaction_type=TransactionType.INCOME)
        )
        assert await storage.get_monthly_analysis("2024-03") is not None

    @pytest.mark.asyncio
    async def test_invalidation_can_be_disabled(self, blob_store, make_transaction):
        storage = SQLiteFinanceStorage(
            blob_store, store_name="x.db", invalidate_analysis_on_change=False
        )
        await storage.save_monthly_analysis("2024-03", _summary("x"))
        await storage.add_transaction(make_transaction())
        assert await storage.get_monthly_analysis("2024-03") is not None


class TestDebts:
    """Debt records."""

    @pytest.mark.asyncio
    async def test_add_and_list_debts(self, storage):
        debt = DebtRecord(person="Budi", amount=Decimal("50000"), type=DebtType.PAYABLE)
        await storage.add_debt(debt)
        assert await storage.list_debts() == [debt]

    @pytest.mark.asyncio
    async def test_mark_paid_once(self, storage):
        debt = DebtRecord(person="Siti", amount=Decimal("20000"), type=DebtType.RECEIVABLE)
        await storage.add_debt(debt)

        paid = await storage.mark_debt_paid(debt.id)
        assert paid.status == DebtStatus.PAID
        assert (await storage.list_debts())[0].status == DebtStatus.PAID
        assert await storage.mark_debt_paid(debt.id) is None
        assert await storage.mark_debt_paid("missing") is None

    @pytest.mark.asyncio
    async def test_delete_debt(self, storage):
        debt = DebtRecord(person="Budi", amount=Decimal("1000"), type=DebtType.PAYABLE)
        await storage.add_debt(debt)
        assert await storage.delete_debt(debt.id) is True
        assert await storage.delete_debt(debt.id) is False
        assert await storage.list_debts() == []

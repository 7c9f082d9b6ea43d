"""Tests for the deterministic budget metrics."""

import pytest
from datetime import datetime
from decimal import Decimal

from src.models.finance import TransactionType
from src.models.metrics import HealthComponent
from src.queries import (
    MetricsError,
    classify_health_component,
    filter_month,
    financial_health,
    monthly_summary,
    monthly_trends,
)


INCOME = TransactionType.INCOME


@pytest.fixture
def march_and_february(make_transaction):
    return [
        make_transaction(amount="100000", category="Uang Saku", transaction_type=INCOME),
        make_transaction(amount="15000", category="Makanan"),
        make_transaction(amount="5000", category="Transportasi"),
        make_transaction(amount="7000", category="Makanan"),
        make_transaction(amount="40000", category="Makanan", when=datetime(2024, 2, 28, 9, 0)),
    ]


class TestMonthlySummary:

    def test_totals(self, march_and_february):
        summary = monthly_summary(march_and_february, "2024-03")
        assert summary.total_income == Decimal("100000")
        assert summary.total_expense == Decimal("27000")
        assert summary.balance == Decimal("73000")
        assert summary.transaction_count == 4
        assert summary.expense_by_category == {
            "Makanan": Decimal("22000"),
            "Transportasi": Decimal("5000"),
        }
        assert summary.income_by_category == {"Uang Saku": Decimal("100000")}

    def test_empty_month(self, march_and_february):
        summary = monthly_summary(march_and_february, "2023-12")
        assert summary.total_income == 0
        assert summary.balance == 0
        assert summary.transaction_count == 0

    def test_filter_month_keeps_order(self, march_and_february):
        february = filter_month(march_and_february, "2024-02")
        assert [t.amount for t in february] == [Decimal("40000")]

    @pytest.mark.parametrize("key", ["2024-3", "March", "2024-13"])
    def test_invalid_month_key(self, march_and_february, key):
        with pytest.raises(MetricsError):
            monthly_summary(march_and_february, key)


class TestMonthlyTrends:

    def test_only_months_with_data_oldest_first(self, make_transaction):
        transactions = [
            make_transaction(amount="10", when=datetime(2024, 4, 1)),
            make_transaction(amount="20", when=datetime(2024, 1, 15)),
            make_transaction(amount="5", transaction_type=INCOME, category="Hadiah",
                             when=datetime(2024, 4, 2)),
            make_transaction(amount="30", when=datetime(2024, 3, 10)),
        ]
        points = monthly_trends(transactions, months=6)
        assert [p.month_key for p in points] == ["2024-01", "2024-03", "2024-04"]
        assert points[-1].expense == Decimal("10")
        assert points[-1].income == Decimal("5")

    def test_keeps_most_recent_months(self, make_transaction):
        transactions = [
            make_transaction(when=datetime(2024, month, 1)) for month in range(1, 9)
        ]
        points = monthly_trends(transactions, months=3)
        assert [p.month_key for p in points] == ["2024-06", "2024-07", "2024-08"]

    def test_no_transactions(self):
        assert monthly_trends([], months=6) == []

    def test_rejects_zero_months(self):
        with pytest.raises(MetricsError):
            monthly_trends([], months=0)


class TestFinancialHealth:
    """C-S-I-Z split against income."""

    @pytest.mark.parametrize(
        "category, component",
        [
            ("Zakat/Infaq/Sedekah", HealthComponent.ZIS),
            ("Infaq Masjid", HealthComponent.ZIS),
            ("Investasi", HealthComponent.INVESTMENT),
            ("Emas Antam", HealthComponent.INVESTMENT),
            ("Tabungan", HealthComponent.SAVING),
            ("Dana Darurat", HealthComponent.SAVING),
            ("Makanan", HealthComponent.CONSUMPTION),
            ("Lainnya", HealthComponent.CONSUMPTION),
        ],
    )
    def test_classify_component(self, category, component):
        assert classify_health_component(category) == component

    def test_statuses(self, make_transaction):
        transactions = [
            make_transaction(amount="1000000", category="Uang Saku", transaction_type=INCOME),
            make_transaction(amount="600000", category="Makanan"),
            make_transaction(amount="100000", category="Tabungan"),
            make_transaction(amount="50000", category="Investasi"),
            make_transaction(amount="50000", category="Zakat/Infaq/Sedekah"),
        ]
        health = financial_health(transactions)

        consumption = health.get(HealthComponent.CONSUMPTION)
        assert consumption.percentage == 60.0
        assert consumption.status == "Sehat"
        assert health.get(HealthComponent.SAVING).status == "Bagus"
        assert health.get(HealthComponent.INVESTMENT).status == "Perlu Ditingkatkan"
        assert health.get(HealthComponent.ZIS).status == "Mulia"
        assert health.on_target_count == 3

    def test_overspending(self, make_transaction):
        transactions = [
            make_transaction(amount="100000", category="Uang Saku", transaction_type=INCOME),
            make_transaction(amount="90000", category="Hiburan"),
        ]
        health = financial_health(transactions)
        assert health.get(HealthComponent.CONSUMPTION).status == "Boros"
        assert health.get(HealthComponent.SAVING).status == "Kurang"
        assert health.get(HealthComponent.ZIS).status == "Jangan Lupa"

    def test_no_income_stays_finite(self, make_transaction):
        health = financial_health([make_transaction(amount="50", category="Makanan")])
        assert health.total_income == 0
        assert health.get(HealthComponent.CONSUMPTION).percentage == 5000.0
        assert health.get(HealthComponent.SAVING).percentage == 0.0

    def test_empty(self):
        health = financial_health([])
        assert len(health.metrics) == 4
        assert health.get(HealthComponent.CONSUMPTION).status == "Sehat"

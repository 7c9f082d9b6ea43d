"""Tests for tool-call validation."""

import pytest
from datetime import date
from decimal import Decimal

from src.models.chat import ToolRequest
from src.validation import (
    MAX_DESCRIPTION_LENGTH,
    ToolCallValidator,
    parse_amount,
    parse_tool_date,
)


TODAY = date(2024, 3, 5)


def request(**overrides) -> ToolRequest:
    args = {
        "type": "EXPENSE",
        "amount": 15000,
        "category": "Makanan",
        "description": "Bakso",
        "date": "2024-03-05",
    }
    args.update(overrides)
    return ToolRequest(name="addTransaction", args={k: v for k, v in args.items() if v is not None})


@pytest.fixture
def validator():
    return ToolCallValidator(today=TODAY)


class TestParseAmount:

    @pytest.mark.parametrize(
        "value, expected",
        [
            (15000, Decimal("15000")),
            (15000.0, Decimal("15000")),
            ("15000", Decimal("15000")),
            ("15.000", Decimal("15000")),
            ("Rp 1.250.000", Decimal("1250000")),
            ("15,000", Decimal("15000")),
            ("Rp 15,000", Decimal("15000")),
            ("1,250,000", Decimal("1250000")),
            ("12,5", Decimal("12.5")),
            ("2.5", Decimal("2.5")),
        ],
    )
    def test_accepted(self, value, expected):
        assert parse_amount(value) == expected

    @pytest.mark.parametrize(
        "value",
        [None, True, "", "banyak", "NaN", "Infinity", [1], "1.250,50", "1,250.50", "1,25,000"],
    )
    def test_rejected(self, value):
        with pytest.raises(ValueError):
            parse_amount(value)


class TestParseToolDate:

    def test_blank_is_none(self):
        assert parse_tool_date(None) is None
        assert parse_tool_date("  ") is None

    def test_iso_date(self):
        assert parse_tool_date("2024-03-05") == date(2024, 3, 5)

    @pytest.mark.parametrize("value", ["05/03/2024", "kemarin", "2024-02-30", "2024-3-5"])
    def test_rejected(self, value):
        with pytest.raises(ValueError):
            parse_tool_date(value)


class TestSchemaStage:

    def test_valid_call(self, validator):
        result = validator.validate(request())
        assert result.is_valid
        assert result.schema_valid
        assert result.semantic_valid
        assert result.issues == []

    def test_unknown_tool(self, validator):
        result = validator.validate(ToolRequest(name="deleteEverything", args={}))
        assert not result.is_valid
        assert result.issues[0].issue_type == "unknown_tool"

    @pytest.mark.parametrize("field", ["type", "amount", "category"])
    def test_missing_required(self, validator, field):
        args = dict(request().args)
        del args[field]
        result = validator.validate(ToolRequest(name="addTransaction", args=args))
        assert not result.schema_valid
        assert not result.semantic_valid
        assert any(i.field == field and i.issue_type == "missing" for i in result.issues)

    def test_blank_category_is_missing(self, validator):
        result = validator.validate(request(category="   "))
        assert not result.is_valid

    def test_bad_type(self, validator):
        result = validator.validate(request(type="TRANSFER"))
        assert not result.is_valid
        assert result.issues[0].field == "type"

    def test_lowercase_type_accepted(self, validator):
        assert validator.validate(request(type="income")).is_valid

    def test_bad_amount(self, validator):
        result = validator.validate(request(amount="lima ribu"))
        assert not result.is_valid
        assert result.issues[0].field == "amount"

    def test_category_must_be_text(self, validator):
        assert not validator.validate(request(category=12)).is_valid

    def test_bad_date(self, validator):
        result = validator.validate(request(date="5 Maret"))
        assert not result.is_valid
        assert result.issues[0].suggested_fix

    def test_missing_date_is_fine(self, validator):
        assert validator.validate(request(date=None)).is_valid


class TestSemanticStage:

    def test_negative_amount_rejected(self, validator):
        result = validator.validate(request(amount=-5000))
        assert result.schema_valid
        assert not result.semantic_valid
        assert not result.is_valid

    def test_zero_amount_warns(self, validator):
        result = validator.validate(request(amount=0))
        assert result.is_valid
        assert result.warnings == ["Amount is zero"]

    def test_large_amount_warns(self, validator):
        result = validator.validate(request(amount=250000000))
        assert result.is_valid
        assert len(result.warnings) == 1

    def test_future_date_warns(self, validator):
        result = validator.validate(request(date="2024-03-20"))
        assert result.is_valid
        assert result.issues[0].issue_type == "future_date"

    def test_tomorrow_is_not_future(self, validator):
        result = validator.validate(request(date="2024-03-06"))
        assert result.issues == []

    def test_description_too_long(self, validator):
        result = validator.validate(request(description="x" * (MAX_DESCRIPTION_LENGTH + 1)))
        assert not result.is_valid
        assert result.issues[0].issue_type == "too_long"

    def test_comma_grouped_amount_keeps_its_value(self, validator):
        result = validator.validate(request(amount="Rp 15,000"))
        assert result.is_valid
        assert result.warnings == []

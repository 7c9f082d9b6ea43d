"""
Two-Stage Validation of Tool Calls

The chat model can ask us to run addTransaction with arguments it made
up. Nothing is written until those arguments pass both stages.

STAGE 1 - SCHEMA VALIDATION:
- Known tool name
- Required fields present (type, amount, category)
- Types and formats (number, YYYY-MM-DD)

STAGE 2 - SEMANTIC VALIDATION:
- Negative amounts
- Absurdly large amounts
- Dates in the future
- Overlong descriptions

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; the orchestrator rejects the call on any error.
"""

import re
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from src.agents.model_client import ADD_TRANSACTION_TOOL, ADD_TRANSACTION_TOOL_NAME
from src.models.chat import ToolRequest
from src.models.finance import TransactionType
from src.models.validation import ValidationIssue, ValidationResult


# "15.000" or "1.250.000" in Indonesian notation
_THOUSANDS_DOTS = re.compile(r"^\d{1,3}(\.\d{3})+$")
# "15,000" or "1,250,000" in English notation
_THOUSANDS_COMMAS = re.compile(r"^\d{1,3}(,\d{3})+$")

MAX_DESCRIPTION_LENGTH = 500
SUSPICIOUS_AMOUNT = Decimal("100000000")


def parse_amount(value: Any) -> Decimal:
    """
    Coerce a tool argument into a Decimal amount.

    Accepts numbers and numeric strings, with an optional "Rp" prefix
    and thousands grouped by dots ("15.000") or commas ("15,000").
    Otherwise a comma is a decimal comma ("12,5"). Mixed separators
    are rejected. Raises ValueError for anything else.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Not a number: {value!r}")

    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("rp"):
            text = text[2:].strip()
        text = text.replace(" ", "")
        if _THOUSANDS_DOTS.match(text):
            text = text.replace(".", "")
        elif _THOUSANDS_COMMAS.match(text):
            text = text.replace(",", "")
        elif "," in text and "." in text:
            raise ValueError(f"Ambiguous number format: {value!r}")
        else:
            # "12,5" uses a decimal comma
            text = text.replace(",", ".")
    else:
        text = str(value)

    try:
        amount = Decimal(text)
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Not a number: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Not a number: {value!r}")

    # 15000.0 from a JSON float is just 15000
    if amount == amount.to_integral_value():
        amount = amount.quantize(Decimal("1"))
    return amount


def parse_tool_date(value: Any) -> Optional[date]:
    """YYYY-MM-DD -> date; None/blank -> None; anything else raises ValueError."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if not re.fullmatch(r"\d{4}-\d{2}-\d{2}", text):
        raise ValueError(f"Date must be YYYY-MM-DD: {value!r}")
    return date.fromisoformat(text)


class ToolCallValidator:
    """
    Validates model-requested tool calls before execution.

    Stage 1: Schema validation
    Stage 2: Semantic validation (only if stage 1 passes)
    """

    def __init__(self, today: Optional[date] = None):
        self._today = today

    @property
    def today(self) -> date:
        return self._today or date.today()

    def _validate_schema(
        self,
        request: ToolRequest,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if request.name != ADD_TRANSACTION_TOOL_NAME:
            issues.append(ValidationIssue(
                field="name",
                issue_type="unknown_tool",
                message=f"Unknown tool: {request.name}",
                severity="error",
            ))
            return False, issues

        args = request.args
        for field in ADD_TRANSACTION_TOOL["required"]:
            value = args.get(field)
            if value is None or (isinstance(value, str) and not value.strip()):
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="missing",
                    message=f"Required argument '{field}' is missing",
                    severity="error",
                ))

        raw_type = args.get("type")
        if raw_type is not None:
            try:
                TransactionType(str(raw_type).strip().upper())
            except ValueError:
                issues.append(ValidationIssue(
                    field="type",
                    issue_type="invalid_value",
                    message=f"Type must be INCOME or EXPENSE, got {raw_type!r}",
                    severity="error",
                ))

        if args.get("amount") is not None:
            try:
                parse_amount(args["amount"])
            except ValueError as e:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_format",
                    message=str(e),
                    severity="error",
                ))

        category = args.get("category")
        if category is not None and not isinstance(category, str):
            issues.append(ValidationIssue(
                field="category",
                issue_type="invalid_format",
                message="Category must be text",
                severity="error",
            ))

        try:
            parse_tool_date(args.get("date"))
        except ValueError as e:
            issues.append(ValidationIssue(
                field="date",
                issue_type="invalid_format",
                message=str(e),
                severity="error",
                suggested_fix="Use YYYY-MM-DD or leave the date out for today",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        request: ToolRequest,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []
        args = request.args

        amount = parse_amount(args["amount"])
        if amount < 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must not be negative",
                severity="error",
                suggested_fix="Use type EXPENSE for money going out",
            ))
        elif amount == 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message="Amount is zero",
                severity="warning",
            ))
        elif amount >= SUSPICIOUS_AMOUNT:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount {amount} is unusually large",
                severity="warning",
            ))

        tx_date = parse_tool_date(args.get("date"))
        if tx_date is not None and tx_date > self.today + timedelta(days=1):
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Date {tx_date} is in the future",
                severity="warning",
            ))

        description = args.get("description")
        if description is not None and len(str(description)) > MAX_DESCRIPTION_LENGTH:
            issues.append(ValidationIssue(
                field="description",
                issue_type="too_long",
                message=f"Description is longer than {MAX_DESCRIPTION_LENGTH} characters",
                severity="error",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate(self, request: ToolRequest) -> ValidationResult:
        """Run the two-stage pipeline on one tool call."""
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(request)
        all_issues.extend(schema_issues)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(request)
            all_issues.extend(semantic_issues)

        warnings = [i.message for i in all_issues if i.severity == "warning"]

        return ValidationResult(
            tool_name=request.name,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
        )

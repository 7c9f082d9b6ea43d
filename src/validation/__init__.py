"""Tool-call validation package."""

from src.validation.validator import (
    MAX_DESCRIPTION_LENGTH,
    SUSPICIOUS_AMOUNT,
    ToolCallValidator,
    parse_amount,
    parse_tool_date,
)

__all__ = [
    "MAX_DESCRIPTION_LENGTH",
    "SUSPICIOUS_AMOUNT",
    "ToolCallValidator",
    "parse_amount",
    "parse_tool_date",
]

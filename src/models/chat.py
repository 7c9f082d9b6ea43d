"""
Conversation Models

What flows between the chat orchestrator, the model client and the UI.
A model turn is either a TextReply or a ToolRequest, never both.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.models.finance import Transaction, TransactionType, new_id


class ChatRole(str, Enum):
    USER = "user"
    MODEL = "model"


class ChatMessage(BaseModel):
    """One line of the visible transcript."""

    id: str = Field(default_factory=new_id)
    role: ChatRole
    text: str
    timestamp: datetime = Field(default_factory=datetime.now)


class TextReply(BaseModel):
    """Model answered in plain text."""

    text: str


class ToolRequest(BaseModel):
    """Model asked the host to run a declared local action."""

    id: Optional[str] = None
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Synthetic result sent back to the model after executing a tool."""

    status: str = Field(..., pattern="^(success|error)$")
    message: str


class ChatTurnResult(BaseModel):
    """
    Outcome of one user turn, always well-formed.

    ``transaction`` is set when the turn executed addTransaction.
    ``is_fallback`` marks turns that failed and show a canned message.
    """

    reply: str
    transaction: Optional[Transaction] = None
    tool_name: Optional[str] = None
    is_fallback: bool = False


class ParsedTransaction(BaseModel):
    """Transaction fields extracted from free text, not yet saved."""

    type: TransactionType
    amount: Decimal = Field(..., ge=0)
    category: str
    date: date
    description: str = ""

    def to_transaction(self) -> Transaction:
        return Transaction(
            type=self.type,
            amount=self.amount,
            category=self.category,
            date=self.date,
            description=self.description,
        )

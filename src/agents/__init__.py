"""AI Agents package."""

from src.agents.model_client import (
    ADD_TRANSACTION_TOOL,
    ADD_TRANSACTION_TOOL_NAME,
    ChatModelSession,
    GeminiChatSession,
    GeminiJsonClient,
    JsonModelClient,
    ModelClientError,
    extract_json_object,
)
from src.agents.ai_agents import (
    FinanceAdvisorAgent,
    NeedsWantsAgent,
    PurchaseAdvisorAgent,
    TransactionParserAgent,
    build_chat_instruction,
    fallback_purchase_analysis,
    summarize_needs_wants,
)

__all__ = [
    # Model clients
    "ADD_TRANSACTION_TOOL",
    "ADD_TRANSACTION_TOOL_NAME",
    "ChatModelSession",
    "GeminiChatSession",
    "GeminiJsonClient",
    "JsonModelClient",
    "ModelClientError",
    "extract_json_object",
    # Agents
    "FinanceAdvisorAgent",
    "NeedsWantsAgent",
    "PurchaseAdvisorAgent",
    "TransactionParserAgent",
    "build_chat_instruction",
    "fallback_purchase_analysis",
    "summarize_needs_wants",
]

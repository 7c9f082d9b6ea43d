"""
Model Clients

Everything that talks to Gemini goes through here. Agents and the chat
orchestrator depend on the two abstract interfaces below, never on the
SDK directly, so they can be tested with fakes and no network.

1. JsonModelClient - stateless prompt -> JSON object / free text
2. ChatModelSession - one long-lived conversation with tool calling

Both raise ModelClientError for every failure (missing key, network,
blocked or empty response, unparsable JSON). Callers turn that into
their own fallback values.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Optional, Union

import google.generativeai as genai
import structlog

from src.config import GeminiSettings, get_settings
from src.models.chat import TextReply, ToolRequest, ToolResult


logger = structlog.get_logger(__name__)


class ModelClientError(Exception):
    """The model could not produce a usable response."""
    pass


# =============================================================================
# TOOL DECLARATION
# =============================================================================

ADD_TRANSACTION_TOOL_NAME = "addTransaction"

# Declarative form of the one tool the assistant may call
ADD_TRANSACTION_TOOL: dict[str, Any] = {
    "name": ADD_TRANSACTION_TOOL_NAME,
    "description": (
        "Catat transaksi keuangan (pemasukan atau pengeluaran) ke dalam aplikasi."
    ),
    "properties": {
        "type": {
            "type": "STRING",
            "description": (
                "Tipe transaksi: INCOME untuk pemasukan, EXPENSE untuk pengeluaran."
            ),
        },
        "amount": {
            "type": "NUMBER",
            "description": "Jumlah uang dalam Rupiah (angka saja).",
        },
        "category": {
            "type": "STRING",
            "description": (
                "Kategori transaksi. Pilih yang paling sesuai dari daftar yang tersedia."
            ),
        },
        "description": {
            "type": "STRING",
            "description": "Keterangan singkat transaksi.",
        },
        "date": {
            "type": "STRING",
            "description": (
                "Tanggal transaksi dalam format YYYY-MM-DD. "
                "Gunakan hari ini jika tidak disebutkan."
            ),
        },
    },
    "required": ["type", "amount", "category"],
}


def build_tool(declaration: dict[str, Any]) -> "genai.protos.Tool":
    """Convert a declarative tool dict into the SDK's protobuf form."""
    properties = {
        name: genai.protos.Schema(
            type=getattr(genai.protos.Type, prop["type"]),
            description=prop.get("description", ""),
        )
        for name, prop in declaration["properties"].items()
    }
    return genai.protos.Tool(
        function_declarations=[
            genai.protos.FunctionDeclaration(
                name=declaration["name"],
                description=declaration["description"],
                parameters=genai.protos.Schema(
                    type=genai.protos.Type.OBJECT,
                    properties=properties,
                    required=list(declaration["required"]),
                ),
            )
        ]
    )


# =============================================================================
# RESPONSE HELPERS
# =============================================================================

def extract_json_object(text: str) -> dict[str, Any]:
    """
    Pull the first JSON object out of a model response.

    Models sometimes wrap JSON in markdown fences or add a sentence
    around it, so we look for the outermost braces.
    """
    if not text or not text.strip():
        raise ModelClientError("Empty response from model")

    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise ModelClientError("No JSON object in model response")

    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError as e:
        raise ModelClientError(f"Invalid JSON from model: {e}") from e

    if not isinstance(data, dict):
        raise ModelClientError("Model JSON is not an object")
    return data


def _candidate_parts(response: Any) -> list[Any]:
    try:
        return list(response.parts)
    except (ValueError, AttributeError, IndexError) as e:
        # No candidates, usually a blocked prompt
        raise ModelClientError(f"Model returned no content: {e}") from e


def _parts_text(parts: list[Any]) -> str:
    return "".join(
        part.text for part in parts if getattr(part, "text", "")
    ).strip()


def _function_calls(parts: list[Any]) -> list[Any]:
    calls = []
    for part in parts:
        fc = getattr(part, "function_call", None)
        if fc is not None and getattr(fc, "name", ""):
            calls.append(fc)
    return calls


def _plain_args(args: Any) -> dict[str, Any]:
    """Proto map -> plain dict. Whole numbers come back as floats."""
    if not args:
        return {}
    return {key: value for key, value in args.items()}


# =============================================================================
# INTERFACES
# =============================================================================

class JsonModelClient(ABC):
    """Stateless single-shot model calls."""

    @abstractmethod
    async def generate_json(self, prompt: str) -> dict[str, Any]:
        """Return the model's answer parsed as a JSON object."""
        pass

    @abstractmethod
    async def generate_text(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
    ) -> str:
        """Return the model's free-text answer (never empty)."""
        pass


class ChatModelSession(ABC):
    """
    One conversation with tool calling.

    A turn yields either a TextReply or exactly one ToolRequest.
    The session stays usable after a failed call.
    """

    @abstractmethod
    async def send_turn(self, text: str) -> Union[TextReply, ToolRequest]:
        pass

    @abstractmethod
    async def send_tool_result(
        self,
        request: ToolRequest,
        result: ToolResult,
    ) -> TextReply:
        pass


# =============================================================================
# GEMINI IMPLEMENTATIONS
# =============================================================================

def _configure(settings: GeminiSettings) -> None:
    if not settings.is_configured:
        raise ModelClientError("GEMINI_API_KEY is not set")
    genai.configure(api_key=settings.api_key)


class GeminiJsonClient(JsonModelClient):
    """Stateless calls against the fast Gemini model."""

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini

    def _model(
        self,
        json_mode: bool,
        system_instruction: Optional[str] = None,
    ) -> "genai.GenerativeModel":
        _configure(self._settings)
        generation_config: dict[str, Any] = {
            "temperature": self._settings.temperature,
            "max_output_tokens": self._settings.max_tokens,
        }
        if json_mode:
            generation_config["response_mime_type"] = "application/json"
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config=generation_config,
            system_instruction=system_instruction,
        )

    async def _generate(self, model: "genai.GenerativeModel", prompt: str) -> str:
        try:
            response = await model.generate_content_async(prompt)
        except Exception as e:
            raise ModelClientError(f"Gemini request failed: {e}") from e

        text = _parts_text(_candidate_parts(response))
        if not text:
            raise ModelClientError("Empty response from model")
        return text

    async def generate_json(self, prompt: str) -> dict[str, Any]:
        text = await self._generate(self._model(json_mode=True), prompt)
        return extract_json_object(text)

    async def generate_text(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
    ) -> str:
        model = self._model(json_mode=False, system_instruction=system_instruction)
        return await self._generate(model, prompt)


class GeminiChatSession(ChatModelSession):
    """
    Conversation against the chat model with the addTransaction tool.

    The SDK chat object is created lazily on the first turn, so building
    a session without an API key is fine; the turn itself then fails.
    History grows for the lifetime of the session.
    """

    def __init__(
        self,
        system_instruction: str,
        settings: Optional[GeminiSettings] = None,
    ):
        self._settings = settings or get_settings().gemini
        self._system_instruction = system_instruction
        self._chat = None

    def _get_chat(self):
        if self._chat is None:
            _configure(self._settings)
            model = genai.GenerativeModel(
                model_name=self._settings.chat_model_name,
                tools=[build_tool(ADD_TRANSACTION_TOOL)],
                system_instruction=self._system_instruction,
                generation_config={
                    "temperature": self._settings.temperature,
                    "max_output_tokens": self._settings.max_tokens,
                },
            )
            self._chat = model.start_chat(enable_automatic_function_calling=False)
        return self._chat

    async def _send(self, content: Any) -> list[Any]:
        chat = self._get_chat()
        try:
            response = await chat.send_message_async(content)
        except Exception as e:
            raise ModelClientError(f"Gemini chat request failed: {e}") from e
        return _candidate_parts(response)

    async def send_turn(self, text: str) -> Union[TextReply, ToolRequest]:
        parts = await self._send(text)

        calls = _function_calls(parts)
        if calls:
            if len(calls) > 1:
                logger.warning(
                    "extra_tool_calls_ignored",
                    handled=calls[0].name,
                    ignored=[fc.name for fc in calls[1:]],
                )
            first = calls[0]
            return ToolRequest(
                id=getattr(first, "id", None) or None,
                name=first.name,
                args=_plain_args(first.args),
            )

        return TextReply(text=_parts_text(parts))

    async def send_tool_result(
        self,
        request: ToolRequest,
        result: ToolResult,
    ) -> TextReply:
        content = genai.protos.Content(
            role="user",
            parts=[
                genai.protos.Part(
                    function_response=genai.protos.FunctionResponse(
                        name=request.name,
                        response={"result": result.model_dump()},
                    )
                )
            ],
        )
        try:
            parts = await self._send(content)
        except ModelClientError:
            # Drop the dangling function call so the next turn is accepted
            self._rewind()
            raise
        return TextReply(text=_parts_text(parts))

    def _rewind(self) -> None:
        if self._chat is None:
            return
        try:
            self._chat.rewind()
        except (IndexError, ValueError) as e:
            logger.warning("chat_rewind_failed", error=str(e))

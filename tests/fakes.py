"""
Test doubles for the model clients and the durable blob layer.

Nothing here touches the network or the filesystem.
"""

from typing import Any, Optional, Union

from src.agents.model_client import (
    ChatModelSession,
    JsonModelClient,
    ModelClientError,
)
from src.models.chat import TextReply, ToolRequest, ToolResult
from src.services.storage import MemoryBlobStore


class FakeJsonClient(JsonModelClient):
    """Replays scripted JSON answers; raises ``error`` if given."""

    def __init__(
        self,
        responses: Optional[list[dict[str, Any]]] = None,
        text: str = "Tetap semangat menabung!",
        error: Optional[Exception] = None,
    ):
        self.responses = list(responses or [])
        self.text = text
        self.error = error
        self.prompts: list[str] = []

    async def generate_json(self, prompt: str) -> dict[str, Any]:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if not self.responses:
            raise ModelClientError("No scripted response left")
        return self.responses.pop(0)

    async def generate_text(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
    ) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.text


Scripted = Union[TextReply, ToolRequest, Exception]


class FakeChatSession(ChatModelSession):
    """
    Chat session that replays scripted model turns.

    ``turns`` answer send_turn, ``followups`` answer send_tool_result.
    An Exception in either list is raised instead of returned.
    """

    def __init__(
        self,
        turns: Optional[list[Scripted]] = None,
        followups: Optional[list[Union[TextReply, Exception]]] = None,
        instruction: str = "",
    ):
        self.turns = list(turns or [])
        self.followups = list(followups or [])
        self.instruction = instruction
        self.sent_texts: list[str] = []
        self.tool_results: list[tuple[ToolRequest, ToolResult]] = []

    async def send_turn(self, text: str) -> Union[TextReply, ToolRequest]:
        self.sent_texts.append(text)
        if not self.turns:
            raise ModelClientError("No scripted turn left")
        item = self.turns.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def send_tool_result(
        self,
        request: ToolRequest,
        result: ToolResult,
    ) -> TextReply:
        self.tool_results.append((request, result))
        if not self.followups:
            return TextReply(text="")
        item = self.followups.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FlakyBlobStore(MemoryBlobStore):
    """Memory blob store whose writes fail the first ``failures`` times."""

    def __init__(self, failures: int = 0, fail_reads: bool = False):
        super().__init__()
        self.failures = failures
        self.fail_reads = fail_reads
        self.write_attempts = 0

    async def read(self, key: str) -> Optional[bytes]:
        if self.fail_reads:
            raise OSError("storage unavailable")
        return await super().read(key)

    async def write(self, key: str, data: bytes) -> None:
        self.write_attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise OSError("disk full")
        await super().write(key, data)

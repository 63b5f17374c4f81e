"""
Chat Sessions
=============

A ``ChatSession`` threads a multi-turn conversation through the
continuation identifiers the service returns with each reply.

States:
    NEW     no completed turn, requests carry an empty ``chat`` object
    ACTIVE  at least one completed turn, requests carry the identifiers

After every completed turn the metadata is replaced wholesale by the
terminal frame's identifiers. A failed or cancelled turn leaves it as
it was.
"""

import asyncio
from dataclasses import replace
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, AsyncIterator, Sequence

from .models import Candidate, ChatSessionMetadata, Gem, ModelOutput
from .protocol.constants import Model

if TYPE_CHECKING:
    from .client import GeminiWebClient


class ChatState(Enum):
    NEW = "new"
    ACTIVE = "active"


class ChatSession:
    """
    One conversation bound to a client, a model and optionally a gem.

    Turns on the same session are serialized.
    """

    def __init__(
        self,
        client: "GeminiWebClient",
        model: Model | str = Model.UNSPECIFIED,
        gem: Gem | str | None = None,
        metadata: ChatSessionMetadata | None = None,
    ):
        self.client = client
        self.model = Model.resolve(model)
        self.gem = gem
        self.metadata = metadata or ChatSessionMetadata()
        self.last_output: ModelOutput | None = None
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return (
            f"ChatSession(cid={self.metadata.conversation_id!r}, "
            f"rid={self.metadata.response_id!r}, chosen={self.metadata.chosen_index})"
        )

    @property
    def state(self) -> ChatState:
        if self.metadata.conversation_id or self.metadata.response_id:
            return ChatState.ACTIVE
        return ChatState.NEW

    @property
    def chosen_candidate(self) -> Candidate | None:
        if self.last_output is None:
            return None
        candidates = self.last_output.candidates
        index = self.metadata.chosen_index
        return candidates[index] if 0 <= index < len(candidates) else None

    def continuation(self) -> dict[str, Any]:
        """The ``chat`` object of the next generate request."""
        chosen = self.chosen_candidate
        response_id = (
            chosen.response_id if chosen and chosen.response_id else self.metadata.response_id
        )
        fields = {
            "conversationId": self.metadata.conversation_id,
            "responseId": response_id,
        }
        return {k: v for k, v in fields.items() if v is not None}

    def _absorb(self, output: ModelOutput) -> None:
        metadata = output.metadata or {}
        self.last_output = output
        self.metadata = ChatSessionMetadata(
            conversation_id=metadata.get("conversation_id"),
            response_id=metadata.get("response_id"),
            chosen_index=0,
        )

    async def send_message(
        self, prompt: str, files: Sequence[str | Path] | None = None
    ) -> ModelOutput:
        async with self._lock:
            return await self.client.generate_content(
                prompt, files, model=self.model, gem=self.gem, chat=self
            )

    async def send_message_stream(
        self, prompt: str, files: Sequence[str | Path] | None = None
    ) -> AsyncIterator[ModelOutput]:
        """Stream the next turn; the session advances only if it completes."""
        async with self._lock:
            stream = self.client.generate_content_stream(
                prompt, files, model=self.model, gem=self.gem, chat=self
            )
            try:
                async for output in stream:
                    yield output
            finally:
                await stream.aclose()

    def choose_candidate(self, index: int) -> Candidate:
        """
        Pick which candidate of the last reply the next turn continues from.

        Raises:
            ValueError: If there is no previous reply or ``index`` is out of range
        """
        if self.last_output is None:
            raise ValueError("No previous output data found in this chat session.")
        if not 0 <= index < len(self.last_output.candidates):
            raise ValueError(
                f"Index {index} exceeds the number of candidates in last model output."
            )
        self.metadata = replace(self.metadata, chosen_index=index)
        return self.last_output.candidates[index]


__all__ = ["ChatState", "ChatSession"]

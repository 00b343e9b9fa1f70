"""
Chat Service for gpterm.

This module handles one request/response cycle at a time:
- Appending the user's message to the conversation
- Streaming the completion and printing each increment as it is decoded
- Folding deltas into the conversation
- Rolling the turn back when the request fails
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from gpterm.history.conversation import Conversation, ConversationAssembler
from gpterm.llm.exceptions import LLMError
from gpterm.llm.streaming.models import StreamingStats
from gpterm.llm.streaming.parser import StreamingParser
from gpterm.logging_utils import ContextualLogger, operation_context

if TYPE_CHECKING:                                        # pragma: no cover
    from gpterm.llm.client import LLMClient

logger = logging.getLogger(__name__)


def print_increment(text: str) -> None:
    print(text, end="", flush=True)


@dataclass
class TurnResult:
    """Outcome of one streamed turn."""
    turn_ids: list[str] = field(default_factory=list)
    text: str = ""
    completed: bool = False
    undecoded_fragment: str = ""
    stats: StreamingStats | None = None


class ChatService:
    """
    Turn-taking chat orchestrator.

    1. Takes your message
    2. Posts the whole conversation to the completion endpoint
    3. Prints the answer as it streams in
    4. Keeps the conversation in order for the next turn
    """

    def __init__(
        self,
        llm_client: LLMClient,
        conversation: Conversation | None = None,
        *,
        halt_on_decode_error: bool = False,
        output: Callable[[str], None] = print_increment,
    ):
        self.llm_client = llm_client
        self.conversation = conversation if conversation is not None else Conversation()
        self.halt_on_decode_error = halt_on_decode_error
        self.output = output
        self.assembler = ConversationAssembler()
        self._log = ContextualLogger({"model": llm_client.model})

    def reset(self) -> None:
        """Forget the whole conversation."""
        self.conversation.reset()
        self._log.info("Conversation reset")

    async def submit(self, text: str) -> TurnResult:
        """
        Send a user message and stream the answer into the conversation.

        Raises:
            TransportError: The request failed; the turn has been rolled back.
            RequestSerializeError: The request could not be encoded; nothing was sent.
        """
        checkpoint = len(self.conversation)
        self.conversation.append_user(text)

        parser = StreamingParser(halt_on_decode_error=self.halt_on_decode_error)
        result = TurnResult()
        increments: list[str] = []

        try:
            async with operation_context(
                "chat_turn", context={"messages": len(self.conversation)}
            ):
                async with aclosing(
                    self.llm_client.open_stream(self.conversation)
                ) as stream:
                    async for chunk in stream:
                        chunk_result = parser.feed(chunk)
                        for turn_id, delta in chunk_result.deltas:
                            if turn_id not in result.turn_ids:
                                result.turn_ids.append(turn_id)
                            increment = self.assembler.merge(
                                self.conversation, turn_id, delta
                            )
                            if increment:
                                self.output(increment)
                                increments.append(increment)

                        if chunk_result.done:
                            result.completed = True
                            break
        except LLMError:
            self.conversation.truncate(checkpoint)
            self.conversation.close_open_turn()
            raise

        self.conversation.close_open_turn()
        result.text = "".join(increments)
        result.undecoded_fragment = parser.finish()
        result.stats = parser.get_streaming_stats()

        if not result.completed:
            logger.info("Response stream ended without the completion marker")
        self._log.debug(
            "Turn finished",
            turn_ids=result.turn_ids,
            completed=result.completed,
            **parser.get_stats(),
        )
        return result

# gpterm/history/conversation.py
from __future__ import annotations

import logging
from collections.abc import Iterator
from enum import Enum
from typing import Any

from gpterm.llm.models import Message, MessageRole
from gpterm.llm.streaming.models import Delta

logger = logging.getLogger(__name__)


class TurnState(Enum):
    """Lifecycle of one assistant turn."""
    UNSEEN = "unseen"
    OPEN = "open"
    CLOSED = "closed"


class Conversation:
    """
    Ordered, in-memory message history.

    At most one assistant message is open for further deltas, and while open
    it is always the last message.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []
        self._open_turn_id: str | None = None

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def open_turn_id(self) -> str | None:
        return self._open_turn_id

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def append_user(self, content: str) -> Message:
        """Append a user message, closing any open assistant turn."""
        self.close_open_turn()
        message = Message(role=MessageRole.USER, content=content)
        self._messages.append(message)
        return message

    def open_turn(self, message: Message) -> None:
        """Append an assistant message and mark it open."""
        self._messages.append(message)
        self._open_turn_id = message.id

    def pop_last(self) -> Message:
        return self._messages.pop()

    def push(self, message: Message) -> None:
        self._messages.append(message)

    def close_open_turn(self) -> None:
        if self._open_turn_id is not None:
            logger.debug(f"Closing turn {self._open_turn_id}")
        self._open_turn_id = None

    def turn_state(self, turn_id: str) -> TurnState:
        if turn_id == self._open_turn_id:
            return TurnState.OPEN
        if any(message.id == turn_id for message in self._messages):
            return TurnState.CLOSED
        return TurnState.UNSEEN

    def truncate(self, length: int) -> None:
        """Drop every message past the first `length` ones."""
        del self._messages[length:]
        if self._open_turn_id is not None and not any(
            message.id == self._open_turn_id for message in self._messages
        ):
            self._open_turn_id = None

    def reset(self) -> None:
        self._messages.clear()
        self._open_turn_id = None

    def to_wire(self) -> list[dict[str, Any]]:
        """Outbound message list: role and content only."""
        return [message.to_wire() for message in self._messages]


class ConversationAssembler:
    """Folds decoded deltas into a conversation, one growing message per turn."""

    def merge(self, conversation: Conversation, turn_id: str, delta: Delta) -> str:
        """
        Merge one delta and return the text to display right away.

        A delta for the open last message extends it. Any other turn id,
        including one whose turn was already closed, starts a new message.
        """
        last = conversation.last()
        if (
            last is not None
            and last.id == turn_id
            and conversation.open_turn_id == turn_id
        ):
            message = conversation.pop_last()
            message.content += delta.content_fragment
            conversation.push(message)
        else:
            if conversation.turn_state(turn_id) is TurnState.CLOSED:
                logger.warning(f"Turn {turn_id} reappeared after closing, starting new message")
            message = Message(
                id=turn_id,
                role=delta.role or MessageRole.ASSISTANT,
                content=delta.content_fragment,
            )
            conversation.open_turn(message)

        return delta.content_fragment

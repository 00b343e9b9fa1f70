"""
Core LLM models for the chat wire protocol.

This module provides:
- The closed set of message roles and their explicit wire names
- The conversation message structure
- Pydantic models for decoding streamed completion chunks
"""

from __future__ import annotations

import uuid
from enum import Enum, auto
from typing import Any

from pydantic import BaseModel, Field


class MessageRole(Enum):
    """Roles a conversation message can carry."""
    USER = auto()
    ASSISTANT = auto()


ROLE_TO_WIRE: dict[MessageRole, str] = {
    MessageRole.USER: "user",
    MessageRole.ASSISTANT: "assistant",
}

WIRE_TO_ROLE: dict[str, MessageRole] = {
    wire: role for role, wire in ROLE_TO_WIRE.items()
}


def role_from_wire(value: str | None) -> MessageRole | None:
    """Map a wire role name to a MessageRole, None when absent or unknown."""
    if value is None:
        return None
    return WIRE_TO_ROLE.get(value)


class Message(BaseModel):
    """
    One conversational turn.

    The id never goes upstream: only role and content are serialized.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), exclude=True)
    role: MessageRole
    content: str = ""

    def to_wire(self) -> dict[str, Any]:
        """Outbound representation of this message."""
        return {"role": ROLE_TO_WIRE[self.role], "content": self.content}


class ChoiceDelta(BaseModel):
    """Incremental part of a streamed choice."""
    role: str | None = None
    content: str | None = None


class CompletionChoice(BaseModel):
    """OpenAI-compatible streamed choice."""
    delta: ChoiceDelta = Field(default_factory=ChoiceDelta)
    index: int = 0
    finish_reason: str | None = None


class CompletionChunk(BaseModel):
    """Payload of one streamed event frame."""
    id: str
    choices: list[CompletionChoice]
    model: str | None = None

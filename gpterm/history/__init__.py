"""
In-memory conversation history and delta assembly.
"""

from __future__ import annotations

from .conversation import Conversation, ConversationAssembler, TurnState

__all__ = [
    "Conversation",
    "ConversationAssembler",
    "TurnState",
]

"""Pydantic models for conversation input."""

from collections.abc import Iterable
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "assistant"]


class ChatMessage(BaseModel):
    """Single role-tagged message in a conversation."""

    model_config = ConfigDict(frozen=True)

    role: Role = Field(..., description="Who authored the message: 'user' or 'assistant'.")
    content: str = Field(..., description="Plain text content of the message.")


def normalize_messages(messages: Iterable[ChatMessage]) -> list[ChatMessage]:
    """Drop empty messages and strip surrounding whitespace from the rest."""
    return [
        ChatMessage(role=m.role, content=m.content.strip())
        for m in messages
        if m.content and m.content.strip()
    ]

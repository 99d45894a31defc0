"""Conversation history schemas."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class Role(str, Enum):
    CUSTOMER = "customer"
    ASSISTANT = "assistant"


class Turn(BaseModel):
    """A single message in a customer's conversation history."""

    role: Role
    text: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_voice: bool = False

"""Conversation data models."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List

from .chunk import Citation


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass
class Thread:
    """The durable conversation scope bound to one document."""
    thread_id: str
    document_id: str
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class Message:
    """A single append-only message in a thread."""
    thread_id: str
    role: MessageRole
    content: str
    token_estimate: int = 0
    citations: List[Citation] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return {
            "thread_id": self.thread_id,
            "role": self.role.value,
            "content": self.content,
            "token_estimate": self.token_estimate,
            "citations": [c.to_dict() for c in self.citations],
            "created_at": self.created_at.isoformat(),
        }

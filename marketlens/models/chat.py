from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Literal

Role = Literal["user", "assistant"]

HISTORY_LIMIT = 20


def doc_context(doc_id: str) -> str:
    return f"doc:{doc_id}"


def workspace_context(ws_id: str) -> str:
    return f"ws:{ws_id}"


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: Role
    content: str
    timestamp: float = field(default_factory=time.time)

    @property
    def speaker(self) -> str:
        return "User" if self.role == "user" else "Assistant"


class ChatHistory:
    """Most recent messages of one conversation; oldest entries are evicted first."""

    def __init__(self, limit: int = HISTORY_LIMIT):
        if limit < 1:
            raise ValueError("history limit must be positive")
        self._messages: deque[ChatMessage] = deque(maxlen=limit)

    def append(self, role: Role, content: str) -> ChatMessage:
        message = ChatMessage(role=role, content=content)
        self._messages.append(message)
        return message

    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

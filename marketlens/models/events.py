from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Union

from marketlens.models.documents import Document
from marketlens.models.jobs import Job


class EventType(str, Enum):
    USER_MESSAGE = "chat:user-message"
    RESPONSE = "chat:response"
    THINKING = "chat:thinking"
    CHAT_ERROR = "chat:error"
    JOBS_CHANGED = "jobs:changed"
    RESEARCH_COMPLETED = "research:completed"
    DOCUMENTS_CHANGED = "documents:changed"
    WORKSPACE_MEMBERS = "workspace:members"


@dataclass(frozen=True, slots=True)
class UserMessageAppended:
    event: ClassVar[EventType] = EventType.USER_MESSAGE
    context_key: str
    question: str


@dataclass(frozen=True, slots=True)
class ThinkingStarted:
    event: ClassVar[EventType] = EventType.THINKING
    context_key: str


@dataclass(frozen=True, slots=True)
class ResponseReady:
    event: ClassVar[EventType] = EventType.RESPONSE
    context_key: str
    answer: str


@dataclass(frozen=True, slots=True)
class ChatError:
    event: ClassVar[EventType] = EventType.CHAT_ERROR
    context_key: str
    error: str


@dataclass(frozen=True, slots=True)
class JobListChanged:
    event: ClassVar[EventType] = EventType.JOBS_CHANGED
    jobs: tuple[Job, ...]
    job_id: int | None = None


@dataclass(frozen=True, slots=True)
class ResearchCompleted:
    event: ClassVar[EventType] = EventType.RESEARCH_COMPLETED
    job_id: int


@dataclass(frozen=True, slots=True)
class DocumentsChanged:
    event: ClassVar[EventType] = EventType.DOCUMENTS_CHANGED
    documents: tuple[Document, ...]


@dataclass(frozen=True, slots=True)
class WorkspaceMembersChanged:
    event: ClassVar[EventType] = EventType.WORKSPACE_MEMBERS
    workspace_id: str
    member_ids: tuple[str, ...]


AppEvent = Union[
    UserMessageAppended,
    ThinkingStarted,
    ResponseReady,
    ChatError,
    JobListChanged,
    ResearchCompleted,
    DocumentsChanged,
    WorkspaceMembersChanged,
]

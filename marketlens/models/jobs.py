from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from marketlens.models.schemas import ExecutionHandle


class JobStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Credential:
    token: str
    expires_at: float


@dataclass(slots=True)
class ParentDocument:
    id: str
    title: str


@dataclass(slots=True)
class ResearchParams:
    framework: str
    scope: str = "Comprehensive"
    rigor: str = "Standard"
    context: str = ""
    workspace_id: str | None = None
    workspace_name: str | None = None
    parent_doc: ParentDocument | None = None

    def job_name(self) -> str:
        if self.parent_doc:
            return f"Follow-up: {self.parent_doc.title[:30]}..."
        return self.framework


@dataclass(slots=True)
class Job:
    id: int
    name: str
    started_at: float
    status: JobStatus = JobStatus.RUNNING
    workspace_id: str | None = None
    handle: ExecutionHandle | None = None
    is_live: bool = True
    completed_at: float | None = None
    result_doc_id: str | None = None
    status_text: str = "Starting..."

    @property
    def is_running(self) -> bool:
        return self.status == JobStatus.RUNNING

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "workspaceId": self.workspace_id,
            "workflowId": self.handle.workflow_id if self.handle else None,
            "runId": self.handle.run_id if self.handle else None,
            "isLive": self.is_live,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "docId": self.result_doc_id,
            "statusText": self.status_text,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Job":
        handle = None
        if payload.get("workflowId") and payload.get("runId"):
            handle = ExecutionHandle(workflowId=payload["workflowId"], runId=payload["runId"])
        try:
            status = JobStatus(payload.get("status", JobStatus.RUNNING))
        except ValueError:
            status = JobStatus.FAILED
        return cls(
            id=int(payload["id"]),
            name=str(payload.get("name") or ""),
            started_at=float(payload.get("startedAt") or 0.0),
            status=status,
            workspace_id=payload.get("workspaceId"),
            handle=handle,
            is_live=bool(payload.get("isLive", True)),
            completed_at=payload.get("completedAt"),
            result_doc_id=payload.get("docId"),
            status_text=str(payload.get("statusText") or ""),
        )

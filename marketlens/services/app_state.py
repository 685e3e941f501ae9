from __future__ import annotations

from typing import Any, Iterable

from loguru import logger

from marketlens.models.documents import Document
from marketlens.models.events import DocumentsChanged, JobListChanged, WorkspaceMembersChanged
from marketlens.models.jobs import Job, JobStatus
from marketlens.services.event_bus import EventBus
from marketlens.services.store import KeyValueStore, MemoryStore

JOBS_KEY = "ml_jobs"


class AppState:
    """Shared application data. Every mutator emits its notification before returning."""

    def __init__(self, bus: EventBus, store: KeyValueStore | None = None):
        self.bus = bus
        self.store = store if store is not None else MemoryStore()
        self.workspaces: list[dict[str, Any]] = []
        self.documents: list[Document] = []
        self.collection_members: dict[str, list[str]] = {}
        self.jobs: list[Job] = self._load_jobs()

    def _load_jobs(self) -> list[Job]:
        raw = self.store.get(JOBS_KEY, [])
        jobs: list[Job] = []
        for item in raw if isinstance(raw, list) else []:
            try:
                jobs.append(Job.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Dropping unreadable persisted job: {e}")
        return jobs

    def _save_jobs(self) -> None:
        self.store.set(JOBS_KEY, [job.to_dict() for job in self.jobs])

    # --- Jobs ---

    def get_job(self, job_id: int) -> Job | None:
        return next((job for job in self.jobs if job.id == job_id), None)

    @property
    def active_jobs(self) -> list[Job]:
        return [job for job in self.jobs if job.status == JobStatus.RUNNING]

    @property
    def completed_jobs(self) -> list[Job]:
        return [job for job in self.jobs if job.status == JobStatus.COMPLETED]

    def add_job(self, job: Job) -> None:
        self.jobs.insert(0, job)
        self._save_jobs()
        self.bus.emit(JobListChanged(jobs=tuple(self.jobs), job_id=job.id))

    def update_job(self, job_id: int, **updates: Any) -> Job | None:
        job = self.get_job(job_id)
        if job is None:
            return None
        for name, value in updates.items():
            setattr(job, name, value)
        self._save_jobs()
        self.bus.emit(JobListChanged(jobs=tuple(self.jobs), job_id=job_id))
        return job

    def remove_job(self, job_id: int) -> None:
        self.jobs = [job for job in self.jobs if job.id != job_id]
        self._save_jobs()
        self.bus.emit(JobListChanged(jobs=tuple(self.jobs), job_id=job_id))

    # --- Documents and workspaces ---

    def set_workspaces(self, workspaces: list[dict[str, Any]]) -> None:
        self.workspaces = list(workspaces)

    def workspace_name(self, ws_id: str | None) -> str | None:
        if ws_id is None:
            return None
        ws = next((w for w in self.workspaces if w.get("id") == ws_id), None)
        return ws.get("name") if ws else None

    def set_documents(self, documents: Iterable[Document]) -> None:
        self.documents = list(documents)
        self.bus.emit(DocumentsChanged(documents=tuple(self.documents)))

    def set_collection_members(self, ws_id: str, member_ids: Iterable[str]) -> None:
        self.collection_members[ws_id] = list(member_ids)
        self.bus.emit(
            WorkspaceMembersChanged(
                workspace_id=ws_id,
                member_ids=tuple(self.collection_members[ws_id]),
            )
        )

    def workspace_docs(self, ws_id: str) -> list[Document]:
        by_id = {doc.id: doc for doc in self.documents}
        return [by_id[doc_id] for doc_id in self.collection_members.get(ws_id, []) if doc_id in by_id]

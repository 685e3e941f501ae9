from __future__ import annotations

import json

from marketlens.models.documents import Document
from marketlens.models.events import DocumentsChanged, JobListChanged, WorkspaceMembersChanged
from marketlens.models.jobs import Job, JobStatus
from marketlens.models.schemas import ExecutionHandle
from marketlens.services.app_state import JOBS_KEY, AppState
from marketlens.services.event_bus import EventBus
from marketlens.services.store import JsonFileStore, MemoryStore


def _job(job_id: int, **kwargs) -> Job:
    return Job(id=job_id, name=f"job {job_id}", started_at=100.0, **kwargs)


def test_jobs_round_trip_through_json_file_store(tmp_path):
    path = tmp_path / "state.json"
    state = AppState(EventBus(), JsonFileStore(path))
    state.add_job(_job(1, workspace_id="ws-1", handle=ExecutionHandle(workflowId="wf", runId="run")))
    state.update_job(1, status=JobStatus.COMPLETED, status_text="Complete", completed_at=200.0)

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["values"][JOBS_KEY][0]["workflowId"] == "wf"

    reloaded = AppState(EventBus(), JsonFileStore(path))
    job = reloaded.get_job(1)
    assert job.status == JobStatus.COMPLETED
    assert job.handle.run_id == "run"
    assert job.workspace_id == "ws-1"
    assert job.completed_at == 200.0


def test_every_job_mutation_notifies():
    bus = EventBus()
    seen: list[tuple[int | None, int]] = []
    bus.subscribe(JobListChanged, lambda e: seen.append((e.job_id, len(e.jobs))))
    state = AppState(bus)

    state.add_job(_job(1))
    state.add_job(_job(2))
    state.update_job(1, status_text="Researching...")
    state.remove_job(2)

    assert seen == [(1, 1), (2, 2), (1, 2), (2, 1)]
    assert state.update_job(99, status_text="x") is None


def test_newest_job_first_and_status_views():
    state = AppState(EventBus())
    state.add_job(_job(1, status=JobStatus.COMPLETED))
    state.add_job(_job(2))

    assert [j.id for j in state.jobs] == [2, 1]
    assert [j.id for j in state.active_jobs] == [2]
    assert [j.id for j in state.completed_jobs] == [1]


def test_unreadable_persisted_jobs_are_dropped():
    store = MemoryStore({JOBS_KEY: [{"name": "no id"}, {"id": 3, "status": "paused"}]})

    state = AppState(EventBus(), store)

    assert [j.id for j in state.jobs] == [3]
    assert state.jobs[0].status == JobStatus.FAILED


def test_documents_and_members_notify_and_resolve():
    bus = EventBus()
    events: list = []
    bus.subscribe(DocumentsChanged, events.append)
    bus.subscribe(WorkspaceMembersChanged, events.append)
    state = AppState(bus)

    state.set_documents(
        [
            Document.from_object({"id": "a", "name": "A", "content": {"source": "s"}}),
            Document.from_object({"id": "b", "content": {"source": "s"}, "parent": {"id": "a", "name": "A"}}),
        ]
    )
    state.set_collection_members("ws", ["b", "missing", "a"])

    assert [d.id for d in state.workspace_docs("ws")] == ["b", "a"]
    assert state.documents[1].title == "Untitled"
    assert state.documents[1].parent_id == "a"
    assert isinstance(events[0], DocumentsChanged)
    assert events[1].member_ids == ("b", "missing", "a")


def test_json_file_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileStore(path)

    assert store.get("k", "fallback") == "fallback"
    store.set("k", [1])
    store.remove("k")
    assert store.get("k") is None

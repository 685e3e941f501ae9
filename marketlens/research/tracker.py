"""Research job lifecycle with stream and poll observers racing to completion."""
from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable

import httpx
from loguru import logger

from marketlens.api_client import ApiClient, ApiError
from marketlens.config import settings
from marketlens.models.events import ResearchCompleted
from marketlens.models.jobs import Job, JobStatus, ResearchParams
from marketlens.models.schemas import ExecutionHandle, StreamEvent
from marketlens.research.catalog import refresh_documents, refresh_members
from marketlens.research.prompts import bucket_status, build_prompt
from marketlens.services import logger as log_service
from marketlens.services.app_state import AppState

STATUS_COMPLETE = "Complete"
STATUS_FAILED = "Research failed"
STATUS_TIMED_OUT = "Timed out."

SUCCESS_STATUSES = frozenset({"completed", "succeeded"})
FAILURE_STATUSES = frozenset({"failed", "error"})


class _StreamClosed(Exception):
    """Raised from the stream callback to stop reading once the job is settled."""


class JobTracker:
    """Creates research jobs and drives each one from running to a terminal status.

    A live job gets two observers: one reading the run's event stream and one
    polling the run status every `poll_interval` seconds. Both report through
    `try_transition`, which lets only the first terminal verdict through and
    cancels the remaining observer. Cancellation is cooperative, so a stream
    observer stops at its next chunk read, not instantly.
    """

    def __init__(
        self,
        state: AppState,
        api: ApiClient | None = None,
        *,
        poll_interval: float | None = None,
        max_poll_attempts: int | None = None,
        demo_delay: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.state = state
        self.api = api
        self.poll_interval = settings.poll_interval_seconds if poll_interval is None else poll_interval
        self.max_poll_attempts = (
            settings.max_poll_attempts if max_poll_attempts is None else max_poll_attempts
        )
        self.demo_delay = settings.demo_job_delay_seconds if demo_delay is None else demo_delay
        self._clock = clock
        self._next_id = max((job.id for job in state.jobs), default=0)
        self._observers: dict[int, set[asyncio.Task]] = {}
        self._tasks: dict[int, set[asyncio.Task]] = {}

    @property
    def jobs(self) -> list[Job]:
        return self.state.jobs

    # --- Submission ---

    async def start_job(self, params: ResearchParams) -> Job:
        """Submit a research request and start tracking it.

        Without an ApiClient the job runs in demo mode and never touches the network.
        Execution failures propagate to the caller; no job is created for them.
        """
        if params.workspace_id and not params.workspace_name:
            params.workspace_name = self.state.workspace_name(params.workspace_id) or "Unknown"
        prompt = build_prompt(params)
        name = params.job_name()

        if self.api is None:
            return self.create_job(name, workspace_id=params.workspace_id, is_live=False)

        handle = await self.api.execute_async(prompt)
        return self.create_job(name, workspace_id=params.workspace_id, handle=handle)

    def create_job(
        self,
        name: str,
        *,
        workspace_id: str | None = None,
        handle: ExecutionHandle | None = None,
        is_live: bool = True,
    ) -> Job:
        self._next_id += 1
        job = Job(
            id=self._next_id,
            name=name,
            started_at=self._clock(),
            workspace_id=workspace_id,
            handle=handle,
            is_live=is_live,
        )
        self.state.add_job(job)
        log_service.log_job_step(job.id, "created", job.status.value, {"live": is_live})
        self._observe(job)
        return job

    def resume_running(self) -> list[Job]:
        """Re-attach observers to persisted live jobs that never reached a terminal status."""
        resumed = [
            job
            for job in self.state.active_jobs
            if job.is_live and job.handle and job.id not in self._observers
        ]
        for job in resumed:
            self._observe(job)
        return resumed

    def _observe(self, job: Job) -> None:
        if not job.is_live:
            self._spawn(job.id, self._complete_demo(job.id), observer=True)
        elif job.handle is not None and self.api is not None:
            self._spawn(job.id, self._watch_stream(job.id, job.handle), observer=True)
            self._spawn(job.id, self._poll_status(job.id, job.handle), observer=True)

    # --- State machine ---

    def try_transition(self, job_id: int, status: JobStatus, status_text: str) -> bool:
        """Move a running job to a terminal status. Returns False if it already left running."""
        job = self.state.get_job(job_id)
        if job is None or not job.is_running or status == JobStatus.RUNNING:
            return False

        updates: dict = {"status": status, "status_text": status_text}
        if status == JobStatus.COMPLETED:
            updates["completed_at"] = self._clock()
        self.state.update_job(job_id, **updates)
        log_service.log_job_step(job_id, "transition", status.value, {"status_text": status_text})

        self._cancel_observers(job_id)
        if status == JobStatus.COMPLETED:
            self._spawn(job_id, self._after_completion(job_id))
        return True

    def _is_running(self, job_id: int) -> bool:
        job = self.state.get_job(job_id)
        return job is not None and job.is_running

    # --- Observers ---

    async def _watch_stream(self, job_id: int, handle: ExecutionHandle) -> None:
        def on_event(event: StreamEvent) -> None:
            if not self._is_running(job_id):
                raise _StreamClosed
            if event.type == "update" and event.message:
                label = bucket_status(event.message)
                job = self.state.get_job(job_id)
                if label and job is not None and job.status_text != label:
                    self.state.update_job(job_id, status_text=label)
            elif event.type == "answer":
                self.try_transition(job_id, JobStatus.COMPLETED, STATUS_COMPLETE)
                raise _StreamClosed

        try:
            await self.api.stream(handle, on_event)
        except _StreamClosed:
            return
        except (ApiError, httpx.HTTPError) as e:
            logger.warning(f"Stream error for job {job_id}: {e}")

    async def _poll_status(self, job_id: int, handle: ExecutionHandle) -> None:
        attempts = 0
        while True:
            await asyncio.sleep(self.poll_interval)
            if not self._is_running(job_id):
                return

            attempts += 1
            if attempts > self.max_poll_attempts:
                self.try_transition(job_id, JobStatus.FAILED, STATUS_TIMED_OUT)
                return

            try:
                run = await self.api.get_run_status(handle)
            except (ApiError, httpx.HTTPError) as e:
                logger.warning(f"Poll error for job {job_id} (attempt {attempts}): {e}")
                continue

            status = run.effective_status
            if status in SUCCESS_STATUSES:
                self.try_transition(job_id, JobStatus.COMPLETED, STATUS_COMPLETE)
                return
            if status in FAILURE_STATUSES:
                self.try_transition(job_id, JobStatus.FAILED, STATUS_FAILED)
                return

    async def _complete_demo(self, job_id: int) -> None:
        await asyncio.sleep(self.demo_delay)
        self.try_transition(job_id, JobStatus.COMPLETED, STATUS_COMPLETE)

    async def _after_completion(self, job_id: int) -> None:
        job = self.state.get_job(job_id)
        if self.api is not None and job is not None and job.is_live:
            try:
                documents = await refresh_documents(self.api, self.state)
                result_doc = _newest_since(documents, job.started_at)
                if result_doc is not None:
                    self.state.update_job(job_id, result_doc_id=result_doc)
                if job.workspace_id:
                    await refresh_members(self.api, self.state, job.workspace_id)
            except (ApiError, httpx.HTTPError) as e:
                logger.warning(f"Post-completion reload failed for job {job_id}: {e}")

        self.state.bus.emit(ResearchCompleted(job_id=job_id))

    # --- Task bookkeeping ---

    def _spawn(self, job_id: int, coro: Awaitable[None], *, observer: bool = False) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        groups = [self._tasks.setdefault(job_id, set())]
        if observer:
            groups.append(self._observers.setdefault(job_id, set()))
        for group in groups:
            group.add(task)
            task.add_done_callback(group.discard)
        return task

    def _cancel_observers(self, job_id: int) -> None:
        current = asyncio.current_task()
        for task in list(self._observers.get(job_id, ())):
            if task is not current and not task.done():
                task.cancel()

    async def join(self, job_id: int) -> Job | None:
        """Wait until every task started for the job has finished."""
        while True:
            pending = [task for task in self._tasks.get(job_id, ()) if not task.done()]
            if not pending:
                return self.state.get_job(job_id)
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        tasks = [task for group in self._tasks.values() for task in group if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


def _newest_since(documents, started_at: float) -> str | None:
    newest: tuple[float, str] | None = None
    for doc in documents:
        if not doc.date:
            continue
        try:
            parsed = datetime.fromisoformat(str(doc.date))
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        created = parsed.timestamp()
        if created >= started_at and (newest is None or created > newest[0]):
            newest = (created, doc.id)
    return newest[1] if newest else None

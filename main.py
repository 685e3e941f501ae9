"""MarketLens - research job and document chat client

Simple CLI for running one research job or one chat turn.
"""

import argparse
import asyncio

from marketlens.api_client import ApiClient
from marketlens.chat.session import ChatSession
from marketlens.config import settings
from marketlens.models.events import (
    ChatError,
    JobListChanged,
    ResearchCompleted,
    ResponseReady,
    ThinkingStarted,
)
from marketlens.models.jobs import ParentDocument, ResearchParams
from marketlens.research.catalog import refresh_workspaces
from marketlens.research.tracker import JobTracker
from marketlens.services.app_state import AppState
from marketlens.services.event_bus import EventBus
from marketlens.services.logger import logger
from marketlens.services.store import JsonFileStore


def _print_job_change(event: JobListChanged) -> None:
    job = next((j for j in event.jobs if j.id == event.job_id), None)
    if job is not None:
        print(f"  [{job.status.value}] #{job.id} {job.name}: {job.status_text}")


async def run_research(args: argparse.Namespace) -> None:
    bus = EventBus()
    state = AppState(bus, JsonFileStore(settings.state_file))
    api = ApiClient() if settings.live_mode else None

    bus.subscribe(JobListChanged, _print_job_change)
    bus.subscribe(ResearchCompleted, lambda e: print(f"\n[*] Research complete (job #{e.job_id})"))

    parent = ParentDocument(id=args.parent_id, title=args.parent_title or args.parent_id) if args.parent_id else None
    params = ResearchParams(
        framework=args.framework,
        scope=args.scope,
        rigor=args.rigor,
        context=args.context or "",
        workspace_id=args.workspace_id,
        parent_doc=parent,
    )

    print(f"Research: {params.job_name()} ({'live' if api else 'demo'})")
    print("-" * 50)
    tracker = JobTracker(state, api)
    try:
        if api is not None and args.workspace_id:
            await refresh_workspaces(api, state)
        resumed = tracker.resume_running()
        for job in resumed:
            print(f"  Resuming #{job.id} {job.name}")
        job = await tracker.start_job(params)
        await asyncio.gather(*(tracker.join(j.id) for j in [*resumed, job]))
    finally:
        await tracker.aclose()
        if api is not None:
            await api.aclose()


async def run_chat(args: argparse.Namespace) -> None:
    bus = EventBus()
    api = ApiClient() if settings.live_mode else None
    session = ChatSession(bus, api)

    bus.subscribe(ThinkingStarted, lambda e: print("[~] Thinking..."))
    bus.subscribe(ResponseReady, lambda e: print(f"\n{e.answer}"))
    bus.subscribe(ChatError, lambda e: print(f"\n[!] Error: {e.error}"))

    try:
        await session.send_doc_chat(args.doc_id, args.title or args.doc_id, args.question)
    finally:
        if api is not None:
            await api.aclose()


def main():
    parser = argparse.ArgumentParser(description="MarketLens research client")
    sub = parser.add_subparsers(dest="command", required=True)

    research = sub.add_parser("research", help="Start a research job and wait for it")
    research.add_argument("--framework", "-f", default="General Analysis")
    research.add_argument("--scope", default="Comprehensive")
    research.add_argument("--rigor", default="Standard")
    research.add_argument("--context", "-c", help="Company, topic or question")
    research.add_argument("--workspace-id", help="Collection to add the result to")
    research.add_argument("--parent-id", help="Parent document for follow-up research")
    research.add_argument("--parent-title", help="Parent document title")

    chat = sub.add_parser("chat", help="Ask one question about a document")
    chat.add_argument("--doc-id", required=True)
    chat.add_argument("--title", help="Document title")
    chat.add_argument("question")

    args = parser.parse_args()
    logger.debug(f"Running {args.command} (live={settings.live_mode})")

    if args.command == "research":
        asyncio.run(run_research(args))
    else:
        asyncio.run(run_chat(args))


if __name__ == "__main__":
    main()

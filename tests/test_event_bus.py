from __future__ import annotations

from marketlens.models.events import (
    ChatError,
    EventType,
    JobListChanged,
    ResearchCompleted,
    ResponseReady,
)
from marketlens.services import logger as log_service
from marketlens.services.event_bus import EventBus


def test_events_are_routed_by_class_in_subscription_order():
    bus = EventBus()
    calls: list[str] = []
    bus.subscribe(ResponseReady, lambda e: calls.append(f"first:{e.answer}"))
    bus.subscribe(ResponseReady, lambda e: calls.append(f"second:{e.answer}"))
    bus.subscribe(ChatError, lambda e: calls.append("error"))

    bus.emit(ResponseReady(context_key="doc:1", answer="42"))

    assert calls == ["first:42", "second:42"]


def test_unsubscribe_handle_stops_delivery():
    bus = EventBus()
    calls: list[int] = []
    unsubscribe = bus.subscribe(ResearchCompleted, lambda e: calls.append(e.job_id))

    bus.emit(ResearchCompleted(job_id=1))
    unsubscribe()
    bus.emit(ResearchCompleted(job_id=2))

    assert calls == [1]
    assert bus.subscriber_count(ResearchCompleted) == 0


def test_failing_subscriber_does_not_block_the_rest():
    bus = EventBus()
    calls: list[str] = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(ChatError, broken)
    bus.subscribe(ChatError, lambda e: calls.append(e.error))

    bus.emit(ChatError(context_key="ws:1", error="No response received"))

    assert calls == ["No response received"]


def test_event_variants_carry_their_topic():
    assert ResponseReady.event == EventType.RESPONSE
    assert ResearchCompleted(job_id=3).event.value == "research:completed"


def test_emit_traces_event_with_scalar_fields(monkeypatch):
    traced: list[tuple] = []
    monkeypatch.setattr(
        log_service, "log_event", lambda event_type, subscribers, **f: traced.append((event_type, subscribers, f))
    )
    bus = EventBus()
    bus.subscribe(ChatError, lambda e: None)

    bus.emit(ChatError(context_key="doc:9", error="API 500: /execute/async"))
    bus.emit(JobListChanged(jobs=(), job_id=4))

    assert traced == [
        ("chat:error", 1, {"context_key": "doc:9", "error": "API 500: /execute/async"}),
        ("jobs:changed", 0, {"job_id": 4}),
    ]

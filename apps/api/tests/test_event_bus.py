from __future__ import annotations

import logging

import pytest

from app import events
from app.core.events import InProcessEventBus, InternalEvent, event_bus


def test_subscribe_is_idempotent() -> None:
    bus = InProcessEventBus()
    received: list[InternalEvent] = []
    bus.subscribe("crm.lead.converted", received.append)
    bus.subscribe("crm.lead.converted", received.append)

    bus.publish("crm.lead.converted", {"lead_id": "lead-1"})

    assert [event.payload for event in received] == [{"lead_id": "lead-1"}]


def test_failing_handler_does_not_stop_others(caplog: pytest.LogCaptureFixture) -> None:
    bus = InProcessEventBus()
    received: list[str] = []

    def broken(event: InternalEvent) -> None:
        raise RuntimeError("dashboard offline")

    bus.subscribe("dashboard.refresh_requested", broken)
    bus.subscribe("dashboard.refresh_requested", lambda event: received.append(event.name))

    with caplog.at_level(logging.ERROR, logger="app.events"):
        bus.publish("dashboard.refresh_requested", {})

    assert received == ["dashboard.refresh_requested"]
    failure = next(record for record in caplog.records if record.getMessage() == "event.handler_failed")
    assert failure.event_name == "dashboard.refresh_requested"
    assert failure.error == "dashboard offline"


def test_unsubscribe_and_clear() -> None:
    bus = InProcessEventBus()
    received: list[str] = []

    def handler(event: InternalEvent) -> None:
        received.append(event.name)

    bus.subscribe("projects.project.created", handler)
    bus.unsubscribe("projects.project.created", handler)
    bus.publish("projects.project.created", {})
    assert received == []

    bus.subscribe("projects.project.created", handler)
    bus.clear()
    bus.publish("projects.project.created", {})
    assert received == []


def test_envelopes_are_forwarded_to_the_bus() -> None:
    received: list[InternalEvent] = []
    event_bus.subscribe("forms.leads.created", received.append)
    try:
        envelope = events.build_envelope("forms.leads.created", {"record_id": "r-1"}, actor_user_id="user-1")
        events.publish(envelope)
    finally:
        event_bus.unsubscribe("forms.leads.created", received.append)
        events.published_events.clear()

    assert len(received) == 1
    assert received[0].payload["payload"] == {"record_id": "r-1"}
    assert received[0].payload["actor_user_id"] == "user-1"
    assert received[0].payload["version"] == 1

# tests/test_transport.py
"""Tests for RoomHub fan-out, RoomSubscription, and LoggingAuditSink."""

import asyncio
import json
import logging

import pytest

from roomrelay.models import EventKind, ExchangeRecord, RoomEvent
from roomrelay.transport import (
    AuditSink,
    LoggingAuditSink,
    RoomHub,
    RoomTransport,
)


def test_protocols_are_satisfied():
    assert isinstance(RoomHub(), RoomTransport)
    assert isinstance(LoggingAuditSink(), AuditSink)


class TestRoomHub:

    @pytest.mark.asyncio
    async def test_events_reach_only_their_room(self):
        hub = RoomHub()
        lobby = hub.subscribe("lobby")
        other = hub.subscribe("other")

        await hub.publish(RoomEvent.content("lobby", "hi"))

        assert lobby.pending() == 1
        assert other.pending() == 0
        event = await lobby.get()
        assert event.kind is EventKind.CONTENT
        assert event.message == "hi"

    @pytest.mark.asyncio
    async def test_fan_out_to_every_subscriber(self):
        hub = RoomHub()
        first = hub.subscribe("lobby")
        second = hub.subscribe("lobby")

        await hub.publish(RoomEvent.end("lobby"))

        assert (await first.get()).kind is EventKind.END
        assert (await second.get()).kind is EventKind.END

    @pytest.mark.asyncio
    async def test_publish_without_subscribers_is_noop(self):
        await RoomHub().publish(RoomEvent.content("empty", "x"))

    @pytest.mark.asyncio
    async def test_full_queue_drops_event(self, caplog):
        caplog.set_level(logging.WARNING, logger="roomrelay")
        hub = RoomHub(queue_size=1)
        subscription = hub.subscribe("lobby")

        await hub.publish(RoomEvent.content("lobby", "a"))
        await hub.publish(RoomEvent.content("lobby", "b"))

        assert subscription.pending() == 1
        assert subscription.dropped == 1
        assert (await subscription.get()).message == "a"
        assert "dropped" in caplog.text

    def test_close_unsubscribes(self):
        hub = RoomHub()
        with hub.subscribe("lobby"):
            assert hub.subscriber_count("lobby") == 1
            assert hub.rooms() == ["lobby"]
        assert hub.subscriber_count("lobby") == 0
        assert hub.rooms() == []

    @pytest.mark.asyncio
    async def test_iteration_drains_then_stops_after_close(self):
        hub = RoomHub()
        subscription = hub.subscribe("lobby")
        await hub.publish(RoomEvent.content("lobby", "one"))
        await hub.publish(RoomEvent.end("lobby"))
        subscription.close()

        received = [event.kind async for event in subscription]

        assert received == [EventKind.CONTENT, EventKind.END]

    @pytest.mark.asyncio
    async def test_get_waits_for_publish(self):
        hub = RoomHub()
        subscription = hub.subscribe("lobby")

        waiter = asyncio.create_task(subscription.get())
        await asyncio.sleep(0)
        await hub.publish(RoomEvent.aborted("lobby"))

        event = await asyncio.wait_for(waiter, timeout=1.0)
        assert event.kind is EventKind.ABORTED


class TestLoggingAuditSink:

    @pytest.mark.asyncio
    async def test_logs_record_as_json(self, caplog):
        caplog.set_level(logging.INFO, logger="roomrelay.audit")
        record = ExchangeRecord(
            room="lobby",
            model="llama3.2",
            request="hi",
            response="hello",
            streamed=True,
            truncated=False,
            duration=0.5,
        )

        await LoggingAuditSink().record(record)

        line = next(r for r in caplog.records if r.name == "roomrelay.audit")
        assert line.getMessage().startswith("Ollama Request: ")
        payload = json.loads(line.getMessage()[len("Ollama Request: "):])
        assert payload["room"] == "lobby"
        assert payload["response"] == "hello"
        assert payload["truncated"] is False

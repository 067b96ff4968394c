import asyncio
import logging

import fakeredis.aioredis
import pytest
import redis.asyncio as redis
from fastapi import FastAPI
from fastapi.testclient import TestClient

from courtrounds.exceptions import UnknownEventKind
from courtrounds.routers import streams
from courtrounds.services import EventChannel, EventKind, TournamentEvent, parse_event_kind


def _event(kind=EventKind.NEW_PAIRING, **payload) -> TournamentEvent:
    return TournamentEvent(kind=kind, tournament_id="t1", round_number=2, payload=payload)


def test_event_kinds_are_closed():
    assert parse_event_kind("score_submission") is EventKind.SCORE_SUBMISSION
    assert parse_event_kind(EventKind.MATCH_COMPLETION) is EventKind.MATCH_COMPLETION
    with pytest.raises(UnknownEventKind):
        parse_event_kind("set_cancelled")
    with pytest.raises(UnknownEventKind):
        TournamentEvent(kind="set_cancelled", tournament_id="t1")


def test_event_message_uses_wire_names():
    message = _event(byes=["p3"]).to_message()

    assert message["kind"] == "new_pairing"
    assert message["tournamentId"] == "t1"
    assert message["roundNumber"] == 2
    assert message["payload"] == {"byes": ["p3"]}
    assert message["title"] == "Round 2 pairings are ready"
    assert "createdAt" in message


@pytest.mark.anyio
async def test_channel_fans_out_to_subscribers():
    channel = EventChannel()
    first, second = [], []

    async def record_first(event):
        first.append(event.kind)

    async def record_second(event):
        second.append(event.kind)

    channel.subscribe(record_first)
    unsubscribe = channel.subscribe(record_second)

    await channel.publish(_event())
    unsubscribe()
    await channel.publish(_event(EventKind.SCORE_SUBMISSION))

    assert first == [EventKind.NEW_PAIRING, EventKind.SCORE_SUBMISSION]
    assert second == [EventKind.NEW_PAIRING]


@pytest.mark.anyio
async def test_failing_subscriber_does_not_block_others(caplog):
    channel = EventChannel()
    delivered = []

    async def broken(event):
        raise RuntimeError("subscriber down")

    async def healthy(event):
        delivered.append(event)

    channel.subscribe(broken)
    channel.subscribe(healthy)

    with caplog.at_level(logging.ERROR):
        await channel.publish(_event())

    assert len(delivered) == 1
    assert "Event subscriber failed" in caplog.text


def test_stream_relays_forwarded_events():
    app = FastAPI()
    app.include_router(streams.router)
    streams.redis_client = fakeredis.aioredis.FakeRedis(decode_responses=True)

    with TestClient(app) as client1, TestClient(app) as client2:
        with client1.websocket_connect("/tournaments/t1/stream") as ws1, \
             client2.websocket_connect("/tournaments/t1/stream") as ws2:
            client1.portal.call(streams.forward_event, _event(byes=[]))
            received = ws1.receive_json()
            assert received["kind"] == "new_pairing"
            assert received["tournamentId"] == "t1"
            assert ws2.receive_json() == received


def test_broadcast_connection_error(monkeypatch, caplog):
    async def fake_publish(channel, message):
        raise redis.ConnectionError("unavailable")

    monkeypatch.setattr(streams.redis_client, "publish", fake_publish)

    with caplog.at_level(logging.WARNING):
        asyncio.run(streams.broadcast("t1", {"kind": "new_pairing"}))

    assert "dropped event for tournament t1" in caplog.text

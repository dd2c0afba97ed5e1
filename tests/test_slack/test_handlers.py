"""Tests for the expansion pipeline (classify, claim, materialize, publish)."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from thread_expander.ledger import ExpansionLedger
from thread_expander.models.expansion import AuthorDisplay, ExpansionRecord, MaterializedMessage
from thread_expander.models.slack import ThreadEvent
from thread_expander.slack.handlers import ExpansionPipeline

BOT_USER_ID = "UBOT00001"


def _make_event(**overrides: object) -> ThreadEvent:
    base: dict = {
        "channel_id": "C1",
        "thread_ts": "100.1",
        "message_ts": "100.2",
        "user_id": "U1",
        "subtype": "thread_broadcast",
        "text": "hello",
    }
    base.update(overrides)
    return ThreadEvent(**base)


def _materialized(event: ThreadEvent) -> MaterializedMessage:
    return MaterializedMessage(
        channel_id=event.channel_id,
        source_ts=event.message_ts,
        thread_ts=event.thread_ts,
        text=event.text,
        author=AuthorDisplay(name="Ursula"),
    )


@pytest.fixture()
def ledger() -> ExpansionLedger:
    return ExpansionLedger()


@pytest.fixture()
def materializer() -> AsyncMock:
    mock = AsyncMock()
    mock.materialize.side_effect = _materialized
    return mock


@pytest.fixture()
def publisher(ledger: ExpansionLedger) -> AsyncMock:
    mock = AsyncMock()

    async def _publish(message: MaterializedMessage) -> ExpansionRecord:
        await asyncio.sleep(0)
        return ledger.record(message.channel_id, message.source_ts, "200.1")

    mock.publish.side_effect = _publish
    return mock


@pytest.fixture()
def pipeline(ledger, materializer, publisher) -> ExpansionPipeline:
    return ExpansionPipeline(
        bot_user_id=BOT_USER_ID,
        ledger=ledger,
        materializer=materializer,
        publisher=publisher,
    )


async def test_expands_broadcast_reply(pipeline: ExpansionPipeline, publisher: AsyncMock):
    record = await pipeline.handle(_make_event())

    assert record is not None
    assert record.message_ts == "100.2"
    publisher.publish.assert_awaited_once()


async def test_rejected_event_never_publishes(pipeline, materializer, publisher, ledger):
    await pipeline.handle(_make_event(subtype="message_deleted"))

    materializer.materialize.assert_not_called()
    publisher.publish.assert_not_called()
    assert len(ledger) == 0


async def test_own_message_never_publishes(pipeline, publisher):
    await pipeline.handle(_make_event(user_id=BOT_USER_ID))
    publisher.publish.assert_not_called()


async def test_sequential_duplicate_is_suppressed(pipeline, publisher):
    event = _make_event()

    await pipeline.handle(event)
    second = await pipeline.handle(event)

    assert second is None
    publisher.publish.assert_awaited_once()


async def test_concurrent_duplicate_is_suppressed(pipeline, publisher):
    """Two racing deliveries of the same message produce exactly one publish."""
    event = _make_event()

    results = await asyncio.gather(pipeline.handle(event), pipeline.handle(event.model_copy()))

    assert sum(r is not None for r in results) == 1
    publisher.publish.assert_awaited_once()


async def test_failed_publish_releases_claim(pipeline, publisher, ledger):
    """After a dropped publish, a later redelivery may try again."""
    publisher.publish.side_effect = None
    publisher.publish.return_value = None

    assert await pipeline.handle(_make_event()) is None

    assert ledger.in_flight() == 0
    assert not ledger.has("C1", "100.2")
    assert ledger.claim("C1", "100.2")


async def test_unexpected_error_is_contained(pipeline, materializer, ledger):
    """A bug in one event is logged, not raised, and leaves no stale claim."""
    materializer.materialize.side_effect = RuntimeError("boom")

    assert await pipeline.handle(_make_event()) is None
    assert ledger.in_flight() == 0


async def test_distinct_messages_both_expand(pipeline, publisher):
    await pipeline.handle(_make_event(message_ts="100.2"))
    await pipeline.handle(_make_event(message_ts="100.3"))

    assert publisher.publish.await_count == 2

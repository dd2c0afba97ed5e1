"""Tests for MaterializedMessage, AuthorDisplay and ExpansionRecord."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from thread_expander.models.expansion import AuthorDisplay, ExpansionRecord, MaterializedMessage


def test_materialized_message_defaults():
    message = MaterializedMessage(
        channel_id="C1",
        source_ts="100.2",
        thread_ts="100.1",
        text="hello",
        author=AuthorDisplay(name="Ursula"),
    )
    assert message.blocks == []
    assert message.attachments == []
    assert message.permalink is None
    assert message.key == ("C1", "100.2")
    assert message.author.is_fallback is False


def test_materialized_message_requires_author():
    with pytest.raises(ValidationError):
        MaterializedMessage(channel_id="C1", source_ts="100.2", thread_ts="100.1", text="hi")


def test_expansion_record_is_immutable():
    record = ExpansionRecord(
        channel_id="C1",
        message_ts="100.2",
        published_ts="200.1",
        expanded_at=datetime.now(timezone.utc),
    )
    with pytest.raises(ValidationError):
        record.published_ts = "300.1"

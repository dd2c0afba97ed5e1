"""Republish payload and ledger record models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class AuthorDisplay(BaseModel):
    """Name and icon used to attribute a republished message to its author."""

    model_config = ConfigDict(frozen=True)

    name: str
    icon_url: str | None = None
    is_fallback: bool = False  # True when users.info could not resolve the author


class MaterializedMessage(BaseModel):
    """A thread-broadcast reply ready to be posted as a top-level message.

    Built fresh for every event by the materializer and owned by the pipeline
    run processing that event.
    """

    model_config = ConfigDict(frozen=True)

    channel_id: str
    source_ts: str  # ts of the reply being expanded
    thread_ts: str
    text: str
    blocks: list[dict] = Field(default_factory=list)
    attachments: list[dict] = Field(default_factory=list)
    files: list[dict] = Field(default_factory=list)  # File objects; not re-uploaded
    author: AuthorDisplay
    permalink: str | None = None  # Link back to the reply inside its thread

    @property
    def key(self) -> tuple[str, str]:
        return (self.channel_id, self.source_ts)


class ExpansionRecord(BaseModel):
    """Marks that ``(channel_id, message_ts)`` has already been republished."""

    model_config = ConfigDict(frozen=True)

    channel_id: str
    message_ts: str
    published_ts: str  # ts of the message the bot posted
    expanded_at: datetime

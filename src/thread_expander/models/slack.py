"""Slack message event model with the fields the expander needs."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MessageSubtype(str, Enum):
    """Message subtypes the expander distinguishes.

    Slack sends many more; unknown values are kept as raw strings on
    ``ThreadEvent.subtype``.
    """

    THREAD_BROADCAST = "thread_broadcast"
    MESSAGE_CHANGED = "message_changed"
    MESSAGE_DELETED = "message_deleted"


class ThreadEvent(BaseModel):
    """A decoded Slack ``message`` event (no raw envelope)."""

    model_config = ConfigDict(frozen=True)

    channel_id: str
    message_ts: str  # Slack message ts, e.g., "1644939337.956639"
    thread_ts: str | None = None  # Thread root ts; equals message_ts on the root itself
    user_id: str | None = None
    bot_id: str | None = None
    text: str = ""
    blocks: list[dict] = Field(default_factory=list)
    attachments: list[dict] = Field(default_factory=list)
    files: list[dict] = Field(default_factory=list)  # File objects; not re-uploaded
    subtype: str | None = None
    event_id: str | None = None  # Events API event_id, for log correlation
    envelope_id: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        """Idempotency key: ``(channel_id, message_ts)``."""
        return (self.channel_id, self.message_ts)

    @property
    def is_reply(self) -> bool:
        """True when the message sits inside a thread and is not its root."""
        return bool(self.thread_ts) and self.thread_ts != self.message_ts

    @property
    def has_content(self) -> bool:
        return bool(self.text or self.blocks or self.attachments or self.files)

    def log_extra(self) -> dict:
        """Fields attached to every log line about this event."""
        return {
            "channel_id": self.channel_id,
            "message_ts": self.message_ts,
            "event_id": self.event_id,
        }

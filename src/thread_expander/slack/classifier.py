"""Decide which message events are thread-broadcast replies to expand.

Pure and synchronous: no I/O, no logging side effects. The bot's identity is
passed in explicitly (resolved once at startup through auth.test) rather than
inferred from subtypes, since bot-originated broadcast replies look like any
other broadcast.
"""

from enum import Enum

from pydantic import BaseModel

from thread_expander.models.slack import MessageSubtype, ThreadEvent

_EDIT_OR_DELETE = {
    MessageSubtype.MESSAGE_CHANGED.value,
    MessageSubtype.MESSAGE_DELETED.value,
}


class SkipReason(str, Enum):
    """Why an event was not expanded."""

    EDITED_OR_DELETED = "edited_or_deleted"
    OWN_MESSAGE = "own_message"
    NOT_BROADCAST = "not_broadcast"
    NOT_A_REPLY = "not_a_reply"


class Classification(BaseModel):
    """Classifier decision. ``reason`` is set only when ``expand`` is False."""

    expand: bool
    reason: SkipReason | None = None


_ACCEPT = Classification(expand=True)


def _skip(reason: SkipReason) -> Classification:
    return Classification(expand=False, reason=reason)


def classify(
    event: ThreadEvent, bot_user_id: str, bot_id: str | None = None
) -> Classification:
    """Classify a message event.

    Checks are applied in order (first failing check is the reason):
    1. Edit or deletion -> skip
    2. Posted by this bot (user id or bot id) -> skip
    3. Not "also sent to channel" -> skip
    4. Thread root or not in a thread -> skip
    """
    if event.subtype in _EDIT_OR_DELETE:
        return _skip(SkipReason.EDITED_OR_DELETED)

    if event.user_id is not None and event.user_id == bot_user_id:
        return _skip(SkipReason.OWN_MESSAGE)
    if bot_id is not None and event.bot_id == bot_id:
        return _skip(SkipReason.OWN_MESSAGE)

    if event.subtype != MessageSubtype.THREAD_BROADCAST.value:
        return _skip(SkipReason.NOT_BROADCAST)

    if not event.is_reply:
        return _skip(SkipReason.NOT_A_REPLY)

    return _ACCEPT

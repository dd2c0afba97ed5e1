"""Socket Mode event intake: acknowledge, decode, enqueue.

The receiver is registered as a ``SocketModeClient`` request listener. Every
envelope is acknowledged before anything else happens so that transport
liveness never depends on Web API latency. Decoded message events are handed
to the worker pool through an asyncio queue; nothing downstream runs on the
socket read path.
"""

import asyncio
import logging

import aiohttp
from pydantic import ValidationError
from slack_sdk.errors import SlackClientError
from slack_sdk.socket_mode.async_client import AsyncBaseSocketModeClient
from slack_sdk.socket_mode.request import SocketModeRequest
from slack_sdk.socket_mode.response import SocketModeResponse

from thread_expander.exceptions import EventDecodeError
from thread_expander.models.slack import MessageSubtype, ThreadEvent

logger = logging.getLogger(__name__)

# Subtypes whose message fields live in a nested object rather than the event itself
_NESTED_SUBTYPES = {
    MessageSubtype.MESSAGE_CHANGED.value: "message",
    MessageSubtype.MESSAGE_DELETED.value: "previous_message",
}


def decode_event(payload: dict, envelope_id: str | None = None) -> ThreadEvent | None:
    """Decode an Events API payload into a ThreadEvent.

    Returns None for payloads the expander does not care about (anything that
    is not an ``event_callback`` carrying a ``message`` event).

    Raises:
        EventDecodeError: The payload claims to be a message event but lacks
            the fields every message has (channel, ts) or has malformed ones.
    """
    if payload.get("type") != "event_callback":
        return None

    event = payload.get("event")
    if not isinstance(event, dict):
        raise EventDecodeError("event_callback payload has no event object")

    if event.get("type") != "message":
        return None

    subtype = event.get("subtype")
    source = event
    nested_key = _NESTED_SUBTYPES.get(subtype)
    if nested_key is not None:
        nested = event.get(nested_key)
        if isinstance(nested, dict):
            source = nested

    channel = event.get("channel")
    ts = source.get("ts") or event.get("ts")
    if not channel or not ts:
        raise EventDecodeError(f"message event without channel/ts (subtype={subtype!r})")

    try:
        return ThreadEvent(
            channel_id=channel,
            message_ts=ts,
            thread_ts=source.get("thread_ts"),
            user_id=source.get("user"),
            bot_id=source.get("bot_id"),
            text=source.get("text") or "",
            blocks=source.get("blocks") or [],
            attachments=source.get("attachments") or [],
            files=source.get("files") or [],
            subtype=subtype,
            event_id=payload.get("event_id"),
            envelope_id=envelope_id,
        )
    except ValidationError as exc:
        raise EventDecodeError(f"malformed message event: {exc}") from exc


class EventReceiver:
    """Acknowledges Socket Mode envelopes and feeds message events to a queue."""

    def __init__(self, queue: asyncio.Queue) -> None:
        self._queue = queue
        self._accepting = True
        self.received = 0
        self.dropped = 0

    async def handle_request(
        self, client: AsyncBaseSocketModeClient, req: SocketModeRequest
    ) -> None:
        """Socket Mode listener: ack first, then decode and enqueue."""
        try:
            await client.send_socket_mode_response(
                SocketModeResponse(envelope_id=req.envelope_id)
            )
        except (SlackClientError, aiohttp.ClientError, ConnectionError):
            # Slack will redeliver; the ledger absorbs the duplicate.
            logger.warning("Failed to acknowledge envelope %s", req.envelope_id, exc_info=True)

        if req.type != "events_api":
            return
        self.received += 1

        if not self._accepting:
            logger.warning("Receiver closed, dropping envelope %s", req.envelope_id)
            self.dropped += 1
            return

        try:
            event = decode_event(req.payload or {}, envelope_id=req.envelope_id)
        except EventDecodeError:
            logger.warning("Dropping undecodable envelope %s", req.envelope_id, exc_info=True)
            self.dropped += 1
            return

        if event is None:
            return

        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.error(
                "Inbound queue full, dropping event", extra=event.log_extra()
            )
            self.dropped += 1

    def close(self) -> None:
        """Stop enqueueing. Envelopes are still acknowledged."""
        self._accepting = False

    @property
    def accepting(self) -> bool:
        return self._accepting

"""Post materialized messages to their channel and record the expansion.

Posts go through chat.postMessage without ``thread_ts`` so they land as
normal channel messages. Authorship is carried by the ``username`` and
``icon_url`` overrides (requires the ``chat:write.customize`` scope); a bot
cannot post as another user.

Transient failures (rate limits, 5xx, network errors) are retried with
tenacity using exponential backoff with jitter, honoring Slack's Retry-After
header when one is sent. AsyncWebClient's own retry handlers only cover
connection errors, so the two layers do not stack on rate limits.
"""

import asyncio
import logging

import aiohttp
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from thread_expander.ledger import ExpansionLedger
from thread_expander.models.expansion import ExpansionRecord, MaterializedMessage

logger = logging.getLogger(__name__)

_RETRYABLE_SLACK_ERRORS = {
    "ratelimited",
    "internal_error",
    "fatal_error",
    "service_unavailable",
    "request_timeout",
}

_PUBLISH_ERRORS = (SlackApiError, aiohttp.ClientError, asyncio.TimeoutError)


def _is_retryable(error: BaseException) -> bool:
    """Determine if a publish error is transient and worth retrying.

    Returns True for rate limits (429 / ``ratelimited``), server errors (5xx)
    and network-level failures. Returns False for permanent API errors such as
    ``channel_not_found`` or ``not_in_channel``.
    """
    if isinstance(error, (aiohttp.ClientError, asyncio.TimeoutError)):
        return True
    if isinstance(error, SlackApiError):
        response = error.response
        if response is None:
            return False
        status = getattr(response, "status_code", None)
        if status == 429 or (isinstance(status, int) and status >= 500):
            return True
        return response.get("error", "") in _RETRYABLE_SLACK_ERRORS
    return False


def _retry_after(error: BaseException | None) -> float | None:
    """Seconds requested by a Retry-After header on a Slack error, if any."""
    if not isinstance(error, SlackApiError) or error.response is None:
        return None
    headers = getattr(error.response, "headers", None) or {}
    for name, value in headers.items():
        if name.lower() != "retry-after":
            continue
        if isinstance(value, list):
            value = value[0] if value else None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None
    return None


def permalink_needed(text: str, blocks: list[dict], attachments: list[dict]) -> bool:
    """True when a post built from this content would show the permalink. Pure function.

    Messages with blocks get a context link appended. Messages with nothing
    to render (a file-only reply) are posted as the permalink itself. Text-
    or attachment-only messages never show it.
    """
    return bool(blocks) or not (text or attachments)


def build_post_kwargs(message: MaterializedMessage) -> dict:
    """Build chat.postMessage arguments for a materialized message. Pure function.

    When the message has blocks and a permalink, a context block linking back
    to the thread is appended. Messages without blocks render from ``text``
    alone, so adding a block would hide the text; they are posted as-is.
    A reply with no text, blocks or attachments (a file shared without a
    comment) is posted as its permalink with unfurling on, so Slack renders
    the original file in the channel.
    """
    kwargs: dict = {
        "channel": message.channel_id,
        "text": message.text,
        "username": message.author.name,
        "unfurl_links": False,
        "unfurl_media": False,
    }
    if message.author.icon_url:
        kwargs["icon_url"] = message.author.icon_url

    if not (message.text or message.blocks or message.attachments):
        if message.permalink:
            kwargs["text"] = message.permalink
            kwargs["unfurl_links"] = True
            kwargs["unfurl_media"] = True
        return kwargs

    if message.blocks:
        blocks = list(message.blocks)
        if message.permalink:
            blocks.append(
                {
                    "type": "context",
                    "elements": [
                        {"type": "mrkdwn", "text": f"<{message.permalink}|Replied in thread>"},
                    ],
                }
            )
        kwargs["blocks"] = blocks
    if message.attachments:
        kwargs["attachments"] = list(message.attachments)
    return kwargs


class Publisher:
    """Posts expansions with bounded retries and records successes in the ledger."""

    def __init__(
        self,
        client: AsyncWebClient,
        ledger: ExpansionLedger,
        max_attempts: int = 4,
        initial_wait: float = 1.0,
        max_wait: float = 30.0,
    ) -> None:
        self._client = client
        self._ledger = ledger
        self._max_attempts = max_attempts
        self._max_wait = max_wait
        self._backoff = wait_exponential_jitter(initial=initial_wait, max=max_wait, jitter=1)

    def _wait(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        requested = _retry_after(error)
        if requested is not None:
            return min(requested, self._max_wait)
        return self._backoff(retry_state)

    async def _post(self, message: MaterializedMessage) -> str:
        response = await self._client.chat_postMessage(**build_post_kwargs(message))
        return response["ts"]

    async def publish(self, message: MaterializedMessage) -> ExpansionRecord | None:
        """Post ``message`` to its channel.

        Returns:
            The ledger record on success, None if the post failed permanently
            or retries were exhausted. Slack and network errors never propagate.
        """
        if not (message.text or message.blocks or message.attachments or message.permalink):
            logger.warning(
                "Nothing to publish for %s/%s", message.channel_id, message.source_ts
            )
            return None

        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            wait=self._wait,
            stop=stop_after_attempt(self._max_attempts),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            published_ts = await retrying(self._post, message)
        except _PUBLISH_ERRORS as exc:
            error_code = ""
            if isinstance(exc, SlackApiError) and exc.response is not None:
                error_code = exc.response.get("error", "")
            logger.error(
                "Failed to expand %s/%s: %s",
                message.channel_id,
                message.source_ts,
                error_code or type(exc).__name__,
                exc_info=True,
            )
            return None

        record = self._ledger.record(message.channel_id, message.source_ts, published_ts)
        logger.info(
            "Expanded %s/%s as %s (author: %s)",
            message.channel_id,
            message.source_ts,
            published_ts,
            message.author.name,
        )
        return record

"""Turn a classified event into a republish-ready message.

The broadcast event payload normally carries the full message, so the common
path copies text, blocks and attachments verbatim and makes no extra call
besides the (cached) author lookup. When the payload arrives without content
the reply is fetched with conversations.replies. A permalink back to the
reply is resolved only when the post will show it: as a context link under
copied blocks, or as the whole text of a file-only reply.

All Web API failures here degrade fidelity rather than abort the expansion:
an unknown author gets the fallback display name, a failed fetch keeps the
event's own content, a failed permalink lookup drops the link back to the
thread.
"""

import asyncio
import logging

import aiohttp
from cachetools import TTLCache
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from thread_expander.models.expansion import AuthorDisplay, MaterializedMessage
from thread_expander.models.slack import ThreadEvent
from thread_expander.slack.publisher import permalink_needed

logger = logging.getLogger(__name__)

# Errors that mean "the Web API call did not work", as opposed to programming errors
_LOOKUP_ERRORS = (SlackApiError, aiohttp.ClientError, asyncio.TimeoutError)


def author_from_user(user: dict) -> AuthorDisplay | None:
    """Build an AuthorDisplay from a users.info ``user`` object. Pure function.

    Name preference: profile display name, profile real name, real name, handle.
    Returns None if the object carries no usable name.
    """
    profile = user.get("profile") or {}
    name = (
        profile.get("display_name")
        or profile.get("real_name")
        or user.get("real_name")
        or user.get("name")
    )
    if not name:
        return None
    icon_url = profile.get("image_72") or profile.get("image_48")
    return AuthorDisplay(name=name, icon_url=icon_url)


class UserDirectory:
    """users.info lookups with a TTL cache keyed by user id.

    Only successful lookups are cached, so a transient failure does not pin
    the fallback name for the whole retention window. The cache is touched
    only between awaits on the event loop, which serialises access.
    """

    def __init__(
        self,
        client: AsyncWebClient,
        ttl_seconds: float = 86400.0,
        max_entries: int = 1000,
        fallback_name: str = "Slack user",
    ) -> None:
        self._client = client
        self._cache: TTLCache = TTLCache(maxsize=max_entries, ttl=ttl_seconds)
        self._fallback = AuthorDisplay(name=fallback_name, is_fallback=True)

    @property
    def fallback(self) -> AuthorDisplay:
        return self._fallback

    async def lookup(self, user_id: str | None) -> AuthorDisplay:
        """Return the display identity for ``user_id``, or the fallback."""
        if not user_id:
            return self._fallback

        cached = self._cache.get(user_id)
        if cached is not None:
            return cached

        try:
            response = await self._client.users_info(user=user_id)
        except _LOOKUP_ERRORS:
            logger.warning("users.info failed for %s, using fallback name", user_id, exc_info=True)
            return self._fallback

        author = author_from_user(response.get("user") or {})
        if author is None:
            logger.warning("users.info returned no usable name for %s", user_id)
            return self._fallback

        self._cache[user_id] = author
        return author

    def invalidate(self) -> None:
        """Clear the cache. Used for testing."""
        self._cache.clear()


class Materializer:
    """Assembles MaterializedMessage instances from classified events."""

    def __init__(self, client: AsyncWebClient, users: UserDirectory) -> None:
        self._client = client
        self._users = users

    async def materialize(self, event: ThreadEvent) -> MaterializedMessage:
        """Build the republish payload for an accepted thread-broadcast event.

        Args:
            event: An event the classifier accepted (``thread_ts`` is set).

        Returns:
            A fresh MaterializedMessage; text/blocks/attachments/files are the
            event's own when it carried content. The permalink is resolved
            only when the post will show it.
        """
        text, blocks, attachments, files = event.text, event.blocks, event.attachments, event.files
        if not event.has_content:
            fetched = await self._fetch_reply(event)
            if fetched is not None:
                text = fetched.get("text") or ""
                blocks = fetched.get("blocks") or []
                attachments = fetched.get("attachments") or []
                files = fetched.get("files") or []

        if permalink_needed(text, blocks, attachments):
            author, permalink = await asyncio.gather(
                self._users.lookup(event.user_id),
                self._permalink(event),
            )
        else:
            author, permalink = await self._users.lookup(event.user_id), None

        return MaterializedMessage(
            channel_id=event.channel_id,
            source_ts=event.message_ts,
            thread_ts=event.thread_ts or event.message_ts,
            text=text,
            blocks=blocks,
            attachments=attachments,
            files=files,
            author=author,
            permalink=permalink,
        )

    async def _fetch_reply(self, event: ThreadEvent) -> dict | None:
        """Fetch the reply itself from its thread. Returns None if unavailable."""
        logger.info("Event payload has no content, fetching reply", extra=event.log_extra())
        try:
            response = await self._client.conversations_replies(
                channel=event.channel_id,
                ts=event.thread_ts,
                oldest=event.message_ts,
                latest=event.message_ts,
                inclusive=True,
            )
        except _LOOKUP_ERRORS:
            logger.warning("conversations.replies failed", extra=event.log_extra(), exc_info=True)
            return None

        for message in response.get("messages") or []:
            if message.get("ts") == event.message_ts:
                return message
        logger.warning("Reply not found in thread", extra=event.log_extra())
        return None

    async def _permalink(self, event: ThreadEvent) -> str | None:
        try:
            response = await self._client.chat_getPermalink(
                channel=event.channel_id,
                message_ts=event.message_ts,
            )
        except _LOOKUP_ERRORS:
            logger.warning("chat.getPermalink failed", extra=event.log_extra(), exc_info=True)
            return None
        return response.get("permalink")

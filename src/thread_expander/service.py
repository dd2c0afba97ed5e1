"""Process-level service: bot identity, shared state, workers, socket.

ExpanderService owns the ledger, the user directory and the worker pool for
the lifetime of the process. The Socket Mode client reads frames and calls the
receiver, which acknowledges and enqueues; a fixed pool of worker tasks pulls
events from the queue and runs each through the expansion pipeline.
"""

import asyncio
import logging

import aiohttp
from slack_sdk.errors import SlackApiError, SlackClientError
from slack_sdk.socket_mode.aiohttp import SocketModeClient
from slack_sdk.web.async_client import AsyncWebClient

from thread_expander.config import Settings
from thread_expander.exceptions import StartupError
from thread_expander.ledger import ExpansionLedger
from thread_expander.models.slack import ThreadEvent
from thread_expander.slack.handlers import ExpansionPipeline
from thread_expander.slack.materializer import Materializer, UserDirectory
from thread_expander.slack.publisher import Publisher
from thread_expander.slack.receiver import EventReceiver

logger = logging.getLogger(__name__)


class ExpanderService:
    """Wires the expansion components together and manages their lifecycle."""

    def __init__(
        self,
        settings: Settings,
        web_client: AsyncWebClient | None = None,
        socket_client: SocketModeClient | None = None,
    ) -> None:
        self.settings = settings
        self._web_client = web_client
        self._socket_client = socket_client
        self._queue: asyncio.Queue[ThreadEvent] = asyncio.Queue(maxsize=settings.queue_max_size)
        self._workers: list[asyncio.Task] = []
        self._running = False

        self.ledger = ExpansionLedger(
            ttl_seconds=settings.ledger_ttl_seconds,
            max_entries=settings.ledger_max_entries,
        )
        self.receiver = EventReceiver(self._queue)
        self.pipeline: ExpansionPipeline | None = None

    async def _resolve_identity(self, client: AsyncWebClient) -> tuple[str, str | None]:
        """Look up the bot's own user id and bot id once via auth.test."""
        try:
            auth = await client.auth_test()
        except (SlackApiError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise StartupError(f"auth.test failed: {exc}") from exc

        user_id = auth.get("user_id")
        if not user_id:
            raise StartupError("auth.test did not return the bot user id")
        return user_id, auth.get("bot_id")

    def _build_pipeline(
        self, client: AsyncWebClient, bot_user_id: str, bot_id: str | None
    ) -> ExpansionPipeline:
        settings = self.settings
        users = UserDirectory(
            client,
            ttl_seconds=settings.user_cache_ttl_seconds,
            max_entries=settings.user_cache_max_entries,
            fallback_name=settings.fallback_display_name,
        )
        publisher = Publisher(
            client,
            self.ledger,
            max_attempts=settings.publish_max_attempts,
            initial_wait=settings.publish_initial_wait_seconds,
            max_wait=settings.publish_max_wait_seconds,
        )
        return ExpansionPipeline(
            bot_user_id=bot_user_id,
            bot_id=bot_id,
            ledger=self.ledger,
            materializer=Materializer(client, users),
            publisher=publisher,
        )

    async def start(self) -> None:
        """Resolve identity, start workers, and open the Socket Mode connection.

        Raises:
            StartupError: The bot token was rejected or auth.test failed.
        """
        if self._running:
            return

        client = self._web_client or AsyncWebClient(token=self.settings.slack_bot_token)
        self._web_client = client
        bot_user_id, bot_id = await self._resolve_identity(client)
        logger.info("Resolved bot identity: user %s, bot %s", bot_user_id, bot_id)

        self.pipeline = self._build_pipeline(client, bot_user_id, bot_id)
        self._workers = [
            asyncio.create_task(self._work(), name=f"expander-worker-{i}")
            for i in range(self.settings.worker_count)
        ]

        if self._socket_client is None:
            self._socket_client = SocketModeClient(
                app_token=self.settings.slack_app_token,
                web_client=client,
            )
        self._socket_client.socket_mode_request_listeners.append(self.receiver.handle_request)
        await self._socket_client.connect()
        self._running = True
        logger.info("Socket Mode connected, %d workers running", len(self._workers))

    async def _work(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.pipeline.handle(event)
            finally:
                self._queue.task_done()

    async def stop(self) -> None:
        """Close the socket, drain queued work within the timeout, stop workers."""
        if not self._workers and not self._running:
            return
        self._running = False
        self.receiver.close()

        if self._socket_client is not None:
            try:
                await self._socket_client.close()
            except (SlackClientError, aiohttp.ClientError, ConnectionError):
                logger.warning("Error closing Socket Mode connection", exc_info=True)

        timeout = self.settings.shutdown_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                await self._queue.join()
        except TimeoutError:
            logger.warning(
                "Shutdown drain timed out after %.1fs with %d event(s) pending",
                timeout,
                self._queue.qsize(),
            )

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Expander stopped (%d expansion record(s) held)", len(self.ledger))

    @property
    def running(self) -> bool:
        return self._running

    def stats(self) -> dict:
        """Snapshot of service state for the health endpoint."""
        return {
            "running": self._running,
            "bot_user_id": self.pipeline.bot_user_id if self.pipeline else None,
            "queue_depth": self._queue.qsize(),
            "in_flight": self.ledger.in_flight(),
            "expanded": len(self.ledger),
            "received": self.receiver.received,
            "dropped": self.receiver.dropped,
        }

"""Expansion pipeline: classify, claim, materialize, publish."""

import logging

from thread_expander.ledger import ExpansionLedger
from thread_expander.models.expansion import ExpansionRecord
from thread_expander.models.slack import ThreadEvent
from thread_expander.slack.classifier import classify
from thread_expander.slack.materializer import Materializer
from thread_expander.slack.publisher import Publisher

logger = logging.getLogger(__name__)


class ExpansionPipeline:
    """Runs one event through the full expansion as a single unit of work.

    Every step's collaborators are injected, so tests can substitute doubles
    for the Web API-backed pieces.
    """

    def __init__(
        self,
        bot_user_id: str,
        ledger: ExpansionLedger,
        materializer: Materializer,
        publisher: Publisher,
        bot_id: str | None = None,
    ) -> None:
        self.bot_user_id = bot_user_id
        self.bot_id = bot_id
        self._ledger = ledger
        self._materializer = materializer
        self._publisher = publisher

    async def handle(self, event: ThreadEvent) -> ExpansionRecord | None:
        """Expand ``event`` if it qualifies and was not expanded before.

        Filters are applied in order:
        1. Classifier rejects -> skip
        2. Ledger already holds or is expanding the key -> skip (duplicate delivery)
        3. Materialize and publish; release the claim if publishing fails

        Never raises: an unexpected error is logged and the claim released so
        a later redelivery can try again.
        """
        decision = classify(event, self.bot_user_id, self.bot_id)
        if not decision.expand:
            logger.debug(
                "Skipping event (%s)", decision.reason.value, extra=event.log_extra()
            )
            return None

        if not self._ledger.claim(event.channel_id, event.message_ts):
            logger.info("Duplicate delivery suppressed", extra=event.log_extra())
            return None

        try:
            message = await self._materializer.materialize(event)
            record = await self._publisher.publish(message)
        except Exception:
            logger.error("Expansion failed", extra=event.log_extra(), exc_info=True)
            self._ledger.release(event.channel_id, event.message_ts)
            return None

        if record is None:
            self._ledger.release(event.channel_id, event.message_ts)
        return record

"""In-memory duplicate suppression for expanded messages.

Records which ``(channel_id, message_ts)`` pairs have already been
republished. Records are held in a cachetools TTLCache, so the ledger is
bounded both in time (retention window) and in size (LRU-style eviction of the
oldest entries once ``max_entries`` is reached).

Besides finished records the ledger tracks in-flight claims: ``claim()`` marks
a key as being expanded so that a concurrent redelivery of the same event is
suppressed while the first publish is still running. A claim becomes a record
via ``record()`` or is dropped via ``release()`` when the publish fails.

``has()`` followed by ``record()`` without a claim is not atomic across the
publish call; two such callers racing can both publish. The pipeline always
claims first.
"""

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone

from cachetools import TTLCache

from thread_expander.models.expansion import ExpansionRecord

logger = logging.getLogger(__name__)

_Key = tuple[str, str]


class ExpansionLedger:
    """Thread-safe, bounded record of expanded messages."""

    def __init__(
        self,
        ttl_seconds: float = 86400.0,
        max_entries: int = 10000,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._records: TTLCache = TTLCache(maxsize=max_entries, ttl=ttl_seconds, timer=timer)
        self._in_flight: set[_Key] = set()
        self._lock = threading.Lock()

    def has(self, channel_id: str, message_ts: str) -> bool:
        """Return True if the message was already expanded within the retention window."""
        with self._lock:
            return (channel_id, message_ts) in self._records

    def claim(self, channel_id: str, message_ts: str) -> bool:
        """Reserve a key for expansion.

        Returns False if the key is already recorded or another pipeline run
        holds the claim.
        """
        key = (channel_id, message_ts)
        with self._lock:
            if key in self._records or key in self._in_flight:
                return False
            self._in_flight.add(key)
            return True

    def release(self, channel_id: str, message_ts: str) -> None:
        """Drop an in-flight claim without recording, so a redelivery may retry."""
        with self._lock:
            self._in_flight.discard((channel_id, message_ts))

    def record(self, channel_id: str, message_ts: str, published_ts: str) -> ExpansionRecord:
        """Store a record for a successful publish and clear any claim on the key."""
        key = (channel_id, message_ts)
        record = ExpansionRecord(
            channel_id=channel_id,
            message_ts=message_ts,
            published_ts=published_ts,
            expanded_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._records[key] = record
            self._in_flight.discard(key)
        logger.debug("Recorded expansion %s/%s -> %s", channel_id, message_ts, published_ts)
        return record

    def in_flight(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def __len__(self) -> int:
        with self._lock:
            self._records.expire()
            return len(self._records)

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

from .logging import ROOT_LOGGER_NAME, get_logger
from .models import SavingsAnalysis

logger = get_logger(f"{ROOT_LOGGER_NAME}.cache")

DEFAULT_MAX_AGE = timedelta(hours=1)


@dataclass(frozen=True)
class CacheEntry:
    analysis: SavingsAnalysis
    last_transaction_id: int
    timestamp: float


class HealthCache:
    """Single-slot cache for the latest financial analysis.

    An entry is only served while the newest transaction id is unchanged and
    the entry is younger than `max_age`. Writers race with last-write-wins
    semantics; a lost write only costs a recomputation.
    """

    def __init__(self, max_age: timedelta = DEFAULT_MAX_AGE, clock: Callable[[], float] = time.time):
        self.max_age = max_age
        self._clock = clock
        self._entry: Optional[CacheEntry] = None

    @property
    def age(self) -> Optional[float]:
        """Seconds since the cached entry was stored, or None when empty."""
        if self._entry is None:
            return None
        return self._clock() - self._entry.timestamp

    @property
    def last_transaction_id(self) -> Optional[int]:
        return self._entry.last_transaction_id if self._entry else None

    def get(self, latest_transaction_id: Optional[int], *, ignore_transaction_id: bool = False) -> Optional[SavingsAnalysis]:
        """Return the cached analysis if it is still valid for `latest_transaction_id`.

        With `ignore_transaction_id=True` any stored analysis is returned as-is,
        regardless of id or age, and the slot is left untouched. Callers use
        this for degraded responses and must flag the result as stale.
        """
        entry = self._entry
        if entry is None:
            return None

        if ignore_transaction_id:
            logger.warning(
                "Serving stale analysis",
                extra={"fields": {"cached_transaction_id": entry.last_transaction_id, "age_seconds": round(self.age)}},
            )
            return entry.analysis

        if entry.last_transaction_id != latest_transaction_id:
            logger.info(
                "New transaction detected, invalidating cache",
                extra={"fields": {"cached_transaction_id": entry.last_transaction_id, "latest_transaction_id": latest_transaction_id}},
            )
            self._entry = None
            return None

        age = self._clock() - entry.timestamp
        if age > self.max_age.total_seconds():
            logger.info("Cache expired, invalidating", extra={"fields": {"age_seconds": round(age)}})
            self._entry = None
            return None

        logger.info("Cache hit", extra={"fields": {"age_seconds": round(age)}})
        return entry.analysis

    def set(self, analysis: SavingsAnalysis, latest_transaction_id: int) -> None:
        self._entry = CacheEntry(
            analysis=analysis,
            last_transaction_id=latest_transaction_id,
            timestamp=self._clock(),
        )
        logger.info("Analysis cached", extra={"fields": {"latest_transaction_id": latest_transaction_id}})

    def invalidate(self) -> None:
        self._entry = None
        logger.info("Cache invalidated manually")

"""Time-bounded, single-flight cache of the latest ReportCollection."""
from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable

from ..errors import FetchError
from ..models import ReportCollection

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[ReportCollection]]


class CacheState(str, Enum):
    EMPTY = "Empty"
    FRESH = "Fresh"
    STALE = "Stale"


class ReportCache:
    """Holds ``{snapshot, fetched_at}`` and refreshes it through ``loader``.

    Reads inside the TTL return the same collection object. Once the TTL has
    elapsed (or after :meth:`invalidate`) the next read refreshes first;
    concurrent readers await the same in-flight task. A failed refresh leaves
    the previous snapshot in place.
    """

    def __init__(
        self,
        loader: Loader,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._snapshot: ReportCollection | None = None
        self._fetched_at: float | None = None
        self._stale = False
        self._inflight: asyncio.Task | None = None
        self._generation = 0
        self.fetch_count = 0

    @property
    def state(self) -> CacheState:
        if self._snapshot is None:
            return CacheState.EMPTY
        if self._stale or self._clock() - self._fetched_at >= self.ttl_seconds:
            return CacheState.STALE
        return CacheState.FRESH

    def peek(self) -> ReportCollection | None:
        """Current snapshot without triggering a refresh."""
        return self._snapshot

    async def get(self) -> ReportCollection | None:
        """Fresh snapshot, or the previous one if refreshing fails.

        Returns None only when nothing has ever been fetched successfully.
        """
        if self.state is CacheState.FRESH:
            return self._snapshot
        try:
            return await self.refresh()
        except FetchError as e:
            if self._snapshot is None:
                logger.error("Report fetch failed with empty cache: %s", e)
            else:
                logger.warning("Report refresh failed, serving stale data: %s", e)
            return self._snapshot

    async def refresh(self) -> ReportCollection:
        """Fetch now, joining an in-flight fetch if there is one.

        Raises:
            FetchError: the fetch failed; the cache is unchanged.
        """
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._load())
        task = self._inflight
        # Shielded so one cancelled reader does not cancel the shared fetch
        return await asyncio.shield(task)

    async def _load(self) -> ReportCollection:
        generation = self._generation
        try:
            self.fetch_count += 1
            try:
                collection = await self._loader()
            except FetchError:
                raise
            except Exception as e:
                logger.exception("Unexpected error while loading reports")
                raise FetchError(f"Report load failed: {e}") from e
            self._snapshot = collection
            self._fetched_at = self._clock()
            # An invalidate() that arrived mid-fetch still forces the next read to refetch
            self._stale = generation != self._generation
            logger.info("Report cache refreshed with %d banks", len(collection))
            return collection
        finally:
            self._inflight = None

    def invalidate(self) -> None:
        """Force the next read to refetch. The old snapshot stays as fallback."""
        self._stale = True
        self._generation += 1
        logger.info("Report cache invalidated")

    async def run_periodic(self, interval_seconds: float) -> None:
        """Refresh unconditionally every ``interval_seconds``, forever."""
        logger.info(
            "Starting periodic report refresh (every %.0f seconds)", interval_seconds
        )
        while True:
            try:
                await self.refresh()
            except Exception as e:
                logger.error("Error in periodic refresh: %s", e)
            await asyncio.sleep(interval_seconds)

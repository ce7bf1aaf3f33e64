"""In-process history of bank rates, sampled on every report refresh."""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..models import ReportCollection

logger = logging.getLogger(__name__)

TIMEFRAMES = {
    "1d": timedelta(days=1),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}

# One sample a minute for 30 days
DEFAULT_MAX_SAMPLES = 30 * 24 * 60


@dataclass(frozen=True)
class RateSample:
    fetched_at: datetime
    lending_apy: float
    borrowing_apy: float


class RateHistory:
    """Lending/borrowing APY samples per mint, oldest first.

    Samples live only as long as the process; each mint keeps at most
    ``max_samples`` entries.
    """

    def __init__(self, max_samples: int = DEFAULT_MAX_SAMPLES) -> None:
        self.max_samples = max_samples
        self._samples: dict[str, deque[RateSample]] = {}

    def record(self, collection: ReportCollection) -> None:
        for report in collection:
            samples = self._samples.setdefault(report.mint, deque(maxlen=self.max_samples))
            if samples and samples[-1].fetched_at >= collection.fetched_at:
                continue
            samples.append(
                RateSample(collection.fetched_at, report.lending_apy, report.borrowing_apy)
            )
        logger.debug("Recorded rates for %d banks", len(collection))

    def samples(self, mint: str, since: datetime | None = None) -> list[RateSample]:
        samples = self._samples.get(mint, ())
        if since is None:
            return list(samples)
        return [s for s in samples if s.fetched_at >= since]

    def __contains__(self, mint: str) -> bool:
        return bool(self._samples.get(mint))

"""Price oracle protocol — price feed abstraction."""
from typing import Protocol

from ..models import OraclePrice


class PriceOracle(Protocol):
    """Abstract interface for fetching asset prices by symbol or by feed id."""

    async def fetch_prices(
        self, symbols: list[str] | None = None
    ) -> dict[str, OraclePrice]: ...

    async def fetch_feed_prices(self, feed_ids: list[str]) -> dict[str, OraclePrice]: ...

"""Pyth Network price oracle service."""
from __future__ import annotations

import asyncio
import logging
import ssl

import aiohttp
import certifi

from ..config import PythConfig
from ..models import OraclePrice

logger = logging.getLogger(__name__)


def _normalize_feed_id(feed_id: str) -> str:
    """Hermes returns ids without the 0x prefix; config may carry it."""
    feed_id = feed_id.strip().lower()
    return feed_id[2:] if feed_id.startswith("0x") else feed_id


class PythOracle:
    """Fetch prices from Pyth Network oracle."""

    def __init__(self, config: PythConfig) -> None:
        self.hermes_url = config.hermes_url
        self.price_feeds = {
            symbol.upper(): _normalize_feed_id(feed_id)
            for symbol, feed_id in config.feeds.items()
        }
        self.timeout = config.timeout

    async def fetch_prices(
        self, symbols: list[str] | None = None
    ) -> dict[str, OraclePrice]:
        """Fetch current prices from Pyth Network, keyed by upper-case symbol.

        Args:
            symbols: Optional list of symbols to fetch. If None, fetches all
                     configured feeds.

        Failures are soft: the returned mapping simply lacks the symbols that
        could not be priced.
        """
        feeds = self.price_feeds
        if symbols is not None:
            wanted = {s.upper() for s in symbols}
            feeds = {k: v for k, v in self.price_feeds.items() if k in wanted}

        feed_prices = await self.fetch_feed_prices(list(feeds.values()))

        prices: dict[str, OraclePrice] = {}
        for symbol, feed_id in feeds.items():
            if feed_id in feed_prices:
                prices[symbol] = feed_prices[feed_id]

        for symbol, p in sorted(prices.items()):
            logger.debug("  %s: $%.4f (±%.4f)", symbol, p.price, p.confidence)
        return prices

    async def fetch_feed_prices(self, feed_ids: list[str]) -> dict[str, OraclePrice]:
        """Fetch prices for raw Hermes feed ids, keyed by normalized feed id."""
        prices: dict[str, OraclePrice] = {}

        wanted = sorted({_normalize_feed_id(fid) for fid in feed_ids if fid})
        if not wanted:
            return prices

        query_params = "&".join([f"ids[]={fid}" for fid in wanted])
        url = f"{self.hermes_url}?{query_params}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    url, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching prices from Pyth: HTTP %s", response.status
                        )
                        return prices

                    data = await response.json()
                    parsed = data.get("parsed") if isinstance(data, dict) else None
                    if not isinstance(parsed, list):
                        logger.error("Unexpected Pyth response shape: %r", type(data))
                        return prices

                    for item in parsed:
                        entry = _parse_price_item(item)
                        if entry is None:
                            continue
                        feed_id, oracle_price = entry
                        if feed_id in wanted:
                            prices[feed_id] = oracle_price

                    logger.info("Fetched %d prices from Pyth Network", len(prices))

        except (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError, ValueError) as e:
            logger.error("Error fetching prices from Pyth: %s", e)

        return prices


def _parse_price_item(item: object) -> tuple[str, OraclePrice] | None:
    """One ``parsed`` entry of a Hermes response; None when it is malformed."""
    if not isinstance(item, dict):
        return None
    price_data = item.get("price")
    feed_id = item.get("id")
    if not isinstance(price_data, dict) or not isinstance(feed_id, str):
        logger.warning("Skipping malformed Pyth price entry: %r", item)
        return None
    try:
        scale = 10 ** int(price_data.get("expo", 0))
        oracle_price = OraclePrice(
            price=int(price_data["price"]) * scale,
            confidence=int(price_data.get("conf", 0)) * scale,
        )
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Skipping Pyth price for %s: %s", feed_id, e)
        return None
    return _normalize_feed_id(feed_id), oracle_price

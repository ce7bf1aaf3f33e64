"""Ordered mint → symbol resolution strategies."""
from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Protocol, Sequence

import aiohttp
import certifi

from ..config import TokensConfig

logger = logging.getLogger(__name__)


class SymbolStrategy(Protocol):
    name: str

    def lookup(self, mint: str) -> str | None: ...


class OverrideSymbols:
    """Hand-maintained mint → symbol map."""

    name = "override"

    def __init__(self, overrides: dict[str, str]) -> None:
        self._overrides = dict(overrides)

    def lookup(self, mint: str) -> str | None:
        return self._overrides.get(mint)


class TokenRegistrySymbols:
    """Symbols from a remote SPL token-list JSON, loaded once."""

    name = "registry"

    def __init__(self, registry_url: str, timeout: int = 15) -> None:
        self.registry_url = registry_url
        self.timeout = timeout
        self._symbols: dict[str, str] = {}
        self.loaded = False

    def lookup(self, mint: str) -> str | None:
        return self._symbols.get(mint)

    def load_tokens(self, tokens: list[dict]) -> int:
        count = 0
        for token in tokens:
            address = token.get("address")
            symbol = token.get("symbol")
            if address and symbol:
                self._symbols[address] = symbol
                count += 1
        self.loaded = True
        return count

    async def load(self) -> None:
        """Fetch the registry. Failures leave the strategy empty."""
        if self.loaded or not self.registry_url:
            return

        logger.info("Loading SPL token registry from %s", self.registry_url)
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    self.registry_url,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status != 200:
                        logger.warning(
                            "Token registry fetch failed: HTTP %s", response.status
                        )
                        return
                    # raw.githubusercontent serves text/plain
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError, ValueError) as e:
            logger.warning("Error loading token registry: %s", e)
            return

        tokens = data.get("tokens") if isinstance(data, dict) else None
        if not isinstance(tokens, list):
            logger.warning("No 'tokens' array in token registry; continuing without it")
            return

        count = self.load_tokens(tokens)
        logger.info("Token registry loaded: %d tokens recognized", count)


class TruncatedMintSymbols:
    """Last resort: the first characters of the mint address."""

    name = "truncated"

    def __init__(self, length: int = 4) -> None:
        self.length = length

    def lookup(self, mint: str) -> str | None:
        return mint[: self.length] if mint else None


class SymbolResolver:
    """Returns the first strategy's answer, in order."""

    def __init__(self, strategies: Sequence[SymbolStrategy]) -> None:
        self.strategies = tuple(strategies)

    @classmethod
    def from_config(cls, config: TokensConfig) -> "SymbolResolver":
        strategies: list[SymbolStrategy] = [
            OverrideSymbols(config.overrides),
            TokenRegistrySymbols(config.registry_url),
        ]
        if config.truncate_unknown_mints:
            strategies.append(TruncatedMintSymbols())
        return cls(strategies)

    async def load(self) -> None:
        for strategy in self.strategies:
            if isinstance(strategy, TokenRegistrySymbols):
                await strategy.load()

    def resolve(self, mint: str) -> str | None:
        for strategy in self.strategies:
            symbol = strategy.lookup(mint)
            if symbol:
                return symbol
        return None

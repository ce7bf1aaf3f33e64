"""MarginFi protocol adapter — discovers banks, decodes them, attaches prices."""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field

from ...errors import DecodeError
from ...interfaces.bank_source import BankSource
from ...interfaces.chain import ChainClient
from ...interfaces.price_oracle import PriceOracle
from ...models import BankRecord, OraclePrice
from ...tokens import SymbolResolver
from . import parser

logger = logging.getLogger(__name__)


def bank_filters(group: str) -> list[dict]:
    """getProgramAccounts filters selecting Bank accounts of one group."""
    return [
        {
            "memcmp": {
                "offset": 0,
                "bytes": base64.b64encode(parser.BANK_DISCRIMINATOR).decode(),
                "encoding": "base64",
            }
        },
        {"memcmp": {"offset": parser.GROUP_OFFSET, "bytes": group}},
    ]


class RpcBankSource:
    """Live bank accounts via getProgramAccounts."""

    def __init__(self, chain_client: ChainClient, program_id: str, group: str) -> None:
        self._client = chain_client
        self.program_id = program_id
        self.group = group

    async def fetch_bank_accounts(self) -> dict[str, bytes]:
        accounts = await self._client.get_program_accounts(
            self.program_id, bank_filters(self.group)
        )
        logger.info(
            "Fetched %d bank accounts for group %s", len(accounts), self.group
        )
        return accounts


@dataclass(frozen=True)
class MarginfiState:
    """One read of the protocol: decoded banks plus per-bank prices and symbols."""

    banks: tuple[BankRecord, ...]
    prices: dict[str, OraclePrice] = field(default_factory=dict)
    symbols: dict[str, str] = field(default_factory=dict)

    def get_oracle_price_by_bank(self, address: str) -> OraclePrice | None:
        return self.prices.get(address)

    def get_symbol_by_bank(self, address: str) -> str | None:
        return self.symbols.get(address)

    def get_bank_by_mint(self, mint: str) -> BankRecord | None:
        return next((b for b in self.banks if b.mint == mint), None)


class MarginfiReader:
    """Read every bank of a MarginFi group and price it."""

    def __init__(
        self,
        source: BankSource,
        oracle: PriceOracle,
        resolver: SymbolResolver,
    ) -> None:
        self._source = source
        self._oracle = oracle
        self._resolver = resolver

    def decode_banks(self, accounts: dict[str, bytes]) -> list[BankRecord]:
        """Decode raw accounts, skipping (and logging) any that fail."""
        banks: list[BankRecord] = []
        for address, data in accounts.items():
            try:
                banks.append(parser.decode_bank(address, data))
            except DecodeError as e:
                logger.warning("Skipping bank: %s", e)
        return banks

    async def fetch_state(self) -> MarginfiState:
        """Fetch banks, symbols and prices.

        Raises:
            FetchError: the bank accounts could not be read at all.
        """
        accounts = await self._source.fetch_bank_accounts()
        banks = self.decode_banks(accounts)
        logger.info("Decoded %d of %d bank accounts", len(banks), len(accounts))

        await self._resolver.load()
        symbols: dict[str, str] = {}
        for bank in banks:
            symbol = self._resolver.resolve(bank.mint)
            if symbol:
                symbols[bank.address] = symbol
            else:
                logger.debug("No symbol for mint %s (bank %s)", bank.mint, bank.address)

        prices = await self._fetch_prices(banks, symbols)
        return MarginfiState(banks=tuple(banks), prices=prices, symbols=symbols)

    async def _fetch_prices(
        self, banks: list[BankRecord], symbols: dict[str, str]
    ) -> dict[str, OraclePrice]:
        """Price each bank by its own Pyth feed, else by its symbol's configured feed."""
        feed_ids: dict[str, str] = {}
        for bank in banks:
            feed_id = parser.pyth_feed_id(bank)
            if feed_id is not None:
                feed_ids[bank.address] = feed_id

        prices: dict[str, OraclePrice] = {}
        if feed_ids:
            feed_prices = await self._oracle.fetch_feed_prices(sorted(set(feed_ids.values())))
            for address, feed_id in feed_ids.items():
                if feed_id in feed_prices:
                    prices[address] = feed_prices[feed_id]
        by_feed = len(prices)

        unpriced = sorted(
            {symbols[b.address] for b in banks if b.address not in prices and b.address in symbols}
        )
        symbol_prices = await self._oracle.fetch_prices(unpriced) if unpriced else {}
        for bank in banks:
            if bank.address in prices:
                continue
            symbol = symbols.get(bank.address)
            price = symbol_prices.get(symbol.upper()) if symbol else None
            if price is None:
                logger.debug("Bank %s has no oracle price", bank.address)
                continue
            prices[bank.address] = price

        logger.info(
            "Priced %d of %d banks (%d by bank oracle feed)", len(prices), len(banks), by_feed
        )
        return prices

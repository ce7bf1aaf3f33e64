"""Bank aggregator: chain read to per-bank reports to ReportCollection."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from ..chains.solana import SolanaClient
from ..config import AppConfig, load_keypair
from ..errors import FetchError
from ..interfaces.bank_source import BankSource
from ..models import ReportCollection
from ..oracles import PythOracle
from ..protocols.marginfi import (
    MarginfiReader,
    MarginfiState,
    RpcBankSource,
    SnapshotBankSource,
)
from ..protocols.marginfi.metrics import build_report
from ..tokens import SymbolResolver
from .rate_history import RateHistory

logger = logging.getLogger(__name__)


class BankAggregator:
    """Produces a fresh ReportCollection on every call to fetch_reports()."""

    def __init__(
        self, reader: MarginfiReader, rate_history: RateHistory | None = None
    ) -> None:
        self._reader = reader
        self.rate_history = rate_history or RateHistory()
        self.last_state: MarginfiState | None = None

    @classmethod
    def from_config(cls, config: AppConfig) -> "BankAggregator":
        """Wire a reader from configuration.

        An offline snapshot, when configured, replaces live RPC entirely.
        """
        keypair = load_keypair(config.wallet.secret_key_json)
        logger.info("Using wallet %s (read-only)", keypair.pubkey())

        source: BankSource
        if config.marginfi.snapshot_path:
            logger.info("Reading banks from snapshot %s", config.marginfi.snapshot_path)
            source = SnapshotBankSource(config.marginfi.snapshot_path)
        else:
            logger.info(
                "Reading banks from %s network (group %s)",
                config.marginfi.network,
                config.marginfi.group,
            )
            source = RpcBankSource(
                SolanaClient(config.solana),
                config.marginfi.program_id,
                config.marginfi.group,
            )

        reader = MarginfiReader(
            source,
            PythOracle(config.price_oracle.pyth),
            SymbolResolver.from_config(config.tokens),
        )
        return cls(reader)

    async def fetch_state(self) -> MarginfiState:
        state = await self._reader.fetch_state()
        self.last_state = state
        return state

    async def fetch_reports(self) -> ReportCollection:
        """Run one full fetch cycle and record its rates.

        Raises:
            FetchError: the cycle failed; no partial collection is built.
        """
        try:
            state = await self.fetch_state()
            reports = tuple(
                build_report(
                    bank,
                    state.get_oracle_price_by_bank(bank.address),
                    state.get_symbol_by_bank(bank.address),
                )
                for bank in state.banks
            )
        except FetchError:
            raise
        except Exception as e:
            logger.exception("Unexpected error while building bank reports")
            raise FetchError(f"Bank report cycle failed: {e}") from e

        priced = sum(1 for r in reports if r.has_price)
        logger.info("Built %d bank reports (%d priced)", len(reports), priced)
        collection = ReportCollection(reports=reports, fetched_at=datetime.now(timezone.utc))
        self.rate_history.record(collection)
        return collection

"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .formatting import format_pct, format_usd


class OperationalState(str, Enum):
    """Bank operational state, decoded once at ingestion."""

    PAUSED = "Paused"
    ACTIVE = "Active"
    REDUCE_ONLY = "ReduceOnly"
    UNKNOWN = "Unknown"


class OracleSetup(int, Enum):
    """Which oracle program the bank's ``oracle_keys`` point at."""

    NONE = 0
    PYTH_LEGACY = 1
    SWITCHBOARD_V2 = 2
    PYTH_PUSH_ORACLE = 3
    SWITCHBOARD_PULL = 4
    STAKED_WITH_PYTH_PUSH = 5


class RiskTier(str, Enum):
    COLLATERAL = "Collateral"
    ISOLATED = "Isolated"
    UNKNOWN = "Unknown"


class MarginRequirement(str, Enum):
    INITIAL = "Initial"
    MAINTENANCE = "Maintenance"
    EQUITY = "Equity"


class PriceBias(str, Enum):
    LOWEST = "Lowest"
    NONE = "None"
    HIGHEST = "Highest"


@dataclass(frozen=True)
class OraclePrice:
    """Current market price of a bank's underlying asset."""

    price: float
    confidence: float = 0.0


@dataclass(frozen=True)
class InterestRateConfig:
    optimal_utilization_rate: float
    plateau_interest_rate: float
    max_interest_rate: float
    insurance_fee_fixed_apr: float = 0.0
    insurance_ir_fee: float = 0.0
    protocol_fixed_fee_apr: float = 0.0
    protocol_ir_fee: float = 0.0


@dataclass(frozen=True)
class BankRecord:
    """Decoded on-chain state of a single bank account."""

    address: str
    mint: str
    mint_decimals: int
    group: str
    asset_share_value: float
    liability_share_value: float
    total_asset_shares: float
    total_liability_shares: float
    asset_weight_init: float
    asset_weight_maint: float
    liability_weight_init: float
    liability_weight_maint: float
    interest_rate_config: InterestRateConfig
    operational_state: OperationalState = OperationalState.UNKNOWN
    risk_tier: RiskTier = RiskTier.UNKNOWN
    oracle_setup: OracleSetup = OracleSetup.NONE
    oracle_keys: tuple[str, ...] = ()
    last_update: int = 0

    @property
    def total_asset_quantity(self) -> float:
        return self.total_asset_shares * self.asset_share_value

    @property
    def total_liability_quantity(self) -> float:
        return self.total_liability_shares * self.liability_share_value


@dataclass(frozen=True)
class InterestRates:
    """Annual rates as fractions (0.05 == 5%)."""

    lending_rate: float
    borrowing_rate: float


@dataclass(frozen=True)
class BankReport:
    """Snapshot of one lending pool at a point in time.

    Numeric fields are stored raw; the ``*_display`` properties give the
    presentation-formatted strings.
    """

    address: str
    mint: str
    token_symbol: str
    state: OperationalState
    tvl_usd: float
    asset_value_usd: float
    liability_value_usd: float
    utilization: float
    lending_apy: float
    borrowing_apy: float
    risk_tier: RiskTier | None = None
    oracle_price: float | None = None

    @property
    def has_price(self) -> bool:
        return self.oracle_price is not None

    @property
    def assets_display(self) -> str:
        return format_usd(self.asset_value_usd)

    @property
    def liabilities_display(self) -> str:
        return format_usd(self.liability_value_usd)

    @property
    def tvl_display(self) -> str:
        return format_usd(self.tvl_usd)

    @property
    def utilization_display(self) -> str:
        return format_pct(self.utilization * 100)

    @property
    def lending_apy_display(self) -> str:
        return format_pct(self.lending_apy)

    @property
    def borrowing_apy_display(self) -> str:
        return format_pct(self.borrowing_apy)


@dataclass(frozen=True)
class ReportCollection:
    """All bank reports from one fetch cycle. Replaced, never mutated."""

    reports: tuple[BankReport, ...]
    fetched_at: datetime

    def __len__(self) -> int:
        return len(self.reports)

    def __iter__(self):
        return iter(self.reports)

    @property
    def total_assets_usd(self) -> float:
        return sum(r.asset_value_usd for r in self.reports)

    @property
    def total_liabilities_usd(self) -> float:
        return sum(r.liability_value_usd for r in self.reports)

    @property
    def total_tvl_usd(self) -> float:
        return sum(r.tvl_usd for r in self.reports)

    def by_symbol(self, symbol: str) -> tuple[BankReport, ...]:
        wanted = symbol.upper()
        return tuple(r for r in self.reports if r.token_symbol.upper() == wanted)

    def by_mint(self, mint: str) -> BankReport | None:
        return next((r for r in self.reports if r.mint == mint), None)


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str

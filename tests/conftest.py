"""Shared test fixtures and sample data."""
from __future__ import annotations

import json
import struct
import textwrap
from datetime import datetime, timezone
from pathlib import Path

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from marginfi_agent.config import (
    AppConfig,
    CacheConfig,
    CompletionConfig,
    MarginfiConfig,
    PriceOracleConfig,
    PythConfig,
    SolanaConfig,
    TokensConfig,
    WalletConfig,
)
from marginfi_agent.models import (
    BankReport,
    InterestRateConfig,
    OperationalState,
    ReportCollection,
    RiskTier,
)
from marginfi_agent.protocols.marginfi import parser

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
SOL_MINT = "So11111111111111111111111111111111111111112"
BONK_MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
GROUP = "4qp6Fx6tnZkY5Wropq9wUYgtFxXKwE6viZxFHg3rdAG8"
PROGRAM_ID = "MFv2hWf31Z9kbCa1snEPYctwafyhdvnV7FZnsebVacA"
FETCHED_AT = datetime(2025, 1, 21, 13, 5, 42, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Raw bank account buffers
# ---------------------------------------------------------------------------


def encode_i80f48(value: float) -> bytes:
    raw = int(round(value * (1 << parser.I80F48_FRACTIONAL_BITS)))
    return raw.to_bytes(parser.I80F48_SIZE, "little", signed=True)


def make_bank_data(
    mint: str = USDC_MINT,
    group: str = GROUP,
    decimals: int = 6,
    asset_share_value: float = 1.0,
    liability_share_value: float = 1.0,
    total_asset_shares: float = 0.0,
    total_liability_shares: float = 0.0,
    optimal_utilization_rate: float = 0.8,
    plateau_interest_rate: float = 0.1,
    max_interest_rate: float = 1.0,
    insurance_fee_fixed_apr: float = 0.0,
    insurance_ir_fee: float = 0.0,
    protocol_fixed_fee_apr: float = 0.0,
    protocol_ir_fee: float = 0.0,
    operational_state: int = 1,
    risk_tier: int = 0,
    oracle_setup: int = 0,
    oracle_keys: tuple[str, ...] = (),
    last_update: int = 1_700_000_000,
) -> bytes:
    """Build a Bank account buffer laid out like the on-chain account."""
    buf = bytearray(parser.MIN_BANK_SIZE + 1024)
    buf[0:8] = parser.BANK_DISCRIMINATOR
    buf[parser.MINT_OFFSET : parser.MINT_OFFSET + 32] = bytes(Pubkey.from_string(mint))
    buf[parser.MINT_DECIMALS_OFFSET] = decimals
    buf[parser.GROUP_OFFSET : parser.GROUP_OFFSET + 32] = bytes(Pubkey.from_string(group))

    fixed = {
        parser.ASSET_SHARE_VALUE_OFFSET: asset_share_value,
        parser.LIABILITY_SHARE_VALUE_OFFSET: liability_share_value,
        parser.TOTAL_ASSET_SHARES_OFFSET: total_asset_shares,
        parser.TOTAL_LIABILITY_SHARES_OFFSET: total_liability_shares,
        parser.ASSET_WEIGHT_INIT_OFFSET: 0.8,
        parser.ASSET_WEIGHT_MAINT_OFFSET: 0.9,
        parser.LIABILITY_WEIGHT_INIT_OFFSET: 1.25,
        parser.LIABILITY_WEIGHT_MAINT_OFFSET: 1.1,
        parser.OPTIMAL_UTILIZATION_RATE_OFFSET: optimal_utilization_rate,
        parser.PLATEAU_INTEREST_RATE_OFFSET: plateau_interest_rate,
        parser.MAX_INTEREST_RATE_OFFSET: max_interest_rate,
        parser.INSURANCE_FEE_FIXED_APR_OFFSET: insurance_fee_fixed_apr,
        parser.INSURANCE_IR_FEE_OFFSET: insurance_ir_fee,
        parser.PROTOCOL_FIXED_FEE_APR_OFFSET: protocol_fixed_fee_apr,
        parser.PROTOCOL_IR_FEE_OFFSET: protocol_ir_fee,
    }
    for offset, value in fixed.items():
        buf[offset : offset + parser.I80F48_SIZE] = encode_i80f48(value)

    struct.pack_into("<q", buf, parser.LAST_UPDATE_OFFSET, last_update)
    buf[parser.OPERATIONAL_STATE_OFFSET] = operational_state
    buf[parser.ORACLE_SETUP_OFFSET] = oracle_setup
    for i, key in enumerate(oracle_keys):
        start = parser.ORACLE_KEYS_OFFSET + i * parser.PUBKEY_SIZE
        buf[start : start + parser.PUBKEY_SIZE] = bytes(Pubkey.from_string(key))
    buf[parser.RISK_TIER_OFFSET] = risk_tier
    return bytes(buf)


def new_address() -> str:
    return str(Pubkey.new_unique())


@pytest.fixture()
def usdc_bank_data() -> bytes:
    # 1,000,000 USDC supplied, 400,000 borrowed
    return make_bank_data(
        mint=USDC_MINT,
        decimals=6,
        total_asset_shares=1_000_000 * 10**6,
        total_liability_shares=400_000 * 10**6,
    )


@pytest.fixture()
def sol_bank_data() -> bytes:
    # 10,000 SOL supplied, 2,000 borrowed
    return make_bank_data(
        mint=SOL_MINT,
        decimals=9,
        total_asset_shares=10_000 * 10**9,
        total_liability_shares=2_000 * 10**9,
    )


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def secret_key_json() -> str:
    return json.dumps(list(bytes(Keypair())))


@pytest.fixture()
def sample_interest_rate_config() -> InterestRateConfig:
    return InterestRateConfig(
        optimal_utilization_rate=0.8,
        plateau_interest_rate=0.1,
        max_interest_rate=1.0,
    )


@pytest.fixture()
def sample_pyth_config() -> PythConfig:
    return PythConfig(
        hermes_url="https://hermes.pyth.network/v2/updates/price/latest",
        feeds={"SOL": "0xabc123", "USDC": "def456", "BONK": "ghi789"},
    )


@pytest.fixture()
def sample_app_config(secret_key_json: str, sample_pyth_config: PythConfig) -> AppConfig:
    return AppConfig(
        solana=SolanaConfig(rpc_endpoints=("https://rpc1.example.com",), rpc_timeout=10),
        marginfi=MarginfiConfig(),
        wallet=WalletConfig(secret_key_json=secret_key_json),
        cache=CacheConfig(ttl_seconds=60),
        price_oracle=PriceOracleConfig(provider="pyth", pyth=sample_pyth_config),
        tokens=TokensConfig(registry_url=""),
        completion=CompletionConfig(api_key="sk-test"),
    )


@pytest.fixture()
def sample_yaml_path(tmp_path: Path, secret_key_json: str) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(
        textwrap.dedent(f"""\
            solana:
              rpc_endpoints: ["https://rpc.example.com", "${{TEST_EXTRA_RPC}}"]
              rpc_timeout: 10
            marginfi:
              network: mainnet
            wallet:
              secret_key_json: '{secret_key_json}'
            cache:
              ttl_seconds: 30
            price_oracle:
              provider: pyth
              pyth:
                hermes_url: "https://hermes.example.com"
                feeds: {{SOL: "aaa", USDC: "bbb"}}
            tokens:
              overrides: {{Mint111: FOO}}
            completion:
              api_key: ${{TEST_OPENAI_KEY}}
              model: gpt-4o-mini
            server:
              port: 4000
        """)
    )
    return cfg_file


# ---------------------------------------------------------------------------
# Report fixtures
# ---------------------------------------------------------------------------


def make_report(
    symbol: str,
    assets: float,
    liabilities: float,
    address: str | None = None,
    mint: str | None = None,
    lending_apy: float = 3.0,
    borrowing_apy: float = 6.0,
    priced: bool = True,
) -> BankReport:
    utilization = liabilities / assets if assets > 0 else 0.0
    return BankReport(
        address=address or f"{symbol}BankAddress1111111111111111111111111",
        mint=mint or f"{symbol}Mint11111111111111111111111111111111111",
        token_symbol=symbol,
        state=OperationalState.ACTIVE,
        tvl_usd=assets,
        asset_value_usd=assets,
        liability_value_usd=liabilities,
        utilization=utilization,
        lending_apy=lending_apy,
        borrowing_apy=borrowing_apy,
        risk_tier=RiskTier.COLLATERAL,
        oracle_price=1.0 if priced else None,
    )


@pytest.fixture()
def sample_collection() -> ReportCollection:
    return ReportCollection(
        reports=(
            make_report("SOL", 5000.0, 1000.0, lending_apy=4.5, borrowing_apy=8.25),
            make_report("USDC", 10000.0, 4000.0, lending_apy=6.1, borrowing_apy=9.0),
            make_report("BONK", 200.0, 0.0, lending_apy=0.0, borrowing_apy=2.0),
        ),
        fetched_at=FETCHED_AT,
    )


@pytest.fixture()
def empty_collection() -> ReportCollection:
    return ReportCollection(reports=(), fetched_at=FETCHED_AT)


@pytest.fixture()
def report_factory():
    return make_report


@pytest.fixture()
def bank_data_factory():
    return make_bank_data

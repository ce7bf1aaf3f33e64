"""Pure decoding functions for MarginFi v2 bank accounts — no I/O.

Offsets follow the on-chain ``Bank`` account (Anchor, zero-copy, packed):

    0    discriminator            [u8; 8]
    8    mint                     Pubkey
    40   mint_decimals            u8
    41   group                    Pubkey
    80   asset_share_value        I80F48
    96   liability_share_value    I80F48
    256  total_liability_shares   I80F48
    272  total_asset_shares       I80F48
    288  last_update              i64
    296  config                   BankConfig (weights, rate config, state, ...)
    609  config.oracle_setup      u8
    610  config.oracle_keys       [Pubkey; 5]
"""
from __future__ import annotations

import hashlib
import struct

from solders.pubkey import Pubkey

from ...errors import DecodeError
from ...models import (
    BankRecord,
    InterestRateConfig,
    OperationalState,
    OracleSetup,
    RiskTier,
)

BANK_DISCRIMINATOR = hashlib.sha256(b"account:Bank").digest()[:8]

I80F48_SIZE = 16
I80F48_FRACTIONAL_BITS = 48
PUBKEY_SIZE = 32

MINT_OFFSET = 8
MINT_DECIMALS_OFFSET = 40
GROUP_OFFSET = 41
ASSET_SHARE_VALUE_OFFSET = 80
LIABILITY_SHARE_VALUE_OFFSET = 96
TOTAL_LIABILITY_SHARES_OFFSET = 256
TOTAL_ASSET_SHARES_OFFSET = 272
LAST_UPDATE_OFFSET = 288

ASSET_WEIGHT_INIT_OFFSET = 296
ASSET_WEIGHT_MAINT_OFFSET = 312
LIABILITY_WEIGHT_INIT_OFFSET = 328
LIABILITY_WEIGHT_MAINT_OFFSET = 344

OPTIMAL_UTILIZATION_RATE_OFFSET = 368
PLATEAU_INTEREST_RATE_OFFSET = 384
MAX_INTEREST_RATE_OFFSET = 400
INSURANCE_FEE_FIXED_APR_OFFSET = 416
INSURANCE_IR_FEE_OFFSET = 432
PROTOCOL_FIXED_FEE_APR_OFFSET = 448
PROTOCOL_IR_FEE_OFFSET = 464

OPERATIONAL_STATE_OFFSET = 608
ORACLE_SETUP_OFFSET = 609
ORACLE_KEYS_OFFSET = 610
ORACLE_KEYS_COUNT = 5
RISK_TIER_OFFSET = 784

MIN_BANK_SIZE = RISK_TIER_OFFSET + 1

_OPERATIONAL_STATES = {
    0: OperationalState.PAUSED,
    1: OperationalState.ACTIVE,
    2: OperationalState.REDUCE_ONLY,
}

_RISK_TIERS = {
    0: RiskTier.COLLATERAL,
    1: RiskTier.ISOLATED,
}

_DEFAULT_PUBKEY = str(Pubkey.default())


def decode_i80f48(data: bytes, offset: int) -> float:
    """Decode a signed 128-bit little-endian fixed-point value (48 fractional bits)."""
    raw = int.from_bytes(data[offset : offset + I80F48_SIZE], "little", signed=True)
    return raw / (1 << I80F48_FRACTIONAL_BITS)


def decode_pubkey(data: bytes, offset: int) -> str:
    return str(Pubkey.from_bytes(data[offset : offset + PUBKEY_SIZE]))


def decode_operational_state(value: int) -> OperationalState:
    return _OPERATIONAL_STATES.get(value, OperationalState.UNKNOWN)


def decode_risk_tier(value: int) -> RiskTier:
    return _RISK_TIERS.get(value, RiskTier.UNKNOWN)


def decode_oracle_setup(value: int) -> OracleSetup:
    try:
        return OracleSetup(value)
    except ValueError:
        return OracleSetup.NONE


def pyth_feed_id(bank: BankRecord) -> str | None:
    """Hermes feed id (hex, no 0x) for banks priced by a Pyth push feed.

    For ``PythPushOracle`` banks the first oracle key holds the raw feed id
    rather than an account address.
    """
    if bank.oracle_setup is not OracleSetup.PYTH_PUSH_ORACLE or not bank.oracle_keys:
        return None
    return bytes(Pubkey.from_string(bank.oracle_keys[0])).hex()


def decode_interest_rate_config(data: bytes) -> InterestRateConfig:
    return InterestRateConfig(
        optimal_utilization_rate=decode_i80f48(data, OPTIMAL_UTILIZATION_RATE_OFFSET),
        plateau_interest_rate=decode_i80f48(data, PLATEAU_INTEREST_RATE_OFFSET),
        max_interest_rate=decode_i80f48(data, MAX_INTEREST_RATE_OFFSET),
        insurance_fee_fixed_apr=decode_i80f48(data, INSURANCE_FEE_FIXED_APR_OFFSET),
        insurance_ir_fee=decode_i80f48(data, INSURANCE_IR_FEE_OFFSET),
        protocol_fixed_fee_apr=decode_i80f48(data, PROTOCOL_FIXED_FEE_APR_OFFSET),
        protocol_ir_fee=decode_i80f48(data, PROTOCOL_IR_FEE_OFFSET),
    )


def decode_bank(address: str, data: bytes) -> BankRecord:
    """Decode a raw bank account buffer.

    Raises:
        DecodeError: the buffer is too short or is not a Bank account.
    """
    if len(data) < MIN_BANK_SIZE:
        raise DecodeError(
            f"Bank {address}: buffer too short ({len(data)} < {MIN_BANK_SIZE} bytes)"
        )
    if data[:8] != BANK_DISCRIMINATOR:
        raise DecodeError(f"Bank {address}: account discriminator mismatch")

    try:
        oracle_keys = tuple(
            key
            for key in (
                decode_pubkey(data, ORACLE_KEYS_OFFSET + i * PUBKEY_SIZE)
                for i in range(ORACLE_KEYS_COUNT)
            )
            if key != _DEFAULT_PUBKEY
        )
        return BankRecord(
            address=address,
            mint=decode_pubkey(data, MINT_OFFSET),
            mint_decimals=data[MINT_DECIMALS_OFFSET],
            group=decode_pubkey(data, GROUP_OFFSET),
            asset_share_value=decode_i80f48(data, ASSET_SHARE_VALUE_OFFSET),
            liability_share_value=decode_i80f48(data, LIABILITY_SHARE_VALUE_OFFSET),
            total_asset_shares=decode_i80f48(data, TOTAL_ASSET_SHARES_OFFSET),
            total_liability_shares=decode_i80f48(data, TOTAL_LIABILITY_SHARES_OFFSET),
            asset_weight_init=decode_i80f48(data, ASSET_WEIGHT_INIT_OFFSET),
            asset_weight_maint=decode_i80f48(data, ASSET_WEIGHT_MAINT_OFFSET),
            liability_weight_init=decode_i80f48(data, LIABILITY_WEIGHT_INIT_OFFSET),
            liability_weight_maint=decode_i80f48(data, LIABILITY_WEIGHT_MAINT_OFFSET),
            interest_rate_config=decode_interest_rate_config(data),
            operational_state=decode_operational_state(data[OPERATIONAL_STATE_OFFSET]),
            risk_tier=decode_risk_tier(data[RISK_TIER_OFFSET]),
            oracle_setup=decode_oracle_setup(data[ORACLE_SETUP_OFFSET]),
            oracle_keys=oracle_keys,
            last_update=struct.unpack_from("<q", data, LAST_UPDATE_OFFSET)[0],
        )
    except (ValueError, struct.error) as e:
        raise DecodeError(f"Bank {address}: {e}") from e

"""Pure metric functions over decoded banks — no I/O.

Rates are annual fractions internally (0.05 == 5%); reports carry percentages.
"""
from __future__ import annotations

from ...models import (
    BankRecord,
    BankReport,
    InterestRates,
    MarginRequirement,
    OraclePrice,
    PriceBias,
    RiskTier,
)


def margin_requirement_for(risk_tier: RiskTier | None) -> MarginRequirement:
    """Margin requirement used when valuing a bank for reporting.

    Every tier is valued at equity (unweighted), so reported values are
    comparable across collateral and isolated banks.
    """
    return MarginRequirement.EQUITY


def quantity_utilization(bank: BankRecord) -> float:
    """Borrowed / supplied token quantity; 0 when nothing is supplied."""
    assets = bank.total_asset_quantity
    if assets <= 0:
        return 0.0
    return bank.total_liability_quantity / assets


def _base_rate(bank: BankRecord, utilization: float) -> float:
    cfg = bank.interest_rate_config
    optimal = cfg.optimal_utilization_rate
    plateau = cfg.plateau_interest_rate
    if utilization <= optimal:
        if optimal <= 0:
            return plateau
        return utilization / optimal * plateau
    if optimal >= 1:
        return plateau
    return (utilization - optimal) / (1 - optimal) * (
        cfg.max_interest_rate - plateau
    ) + plateau


def compute_interest_rates(bank: BankRecord) -> InterestRates:
    """Lending and borrowing rates from the bank's kinked rate curve.

    Below optimal utilization the base rate rises linearly to the plateau;
    above it, linearly from the plateau to the max rate. Borrowers pay the
    base rate plus proportional and fixed fees; lenders earn the base rate
    scaled by utilization.
    """
    cfg = bank.interest_rate_config
    utilization = quantity_utilization(bank)
    base = _base_rate(bank, utilization)

    ir_fees = cfg.insurance_ir_fee + cfg.protocol_ir_fee
    fixed_fees = cfg.insurance_fee_fixed_apr + cfg.protocol_fixed_fee_apr

    return InterestRates(
        lending_rate=base * utilization,
        borrowing_rate=base * (1 + ir_fees) + fixed_fees,
    )


def biased_price(oracle_price: OraclePrice, bias: PriceBias) -> float:
    if bias is PriceBias.LOWEST:
        return oracle_price.price - oracle_price.confidence
    if bias is PriceBias.HIGHEST:
        return oracle_price.price + oracle_price.confidence
    return oracle_price.price


def _asset_weight(bank: BankRecord, requirement: MarginRequirement) -> float:
    if requirement is MarginRequirement.INITIAL:
        return bank.asset_weight_init
    if requirement is MarginRequirement.MAINTENANCE:
        return bank.asset_weight_maint
    return 1.0


def _liability_weight(bank: BankRecord, requirement: MarginRequirement) -> float:
    if requirement is MarginRequirement.INITIAL:
        return bank.liability_weight_init
    if requirement is MarginRequirement.MAINTENANCE:
        return bank.liability_weight_maint
    return 1.0


def _usd_value(bank: BankRecord, quantity: float, price: float, weight: float) -> float:
    return quantity / (10**bank.mint_decimals) * price * weight


def compute_asset_usd_value(
    bank: BankRecord,
    oracle_price: OraclePrice | None,
    requirement: MarginRequirement = MarginRequirement.EQUITY,
    bias: PriceBias = PriceBias.NONE,
) -> float | None:
    """USD value of supplied assets, or None without a price."""
    if oracle_price is None:
        return None
    return _usd_value(
        bank,
        bank.total_asset_quantity,
        biased_price(oracle_price, bias),
        _asset_weight(bank, requirement),
    )


def compute_liability_usd_value(
    bank: BankRecord,
    oracle_price: OraclePrice | None,
    requirement: MarginRequirement = MarginRequirement.EQUITY,
    bias: PriceBias = PriceBias.NONE,
) -> float | None:
    """USD value of borrowed liabilities, or None without a price."""
    if oracle_price is None:
        return None
    return _usd_value(
        bank,
        bank.total_liability_quantity,
        biased_price(oracle_price, bias),
        _liability_weight(bank, requirement),
    )


def compute_utilization(asset_value_usd: float, liability_value_usd: float) -> float:
    """Liabilities / assets; 0 when assets are 0."""
    if asset_value_usd <= 0:
        return 0.0
    return liability_value_usd / asset_value_usd


def compute_tvl(bank: BankRecord, oracle_price: OraclePrice | None) -> float | None:
    """Total value locked: supplied assets only, liabilities are not netted."""
    return compute_asset_usd_value(bank, oracle_price)


def compute_net_apy(bank: BankRecord, incentive_yield: float = 0.0) -> dict[str, float]:
    """Gross and net APYs (percent) after fixed fees and incentives."""
    rates = compute_interest_rates(bank)
    cfg = bank.interest_rate_config
    fees = cfg.protocol_fixed_fee_apr + cfg.insurance_fee_fixed_apr

    net_lending = rates.lending_rate - fees + incentive_yield
    net_borrowing = rates.borrowing_rate + fees - incentive_yield

    return {
        "gross_lending_apy": rates.lending_rate * 100,
        "net_lending_apy": net_lending * 100,
        "gross_borrowing_apy": rates.borrowing_rate * 100,
        "net_borrowing_apy": net_borrowing * 100,
    }


def build_report(
    bank: BankRecord, oracle_price: OraclePrice | None, symbol: str | None
) -> BankReport:
    """Combine a bank and its price into a BankReport.

    Banks without a price report zero values rather than being dropped.
    """
    requirement = margin_requirement_for(bank.risk_tier)
    assets = compute_asset_usd_value(bank, oracle_price, requirement) or 0.0
    liabilities = compute_liability_usd_value(bank, oracle_price, requirement) or 0.0
    rates = compute_interest_rates(bank)

    return BankReport(
        address=bank.address,
        mint=bank.mint,
        token_symbol=symbol or "Unknown",
        state=bank.operational_state,
        tvl_usd=compute_tvl(bank, oracle_price) or 0.0,
        asset_value_usd=assets,
        liability_value_usd=liabilities,
        utilization=compute_utilization(assets, liabilities),
        lending_apy=rates.lending_rate * 100,
        borrowing_apy=rates.borrowing_rate * 100,
        risk_tier=bank.risk_tier,
        oracle_price=oracle_price.price if oracle_price is not None else None,
    )

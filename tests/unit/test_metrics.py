"""Unit tests for the pure metric functions."""
from __future__ import annotations

import pytest

from marginfi_agent.models import (
    BankRecord,
    InterestRateConfig,
    MarginRequirement,
    OperationalState,
    OraclePrice,
    PriceBias,
    RiskTier,
)
from marginfi_agent.protocols.marginfi import metrics


def _bank(
    assets: float = 1000.0,
    liabilities: float = 400.0,
    decimals: int = 0,
    rate_config: InterestRateConfig | None = None,
) -> BankRecord:
    return BankRecord(
        address="Bank1",
        mint="Mint1",
        mint_decimals=decimals,
        group="Group1",
        asset_share_value=1.0,
        liability_share_value=1.0,
        total_asset_shares=assets,
        total_liability_shares=liabilities,
        asset_weight_init=0.8,
        asset_weight_maint=0.9,
        liability_weight_init=1.25,
        liability_weight_maint=1.1,
        interest_rate_config=rate_config
        or InterestRateConfig(
            optimal_utilization_rate=0.8,
            plateau_interest_rate=0.1,
            max_interest_rate=1.0,
        ),
        operational_state=OperationalState.ACTIVE,
        risk_tier=RiskTier.COLLATERAL,
    )


class TestInterestRates:
    def test_below_optimal(self) -> None:
        # utilization 0.4 → base = 0.4 / 0.8 * 0.1 = 0.05
        rates = metrics.compute_interest_rates(_bank(1000, 400))
        assert rates.borrowing_rate == pytest.approx(0.05)
        assert rates.lending_rate == pytest.approx(0.05 * 0.4)

    def test_above_optimal(self) -> None:
        # utilization 0.9 → base = (0.1 / 0.2) * 0.9 + 0.1 = 0.55
        rates = metrics.compute_interest_rates(_bank(1000, 900))
        assert rates.borrowing_rate == pytest.approx(0.55)
        assert rates.lending_rate == pytest.approx(0.55 * 0.9)

    def test_fees_only_affect_borrowing(self) -> None:
        config = InterestRateConfig(
            optimal_utilization_rate=0.8,
            plateau_interest_rate=0.1,
            max_interest_rate=1.0,
            insurance_fee_fixed_apr=0.01,
            insurance_ir_fee=0.05,
            protocol_fixed_fee_apr=0.02,
            protocol_ir_fee=0.05,
        )
        rates = metrics.compute_interest_rates(_bank(1000, 400, rate_config=config))
        assert rates.lending_rate == pytest.approx(0.02)
        assert rates.borrowing_rate == pytest.approx(0.05 * 1.1 + 0.03)

    def test_empty_bank_has_zero_rates(self) -> None:
        rates = metrics.compute_interest_rates(_bank(0, 0))
        assert rates.lending_rate == 0
        assert rates.borrowing_rate == 0


class TestUsdValues:
    def test_equity_is_unweighted(self) -> None:
        bank = _bank(2_000_000, 500_000, decimals=6)
        price = OraclePrice(price=1.5)
        assert metrics.compute_asset_usd_value(bank, price) == pytest.approx(3.0)
        assert metrics.compute_liability_usd_value(bank, price) == pytest.approx(0.75)

    def test_initial_requirement_applies_weights(self) -> None:
        bank = _bank(100, 100)
        price = OraclePrice(price=1.0)
        assert metrics.compute_asset_usd_value(
            bank, price, MarginRequirement.INITIAL
        ) == pytest.approx(80.0)
        assert metrics.compute_liability_usd_value(
            bank, price, MarginRequirement.MAINTENANCE
        ) == pytest.approx(110.0)

    def test_price_bias(self) -> None:
        price = OraclePrice(price=10.0, confidence=0.5)
        assert metrics.biased_price(price, PriceBias.LOWEST) == 9.5
        assert metrics.biased_price(price, PriceBias.HIGHEST) == 10.5
        assert metrics.biased_price(price, PriceBias.NONE) == 10.0

    def test_missing_price_is_no_data(self) -> None:
        bank = _bank()
        assert metrics.compute_asset_usd_value(bank, None) is None
        assert metrics.compute_liability_usd_value(bank, None) is None
        assert metrics.compute_tvl(bank, None) is None

    def test_every_risk_tier_valued_at_equity(self) -> None:
        for tier in RiskTier:
            assert metrics.margin_requirement_for(tier) is MarginRequirement.EQUITY


class TestUtilization:
    def test_ratio(self) -> None:
        assert metrics.compute_utilization(200.0, 50.0) == pytest.approx(0.25)

    @pytest.mark.parametrize("assets", [0.0, -1.0])
    def test_zero_assets_gives_zero(self, assets: float) -> None:
        assert metrics.compute_utilization(assets, 50.0) == 0.0

    def test_can_exceed_one(self) -> None:
        assert metrics.compute_utilization(100.0, 150.0) == pytest.approx(1.5)


class TestTvl:
    def test_assets_only(self) -> None:
        bank = _bank(1000, 400)
        assert metrics.compute_tvl(bank, OraclePrice(price=2.0)) == pytest.approx(2000.0)


class TestNetApy:
    def test_fees_and_incentives(self) -> None:
        config = InterestRateConfig(
            optimal_utilization_rate=0.8,
            plateau_interest_rate=0.1,
            max_interest_rate=1.0,
            insurance_fee_fixed_apr=0.001,
            protocol_fixed_fee_apr=0.002,
        )
        bank = _bank(1000, 400, rate_config=config)
        rates = metrics.compute_interest_rates(bank)

        result = metrics.compute_net_apy(bank, incentive_yield=0.01)

        assert result["gross_lending_apy"] == pytest.approx(rates.lending_rate * 100)
        assert result["net_lending_apy"] == pytest.approx(
            (rates.lending_rate - 0.003 + 0.01) * 100
        )
        assert result["gross_borrowing_apy"] == pytest.approx(rates.borrowing_rate * 100)
        assert result["net_borrowing_apy"] == pytest.approx(
            (rates.borrowing_rate + 0.003 - 0.01) * 100
        )


class TestBuildReport:
    def test_priced_bank(self) -> None:
        bank = _bank(1_000_000_000, 250_000_000, decimals=6)
        report = metrics.build_report(bank, OraclePrice(price=1.0), "USDC")

        assert report.token_symbol == "USDC"
        assert report.state is OperationalState.ACTIVE
        assert report.asset_value_usd == pytest.approx(1000.0)
        assert report.liability_value_usd == pytest.approx(250.0)
        assert report.tvl_usd == pytest.approx(1000.0)
        assert report.utilization == pytest.approx(0.25)
        assert report.oracle_price == 1.0
        assert report.lending_apy > 0
        assert report.borrowing_apy > report.lending_apy

    def test_unpriced_bank_reports_zero(self) -> None:
        report = metrics.build_report(_bank(), None, None)
        assert report.token_symbol == "Unknown"
        assert report.asset_value_usd == 0.0
        assert report.liability_value_usd == 0.0
        assert report.utilization == 0.0
        assert not report.has_price

    @pytest.mark.parametrize(
        "assets, liabilities", [(0, 0), (1, 0), (0, 5), (10, 10), (3, 7)]
    )
    def test_utilization_never_negative(self, assets: float, liabilities: float) -> None:
        report = metrics.build_report(_bank(assets, liabilities), OraclePrice(price=2.0), "X")
        assert report.utilization >= 0
        if report.asset_value_usd == 0:
            assert report.utilization == 0

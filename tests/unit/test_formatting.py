"""Unit tests for USD / percent formatting and timestamps."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from marginfi_agent.formatting import format_pct, format_usd, parse_usd, short_utc_timestamp


class TestFormatUsd:
    @pytest.mark.parametrize(
        "amount, expected",
        [
            (0, "$0.00"),
            (1234.567, "$1,234.57"),
            (1_000_000, "$1,000,000.00"),
            (0.004, "$0.00"),
            (-12, "-$12.00"),
        ],
    )
    def test_format(self, amount: float, expected: str) -> None:
        assert format_usd(amount) == expected

    @pytest.mark.parametrize("amount", [0.0, 0.01, 19.99, 1234.5, 987654321.12, 3.14159])
    def test_parse_recovers_value_to_cents(self, amount: float) -> None:
        assert parse_usd(format_usd(amount)) == pytest.approx(round(amount, 2), abs=1e-9)

    def test_parse_garbage_is_zero(self) -> None:
        assert parse_usd("N/A") == 0.0


class TestFormatPct:
    def test_two_decimals(self) -> None:
        assert format_pct(4.5) == "4.50%"
        assert format_pct(0) == "0.00%"
        assert format_pct(12.3456) == "12.35%"


class TestShortUtcTimestamp:
    def test_truncates_to_minutes(self) -> None:
        when = datetime(2025, 1, 21, 13, 5, 59, tzinfo=timezone.utc)
        assert short_utc_timestamp(when) == "2025-01-21 13:05 UTC"

    def test_naive_treated_as_utc(self) -> None:
        assert short_utc_timestamp(datetime(2025, 1, 21, 9, 0)) == "2025-01-21 09:00 UTC"

    def test_default_is_now(self) -> None:
        assert short_utc_timestamp().endswith(" UTC")

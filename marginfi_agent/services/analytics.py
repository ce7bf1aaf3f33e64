"""Structured analytics over a ReportCollection.

Every function returns a plain dict ready to be printed or handed to the
assistant as context. Unknown mints produce an ``{"error": ...}`` entry.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from statistics import fmean, pstdev
from typing import Any, Callable, Iterable

from ..models import BankReport, ReportCollection
from ..protocols.marginfi.adapter import MarginfiState
from ..protocols.marginfi.metrics import compute_net_apy
from .rate_history import TIMEFRAMES, RateHistory, RateSample

logger = logging.getLogger(__name__)

RANKINGS: dict[str, Callable[[BankReport], float]] = {
    "lending_apy": lambda r: r.lending_apy,
    "borrowing_apy": lambda r: r.borrowing_apy,
    "tvl": lambda r: r.tvl_usd,
    "utilization": lambda r: r.utilization,
    "assets": lambda r: r.asset_value_usd,
    "liabilities": lambda r: r.liability_value_usd,
}

UNIMPLEMENTED_TOPICS = {
    "looping": "best looping opportunity",
    "liquidation": "recent liquidations",
}


def top_banks(
    collection: ReportCollection, by: str = "lending_apy", limit: int = 5
) -> dict[str, Any]:
    """Banks ranked descending by one metric; ties keep collection order."""
    rank = RANKINGS.get(by)
    if rank is None:
        raise ValueError(
            f"Unknown ranking '{by}' (expected one of {', '.join(RANKINGS)})"
        )
    ranked = sorted(collection, key=rank, reverse=True)[: max(limit, 0)]
    return {
        "by": by,
        "limit": limit,
        "top_banks": [
            {
                "address": r.address,
                "symbol": r.token_symbol,
                "score": round(rank(r), 2),
            }
            for r in ranked
        ],
    }


def total_tvl(collection: ReportCollection) -> dict[str, Any]:
    """Sum of TVL over banks that have a price."""
    priced = [r for r in collection if r.has_price]
    return {
        "bank_count": len(collection),
        "priced_bank_count": len(priced),
        "total_tvl": round(sum(r.tvl_usd for r in priced), 2),
    }


def bank_detail(collection: ReportCollection, mint: str) -> dict[str, Any]:
    report = collection.by_mint(mint)
    if report is None:
        return {"error": f"No bank found for mint {mint}"}
    return {
        "mint": mint,
        "symbol": report.token_symbol,
        "bank_address": report.address,
        "state": report.state.value,
        "lending_apy": report.lending_apy_display,
        "borrowing_apy": report.borrowing_apy_display,
        "utilization": report.utilization_display,
        "tvl": report.tvl_display,
        "oracle_price": (
            f"{report.oracle_price:.6f}" if report.oracle_price is not None else "N/A"
        ),
    }


def net_apy(
    state: MarginfiState, mint: str, incentive_yield: float = 0.0
) -> dict[str, Any]:
    """Gross and net APYs for the bank of ``mint``.

    Incentive yield is an annual fraction; no incentive feed is wired in, so
    callers pass it explicitly.
    """
    bank = state.get_bank_by_mint(mint)
    if bank is None:
        return {"error": f"No bank found for mint {mint}"}
    apys = compute_net_apy(bank, incentive_yield)
    return {
        "mint": mint,
        "bank_address": bank.address,
        **{key: f"{value:.2f}%" for key, value in apys.items()},
    }


def filtered_banks(
    collection: ReportCollection,
    utilization_min: float | None = None,
    utilization_max: float | None = None,
    exclude_mints: Iterable[str] = (),
) -> dict[str, Any]:
    """Banks whose utilization (a 0-1 ratio) falls inside the given bounds."""
    excluded = set(exclude_mints)
    results = []
    for r in collection:
        if r.mint in excluded:
            continue
        if utilization_min is not None and r.utilization < utilization_min:
            continue
        if utilization_max is not None and r.utilization > utilization_max:
            continue
        results.append(
            {
                "address": r.address,
                "mint": r.mint,
                "symbol": r.token_symbol,
                "utilization": r.utilization,
            }
        )
    return {
        "filters": {
            "utilization_min": utilization_min,
            "utilization_max": utilization_max,
            "exclude_mints": sorted(excluded),
        },
        "count": len(results),
        "banks": results,
    }


def _window(
    history: RateHistory, mint: str, timeframe: str, now: datetime | None
) -> list[RateSample]:
    span = TIMEFRAMES.get(timeframe)
    if span is None:
        raise ValueError(
            f"Unknown timeframe '{timeframe}' (expected one of {', '.join(TIMEFRAMES)})"
        )
    now = now or datetime.now(timezone.utc)
    return history.samples(mint, since=now - span)


def _format_volatility(values: list[float]) -> str:
    if len(values) < 2:
        return "N/A"
    return f"{pstdev(values):.2f}%"


def historical_rates(
    history: RateHistory,
    mint: str,
    timeframe: str = "7d",
    now: datetime | None = None,
) -> dict[str, Any]:
    """Daily average lending and borrowing APYs for ``mint`` over ``timeframe``.

    Only samples recorded by this process are available.
    """
    samples = _window(history, mint, timeframe, now)
    if not samples:
        return {"error": f"No rate history recorded for mint {mint} in the last {timeframe}"}

    days: dict[str, list[RateSample]] = {}
    for sample in samples:
        days.setdefault(sample.fetched_at.strftime("%Y-%m-%d"), []).append(sample)

    return {
        "mint": mint,
        "timeframe": timeframe,
        "sample_count": len(samples),
        "daily_rates": [
            {
                "day": day,
                "lending_apy": round(fmean(s.lending_apy for s in group), 2),
                "borrowing_apy": round(fmean(s.borrowing_apy for s in group), 2),
            }
            for day, group in days.items()
        ],
        "volatility": _format_volatility([s.lending_apy for s in samples]),
    }


def volatility(
    history: RateHistory,
    mint: str,
    timeframe: str = "7d",
    now: datetime | None = None,
) -> dict[str, Any]:
    """Population standard deviation of the lending APY; "N/A" under two samples."""
    samples = _window(history, mint, timeframe, now)
    if mint not in history:
        return {"error": f"No rate history recorded for mint {mint}"}
    return {
        "mint": mint,
        "timeframe": timeframe,
        "sample_count": len(samples),
        "volatility": _format_volatility([s.lending_apy for s in samples]),
    }


def unimplemented_topics(message: str) -> list[str]:
    """Topics mentioned in ``message`` that have no data source."""
    lowered = message.lower()
    return [label for key, label in UNIMPLEMENTED_TOPICS.items() if key in lowered]

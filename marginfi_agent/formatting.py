"""Presentation helpers for USD amounts, percentages and timestamps."""
from __future__ import annotations

import re
from datetime import datetime, timezone

_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")


def format_usd(amount: float) -> str:
    """1234.567 → "$1,234.57"; negatives as "-$12.00"."""
    if amount < 0:
        return f"-${-amount:,.2f}"
    return f"${amount:,.2f}"


def parse_usd(text: str) -> float:
    """Inverse of :func:`format_usd`: "$1,234.57" → 1234.57. Unparseable → 0."""
    cleaned = _NON_NUMERIC_RE.sub("", text)
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def format_pct(value: float) -> str:
    """Percent value with two decimals: 4.5 → "4.50%"."""
    return f"{value:.2f}%"


def short_utc_timestamp(when: datetime | None = None) -> str:
    """Truncated UTC timestamp, e.g. "2025-01-21 13:05 UTC"."""
    if when is None:
        when = datetime.now(timezone.utc)
    elif when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M") + " UTC"

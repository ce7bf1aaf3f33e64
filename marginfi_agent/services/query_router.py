"""Free-text query router over a ReportCollection.

Intents are tried in priority order and the first match wins:

1. "show all banks"          full bullet listing
2. greeting only             welcome line with bank count and asset total
3. "banks?"                  top 3 banks by assets
4. "total" / "combined"      asset and liability totals
5. "top|highest|best [N] [assets|liabilities|banks]"
                             top N by the metric (defaults: 3, assets)
6. mentions "assets"         asset total
7. mentions "liabilities"    liability total
8. ticker                    that bank's detail, or an explicit "no data"
9. anything else             asset total

A message that names a known symbol, or carries an upper-case ticker-like
token, is answered as a ticker query before intents 6 and 7.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

from ..formatting import format_usd, short_utc_timestamp
from ..models import BankReport, ReportCollection

logger = logging.getLogger(__name__)

NO_DATA = "No data available right now."
DEFAULT_TOP_N = 3

_SHOW_ALL_RE = re.compile(r"show all banks", re.IGNORECASE)
_GREETING_RE = re.compile(
    r"^\s*(hello|hi|hey|gm|good\s+(morning|afternoon|evening))[\s!.,]*$",
    re.IGNORECASE,
)
_BANKS_RE = re.compile(r"^\s*banks\??\s*$", re.IGNORECASE)
_TOTAL_RE = re.compile(r"\b(total|combined)\b", re.IGNORECASE)
_TOP_RE = re.compile(
    r"\b(?:top|highest|best)\s+(\d+)?\s*(assets|liabilities|banks)?", re.IGNORECASE
)
_ASSETS_RE = re.compile(r"assets", re.IGNORECASE)
_LIABILITIES_RE = re.compile(r"liabilities", re.IGNORECASE)
_WORD_RE = re.compile(r"[A-Za-z][A-Za-z0-9]*")
_TICKER_RE = re.compile(r"^[A-Z][A-Z0-9]{1,9}$")

# Words that carry routing meaning (or are plain filler) and are never tickers
KEYWORDS = frozenset(
    {
        "A", "ALL", "AND", "ANY", "APY", "ARE", "ASSET", "ASSETS", "BANK",
        "BANKS", "BEST", "BORROW", "BORROWING", "BY", "COMBINED", "DATA",
        "DOCS", "FOR", "GM", "GOOD", "HELLO", "HEY", "HI", "HIGHEST", "HOW",
        "I", "IN", "IS", "LEND", "LENDING", "LIABILITIES", "LIABILITY", "LIST",
        "MARGINFI", "ME", "MUCH", "OF", "ON", "OVERVIEW", "PLEASE", "SHOW",
        "TELL", "THE", "TOP", "TOTAL", "TVL", "USD", "WHAT", "WHATS", "WHICH",
    }
)


class Intent(str, Enum):
    SHOW_ALL = "show_all"
    GREETING = "greeting"
    BANKS = "banks"
    TOTAL = "total"
    TOP_N = "top_n"
    ASSETS = "assets"
    LIABILITIES = "liabilities"
    TICKER = "ticker"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class RoutedQuery:
    intent: Intent
    count: int = DEFAULT_TOP_N
    metric: str = "assets"
    symbol: str = ""


def _known_symbols(collection: ReportCollection | None) -> set[str]:
    if collection is None:
        return set()
    return {
        r.token_symbol.upper()
        for r in collection
        if r.token_symbol and r.token_symbol != "Unknown"
    }


def _ticker_mention(message: str, known: set[str]) -> str | None:
    """First known symbol, else first upper-case non-keyword token."""
    words = _WORD_RE.findall(message)
    for word in words:
        if word.upper() in known:
            return word.upper()
    for word in words:
        if _TICKER_RE.match(word) and word not in KEYWORDS:
            return word
    return None


def classify(message: str, collection: ReportCollection | None = None) -> RoutedQuery:
    """Decide which view a message asks for."""
    if _SHOW_ALL_RE.search(message):
        return RoutedQuery(Intent.SHOW_ALL)
    if _GREETING_RE.match(message):
        return RoutedQuery(Intent.GREETING)
    if _BANKS_RE.match(message):
        return RoutedQuery(Intent.BANKS, count=DEFAULT_TOP_N, metric="assets")
    if _TOTAL_RE.search(message):
        return RoutedQuery(Intent.TOTAL)

    top = _TOP_RE.search(message)
    if top:
        count = int(top.group(1)) if top.group(1) else DEFAULT_TOP_N
        metric = (top.group(2) or "assets").lower()
        return RoutedQuery(
            Intent.TOP_N,
            count=count or DEFAULT_TOP_N,
            metric="liabilities" if metric == "liabilities" else "assets",
        )

    ticker = _ticker_mention(message, _known_symbols(collection))
    if ticker:
        return RoutedQuery(Intent.TICKER, symbol=ticker)

    if _ASSETS_RE.search(message):
        return RoutedQuery(Intent.ASSETS)
    if _LIABILITIES_RE.search(message):
        return RoutedQuery(Intent.LIABILITIES)

    words = _WORD_RE.findall(message)
    if len(words) == 1 and words[0].upper() not in KEYWORDS:
        return RoutedQuery(Intent.TICKER, symbol=words[0].upper())

    return RoutedQuery(Intent.FALLBACK)


# ----------------------------------------------------------------------
# Renderers
# ----------------------------------------------------------------------


def _timestamp(collection: ReportCollection) -> str:
    return short_utc_timestamp(collection.fetched_at)


def format_bank_detail(report: BankReport) -> str:
    return (
        f"**{report.token_symbol}**\n"
        f"- **Address**: {report.address}\n"
        f"- **Mint**: {report.mint}\n"
        f"- **State**: {report.state.value}\n"
        f"- **Assets**: {report.assets_display}\n"
        f"- **Liabilities**: {report.liabilities_display}\n"
        f"- **TVL**: {report.tvl_display}\n"
        f"- **Utilization**: {report.utilization_display}\n"
        f"- **Lending APY**: {report.lending_apy_display}\n"
        f"- **Borrowing APY**: {report.borrowing_apy_display}"
    )


def render_full_listing(collection: ReportCollection | None) -> str:
    if not collection:
        return NO_DATA
    out = f"As of {_timestamp(collection)}, here is a bullet list of all known banks:\n\n"
    for r in collection:
        out += (
            f"• {r.token_symbol} (Address: {r.address})\n"
            f"   - Assets: {r.assets_display}\n"
            f"   - Liabilities: {r.liabilities_display}\n"
            f"   - Lending APY: {r.lending_apy_display}\n"
            f"   - Borrowing APY: {r.borrowing_apy_display}\n\n"
        )
    return out.strip()


def render_greeting(collection: ReportCollection | None) -> str:
    if not collection:
        return (
            "Hello! Welcome to MarginFi. No bank data is available right now, "
            "but I can still answer general questions. How can I assist you today?"
        )
    return (
        f"Hello! Welcome to MarginFi, where {len(collection)} banks manage "
        f"~{format_usd(collection.total_assets_usd)} in total assets "
        f"(as of {_timestamp(collection)}). How can I assist you today?"
    )


def render_top_n(collection: ReportCollection, n: int, metric: str) -> str:
    def value(r: BankReport) -> float:
        if metric == "liabilities":
            return r.liability_value_usd
        return r.asset_value_usd

    valid = [r for r in collection if value(r) > 0]
    if not valid:
        return f"No banks have sufficient {metric} data to display."

    # sorted() is stable, ties keep collection order
    ranked = sorted(valid, key=value, reverse=True)[:n]

    out = f"As of {_timestamp(collection)}, here are the top {n} banks by **{metric}**:\n"
    for i, r in enumerate(ranked, start=1):
        out += (
            f"{i}. **{r.token_symbol}** (Address: {r.address})\n"
            f"   - **Assets**: {r.assets_display}\n"
            f"   - **Liabilities**: {r.liabilities_display}\n"
            f"   - **Lending APY**: {r.lending_apy_display}\n"
            f"   - **Borrowing APY**: {r.borrowing_apy_display}\n\n"
        )
    if len(valid) > n:
        out += (
            "Would you like to see more banks or sort by another metric? "
            "(e.g. liabilities or APY)"
        )
    return out.strip()


def render_assets_summary(collection: ReportCollection) -> str:
    return (
        f"As of {_timestamp(collection)}, total assets across all MarginFi banks "
        f"are ~{format_usd(collection.total_assets_usd)}."
    )


def render_liabilities_summary(collection: ReportCollection) -> str:
    return (
        f"As of {_timestamp(collection)}, total liabilities across all MarginFi banks "
        f"are ~{format_usd(collection.total_liabilities_usd)}."
    )


def render_total_summary(collection: ReportCollection) -> str:
    return (
        f"As of {_timestamp(collection)}, total assets across all MarginFi banks "
        f"are ~{format_usd(collection.total_assets_usd)}, and total liabilities "
        f"are ~{format_usd(collection.total_liabilities_usd)}."
    )


def render_ticker(collection: ReportCollection, symbol: str) -> str:
    matched = collection.by_symbol(symbol)
    if not matched:
        return (
            f"No data found for {symbol}. If you're sure {symbol} is supported, "
            f"please try again later."
        )
    details = "\n\n".join(format_bank_detail(r) for r in matched)
    return f"As of {_timestamp(collection)}, here is the data for {symbol}:\n\n{details}"


def route(message: str, collection: ReportCollection | None) -> str:
    """Answer a free-text query from the given collection. Never raises."""
    query = classify(message, collection)
    logger.debug("Routed %r as %s", message, query.intent.value)

    if query.intent is Intent.SHOW_ALL:
        return render_full_listing(collection)
    if query.intent is Intent.GREETING:
        return render_greeting(collection)
    if not collection:
        return NO_DATA

    if query.intent in (Intent.BANKS, Intent.TOP_N):
        return render_top_n(collection, query.count, query.metric)
    if query.intent is Intent.TOTAL:
        return render_total_summary(collection)
    if query.intent is Intent.TICKER:
        return render_ticker(collection, query.symbol)
    if query.intent is Intent.LIABILITIES:
        return render_liabilities_summary(collection)
    return render_assets_summary(collection)

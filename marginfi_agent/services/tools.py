"""Analytics tools the completion service can call during a chat turn.

Each tool pairs a pydantic model for its arguments with a handler over the
report cache, the last decoded protocol state, or the rate history. Results
and failures are both plain dicts; a failure is ``{"error": ...}``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal

import pydantic
from pydantic import BaseModel, Field

from ..protocols.marginfi.adapter import MarginfiState
from . import analytics
from .rate_history import RateHistory
from .report_cache import ReportCache

logger = logging.getLogger(__name__)

NO_DATA = {"error": "No bank data is available right now."}


class NoArgs(BaseModel):
    pass


class TopBanksArgs(BaseModel):
    by: Literal[
        "lending_apy", "borrowing_apy", "tvl", "utilization", "assets", "liabilities"
    ] = "lending_apy"
    limit: int = Field(5, ge=1, le=50)


class MintArgs(BaseModel):
    mint: str = Field(min_length=1, description="Token mint address of the bank")


class NetApyArgs(MintArgs):
    incentive_yield: float = Field(
        0.0, ge=0, description="Annual incentive yield as a fraction"
    )


class RateHistoryArgs(MintArgs):
    timeframe: Literal["1d", "7d", "30d"] = "7d"


class FilteredBanksArgs(BaseModel):
    utilization_min: float | None = Field(None, ge=0, le=1)
    utilization_max: float | None = Field(None, ge=0, le=1)
    exclude_mints: list[str] = Field(default_factory=list)


class LiquidationsArgs(BaseModel):
    limit: int = Field(10, ge=1, le=100)


class AccountArgs(BaseModel):
    account_id: str = Field(min_length=1)


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    arguments: type[BaseModel]
    # Label for tools with no data source; calling one yields an error result
    unimplemented: str = ""

    def to_openai(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.arguments.model_json_schema(),
            },
        }


TOOLS = (
    ToolSpec("get_top_banks", "Rank MarginFi banks by a metric.", TopBanksArgs),
    ToolSpec("get_total_tvl", "Total value locked across priced banks.", NoArgs),
    ToolSpec("get_bank_detail", "Rates, utilization and TVL of one bank.", MintArgs),
    ToolSpec(
        "get_net_apy",
        "Gross and net lending/borrowing APYs of one bank.",
        NetApyArgs,
    ),
    ToolSpec(
        "get_filtered_banks",
        "Banks whose utilization (0-1) falls inside the given bounds.",
        FilteredBanksArgs,
    ),
    ToolSpec(
        "get_historical_rates",
        "Daily average lending and borrowing APYs of one bank.",
        RateHistoryArgs,
    ),
    ToolSpec(
        "get_volatility",
        "Standard deviation of one bank's lending APY.",
        RateHistoryArgs,
    ),
    ToolSpec(
        "get_best_looping_opportunity",
        "Best looping (recursive borrow) opportunity.",
        NoArgs,
        unimplemented="Looping opportunity analysis",
    ),
    ToolSpec(
        "get_liquidations",
        "Recent liquidation events.",
        LiquidationsArgs,
        unimplemented="Liquidation history",
    ),
    ToolSpec(
        "get_account_balance_summary",
        "Balances of one MarginFi account.",
        AccountArgs,
        unimplemented="Account balance lookup",
    ),
    ToolSpec(
        "get_top_banks_by_emissions",
        "Banks ranked by emissions rewards.",
        NoArgs,
        unimplemented="Emissions ranking",
    ),
)

TOOLS_BY_NAME = {tool.name: tool for tool in TOOLS}


def _argument_errors(error: pydantic.ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'arguments'}: {err['msg']}"
        for err in error.errors()
    )


class AnalyticsTools:
    """Runs tool calls against live analytics."""

    def __init__(
        self,
        cache: ReportCache,
        state: Callable[[], MarginfiState | None],
        history: RateHistory,
    ) -> None:
        self.cache = cache
        self._state = state
        self.history = history
        self._handlers: dict[str, Callable[[Any], Awaitable[dict[str, Any]]]] = {
            "get_top_banks": self._top_banks,
            "get_total_tvl": self._total_tvl,
            "get_bank_detail": self._bank_detail,
            "get_net_apy": self._net_apy,
            "get_filtered_banks": self._filtered_banks,
            "get_historical_rates": self._historical_rates,
            "get_volatility": self._volatility,
        }

    @property
    def specs(self) -> list[dict[str, Any]]:
        return [tool.to_openai() for tool in TOOLS]

    async def dispatch(self, name: str, arguments: str) -> dict[str, Any]:
        """Run tool ``name`` with JSON ``arguments``; never raises for bad input."""
        tool = TOOLS_BY_NAME.get(name)
        if tool is None:
            logger.warning("Completion requested unknown tool %s", name)
            return {"error": f"Unknown tool '{name}'"}
        if tool.unimplemented:
            return {"error": f"{tool.unimplemented} is not implemented; no data is available."}

        try:
            args = tool.arguments.model_validate_json(arguments or "{}")
        except pydantic.ValidationError as e:
            logger.warning("Invalid arguments for tool %s: %s", name, arguments)
            return {"error": f"Invalid arguments for {name}: {_argument_errors(e)}"}

        try:
            return await self._handlers[name](args)
        except ValueError as e:
            return {"error": str(e)}

    async def _top_banks(self, args: TopBanksArgs) -> dict[str, Any]:
        collection = await self.cache.get()
        if collection is None:
            return NO_DATA
        return analytics.top_banks(collection, by=args.by, limit=args.limit)

    async def _total_tvl(self, args: NoArgs) -> dict[str, Any]:
        collection = await self.cache.get()
        if collection is None:
            return NO_DATA
        return analytics.total_tvl(collection)

    async def _bank_detail(self, args: MintArgs) -> dict[str, Any]:
        collection = await self.cache.get()
        if collection is None:
            return NO_DATA
        return analytics.bank_detail(collection, args.mint)

    async def _net_apy(self, args: NetApyArgs) -> dict[str, Any]:
        # A cache read populates the state on first use
        if await self.cache.get() is None:
            return NO_DATA
        state = self._state()
        if state is None:
            return NO_DATA
        return analytics.net_apy(state, args.mint, args.incentive_yield)

    async def _filtered_banks(self, args: FilteredBanksArgs) -> dict[str, Any]:
        collection = await self.cache.get()
        if collection is None:
            return NO_DATA
        return analytics.filtered_banks(
            collection,
            utilization_min=args.utilization_min,
            utilization_max=args.utilization_max,
            exclude_mints=args.exclude_mints,
        )

    async def _historical_rates(self, args: RateHistoryArgs) -> dict[str, Any]:
        return analytics.historical_rates(self.history, args.mint, args.timeframe)

    async def _volatility(self, args: RateHistoryArgs) -> dict[str, Any]:
        return analytics.volatility(self.history, args.mint, args.timeframe)

"""Command-line interface for the MarginFi agent."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from .chains.solana import SolanaClient
from .config import AppConfig, load_config, require_completion
from .errors import ConfigurationError, FetchError, UpstreamError
from .formatting import format_usd
from .logging_setup import configure_logging
from .protocols.marginfi import write_snapshot
from .services import analytics, query_router
from .services.aggregator import BankAggregator
from .services.chat import DEFAULT_SESSION, ChatService

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2

COMMANDS = frozenset(
    {"ask", "chat", "query", "banks", "tvl", "net-apy", "prefetch", "serve"}
)
# Global options that consume the following argument
_VALUE_OPTIONS = frozenset({"--config", "--log-level"})


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="marginfi-agent",
        description="MarginFi bank analytics and chat assistant",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    ask = sub.add_parser("ask", help="Answer a query directly from bank data")
    ask.add_argument("query", nargs="+", help="Free-text query, e.g. 'top 3 liabilities'")

    chat = sub.add_parser("chat", help="Ask the chat assistant")
    chat.add_argument("query", nargs="+", help="Message for the assistant")

    query = sub.add_parser(
        "query",
        help="Free-text query: the assistant when configured, else bank data "
        "(also used for a bare query with no command)",
    )
    query.add_argument("query", nargs="+", help="Free-text query")

    banks = sub.add_parser("banks", help="List banks, optionally filtered by utilization")
    banks.add_argument("--min-util", type=float, default=None, help="Minimum utilization (0-1)")
    banks.add_argument("--max-util", type=float, default=None, help="Maximum utilization (0-1)")
    banks.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="MINT",
        help="Mint to exclude (repeatable)",
    )

    sub.add_parser("tvl", help="Total value locked across priced banks")

    net_apy = sub.add_parser("net-apy", help="Gross and net APYs for one mint")
    net_apy.add_argument("mint", help="Token mint address")

    prefetch = sub.add_parser("prefetch", help="Write an offline snapshot of all banks")
    prefetch.add_argument("output", help="Path of the snapshot JSON to write")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None, help="Bind host (overrides config)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (overrides config)")

    return parser


def normalize_argv(argv: list[str]) -> list[str]:
    """Route a bare free-text query, e.g. ``marginfi-agent "top 3 banks"``, to ``query``."""
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg in _VALUE_OPTIONS:
            i += 2
        elif arg.startswith("-"):
            i += 1
        elif arg in COMMANDS:
            return argv
        else:
            return argv[:i] + ["query"] + argv[i:]
    return argv


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, indent=2))


async def _run(args: argparse.Namespace, config: AppConfig) -> int:
    """Execute the selected command and return the exit code."""
    if args.command == "prefetch":
        count = await write_snapshot(
            SolanaClient(config.solana),
            config.marginfi.program_id,
            config.marginfi.group,
            args.output,
        )
        print(f"Wrote {count} banks to {args.output}")
        return EXIT_OK

    if args.command == "chat" or (args.command == "query" and config.completion.api_key):
        require_completion(config)
        service = ChatService.from_config(config)
        print(await service.handle(DEFAULT_SESSION, " ".join(args.query)))
        return EXIT_OK

    aggregator = BankAggregator.from_config(config)
    collection = await aggregator.fetch_reports()

    if args.command in ("ask", "query"):
        print(query_router.route(" ".join(args.query), collection))
    elif args.command == "banks":
        result = analytics.filtered_banks(
            collection, args.min_util, args.max_util, args.exclude
        )
        selected = {bank["address"] for bank in result["banks"]}
        for report in collection:
            if report.address not in selected:
                continue
            print(
                f"{report.token_symbol:<10} {report.address}  "
                f"state={report.state.value}  "
                f"assets={report.assets_display}  "
                f"liabilities={report.liabilities_display}  "
                f"util={report.utilization_display}  "
                f"lend={report.lending_apy_display}  "
                f"borrow={report.borrowing_apy_display}"
            )
        print(f"{result['count']} banks")
    elif args.command == "tvl":
        result = analytics.total_tvl(collection)
        print(
            f"Total TVL: {format_usd(result['total_tvl'])} "
            f"({result['priced_bank_count']} of {result['bank_count']} banks priced)"
        )
    elif args.command == "net-apy":
        result = analytics.net_apy(aggregator.last_state, args.mint)
        _print_json(result)
        if "error" in result:
            return EXIT_FAILURE
    return EXIT_OK


def _serve(args: argparse.Namespace, config: AppConfig) -> int:
    import uvicorn

    from .api import create_app

    require_completion(config)
    app = create_app(
        config_path=args.config, cors_origins=config.server.cors_origins
    )
    uvicorn.run(
        app,
        host=args.host or config.server.host,
        port=args.port or config.server.port,
    )
    return EXIT_OK


def main(argv: list[str] | None = None) -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args(normalize_argv(sys.argv[1:] if argv is None else list(argv)))

    if not args.command:
        parser.print_help()
        sys.exit(EXIT_FAILURE)

    configure_logging(args.log_level)

    try:
        config = load_config(args.config)
        if args.command == "serve":
            code = _serve(args, config)
        else:
            code = asyncio.run(_run(args, config))
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(EXIT_CONFIG)
    except (FetchError, UpstreamError) as e:
        logger.error("%s", e)
        sys.exit(EXIT_FAILURE)

    sys.exit(code)

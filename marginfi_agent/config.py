"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from solders.keypair import Keypair

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Network constants
# ---------------------------------------------------------------------------

PRODUCTION_PROGRAM_ID = "MFv2hWf31Z9kbCa1snEPYctwafyhdvnV7FZnsebVacA"
PRODUCTION_GROUP = "4qp6Fx6tnZkY5Wropq9wUYgtFxXKwE6viZxFHg3rdAG8"
DEV_PROGRAM_ID = "neetcne3Ctrrud7vLdt2ypMm21gZHGN2mCmqWaMVcBQ"

_NETWORK_ALIASES = {
    "production": "production",
    "mainnet": "production",
    "mainnet-beta": "production",
    "dev": "dev",
    "devnet": "dev",
}

_NETWORK_DEFAULTS: dict[str, tuple[str, str]] = {
    "production": (PRODUCTION_PROGRAM_ID, PRODUCTION_GROUP),
    "dev": (DEV_PROGRAM_ID, ""),
}

DEFAULT_SYMBOL_OVERRIDES = {
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v": "USDC",
    "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB": "USDT",
    "So11111111111111111111111111111111111111112": "SOL",
    "J1toso1uCk3RLmjorhTtrVwY9HJ7X8V9yYac6Y7kGCPn": "JitoSOL",
}

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SolanaConfig:
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 20
    commitment: str = "confirmed"


@dataclass(frozen=True)
class MarginfiConfig:
    network: str = "production"
    program_id: str = PRODUCTION_PROGRAM_ID
    group: str = PRODUCTION_GROUP
    snapshot_path: str = ""


@dataclass(frozen=True)
class WalletConfig:
    secret_key_json: str = ""


@dataclass(frozen=True)
class CacheConfig:
    ttl_seconds: float = 60.0
    refresh_interval_seconds: float = 0.0


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feeds: dict[str, str] = field(default_factory=dict)
    timeout: int = 15


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "pyth"
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class TokensConfig:
    registry_url: str = (
        "https://raw.githubusercontent.com/solana-labs/token-list/main/"
        "src/tokens/solana.tokenlist.json"
    )
    overrides: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_SYMBOL_OVERRIDES)
    )
    truncate_unknown_mints: bool = False


@dataclass(frozen=True)
class CompletionConfig:
    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 512
    top_p: float = 1.0
    timeout: int = 45


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3001
    cors_origins: tuple[str, ...] = ("*",)


@dataclass(frozen=True)
class AppConfig:
    solana: SolanaConfig = field(default_factory=SolanaConfig)
    marginfi: MarginfiConfig = field(default_factory=MarginfiConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)
    tokens: TokensConfig = field(default_factory=TokensConfig)
    completion: CompletionConfig = field(default_factory=CompletionConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_solana(raw: dict[str, Any]) -> SolanaConfig:
    endpoints = [e.strip() for e in raw.get("rpc_endpoints", []) or [] if e and e.strip()]
    return SolanaConfig(
        rpc_endpoints=tuple(endpoints),
        rpc_timeout=int(raw.get("rpc_timeout", 20)),
        commitment=raw.get("commitment", "confirmed") or "confirmed",
    )


def _build_marginfi(raw: dict[str, Any]) -> MarginfiConfig:
    network_raw = (raw.get("network") or "production").strip().lower()
    network = _NETWORK_ALIASES.get(network_raw)
    if network is None:
        raise ConfigurationError(
            f"Unknown MarginFi network '{network_raw}' (expected production or dev)"
        )
    default_program, default_group = _NETWORK_DEFAULTS[network]
    return MarginfiConfig(
        network=network,
        program_id=raw.get("program_id") or default_program,
        group=raw.get("group") or default_group,
        snapshot_path=raw.get("snapshot_path") or "",
    )


def _build_cache(raw: dict[str, Any]) -> CacheConfig:
    return CacheConfig(
        ttl_seconds=float(raw.get("ttl_seconds", 60.0)),
        refresh_interval_seconds=float(raw.get("refresh_interval_seconds", 0.0)),
    )


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {}) or {}
    return PriceOracleConfig(
        provider=raw.get("provider", "pyth"),
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            feeds=dict(pyth_raw.get("feeds", {}) or {}),
            timeout=int(pyth_raw.get("timeout", 15)),
        ),
    )


def _build_tokens(raw: dict[str, Any]) -> TokensConfig:
    overrides = dict(DEFAULT_SYMBOL_OVERRIDES)
    overrides.update(raw.get("overrides", {}) or {})
    return TokensConfig(
        registry_url=raw.get("registry_url", TokensConfig.registry_url),
        overrides=overrides,
        truncate_unknown_mints=bool(raw.get("truncate_unknown_mints", False)),
    )


def _build_completion(raw: dict[str, Any]) -> CompletionConfig:
    return CompletionConfig(
        api_key=raw.get("api_key", "") or "",
        base_url=(raw.get("base_url") or CompletionConfig.base_url).rstrip("/"),
        model=raw.get("model") or CompletionConfig.model,
        temperature=float(raw.get("temperature", 0.7)),
        max_tokens=int(raw.get("max_tokens", 512)),
        top_p=float(raw.get("top_p", 1.0)),
        timeout=int(raw.get("timeout", 45)),
    )


def _build_server(raw: dict[str, Any]) -> ServerConfig:
    return ServerConfig(
        host=raw.get("host", "0.0.0.0"),
        port=int(raw.get("port", 3001)),
        cors_origins=tuple(raw.get("cors_origins", ["*"])),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (two levels up from this file).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        solana=_build_solana(raw.get("solana", {}) or {}),
        marginfi=_build_marginfi(raw.get("marginfi", {}) or {}),
        wallet=WalletConfig(
            secret_key_json=(raw.get("wallet", {}) or {}).get("secret_key_json", "") or ""
        ),
        cache=_build_cache(raw.get("cache", {}) or {}),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {}) or {}),
        tokens=_build_tokens(raw.get("tokens", {}) or {}),
        completion=_build_completion(raw.get("completion", {}) or {}),
        server=_build_server(raw.get("server", {}) or {}),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def load_keypair(secret_key_json: str) -> Keypair:
    """Parse a JSON array of 64 secret-key bytes into a Keypair."""
    if not secret_key_json:
        raise ConfigurationError("Missing signing key (wallet.secret_key_json)")
    try:
        raw = json.loads(secret_key_json)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Signing key is not valid JSON: {e}") from e
    if not isinstance(raw, list):
        raise ConfigurationError("Signing key must be a JSON array of bytes")
    try:
        return Keypair.from_bytes(bytes(raw))
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Signing key is malformed: {e}") from e


def require_completion(cfg: AppConfig) -> None:
    """Raise unless the completion service is configured."""
    if not cfg.completion.api_key:
        raise ConfigurationError("Missing completion API key (completion.api_key)")


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.solana.rpc_endpoints and not cfg.marginfi.snapshot_path:
        raise ConfigurationError("At least one Solana RPC endpoint must be configured")
    if not cfg.marginfi.group:
        raise ConfigurationError(
            f"No MarginFi group configured for network '{cfg.marginfi.network}'"
        )
    if cfg.cache.ttl_seconds <= 0:
        raise ConfigurationError("cache.ttl_seconds must be positive")
    load_keypair(cfg.wallet.secret_key_json)

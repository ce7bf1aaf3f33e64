"""Solana JSON-RPC client with fallback support."""
from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ...config import SolanaConfig
from ...errors import FetchError

logger = logging.getLogger(__name__)


def _decode_account_data(account: dict[str, Any]) -> bytes:
    """Return raw bytes from an account's ``["<b64>", "base64"]`` data field."""
    data = account.get("data")
    if not isinstance(data, list) or len(data) != 2 or data[1] != "base64":
        raise FetchError(f"Unexpected account data encoding: {data!r:.80}")
    try:
        return base64.b64decode(data[0])
    except (binascii.Error, TypeError) as e:
        raise FetchError(f"Account data is not valid base64: {e}") from e


class SolanaClient:
    """Solana RPC client with automatic endpoint fallback."""

    def __init__(self, config: SolanaConfig) -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.commitment = config.commitment
        self.current_rpc_index = 0

    async def rpc_call(self, method: str, params: list[Any]) -> Any:
        """Make RPC call with fallback to alternative endpoints."""
        if not self.endpoints:
            raise FetchError("No RPC endpoints configured")

        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.post(
                        rpc_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        result = await response.json()
                        if not isinstance(result, dict):
                            raise FetchError(f"Malformed RPC response: {result!r:.80}")
                        if "error" in result:
                            raise FetchError(f"RPC Error: {result['error']}")

                        if rpc_index != self.current_rpc_index:
                            logger.info("Switched to RPC endpoint: %s", rpc_url)
                            self.current_rpc_index = rpc_index

                        return result.get("result")
            except (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError, ValueError, FetchError) as e:
                last_error = e
                logger.warning("RPC endpoint %s failed: %s", rpc_url, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

        raise FetchError(f"All RPC endpoints failed. Last error: {last_error}")

    async def get_account_info(self, pubkey: str) -> bytes | None:
        """Raw data of a single account, or None if it does not exist."""
        result = await self.rpc_call(
            "getAccountInfo",
            [pubkey, {"encoding": "base64", "commitment": self.commitment}],
        )
        if not isinstance(result, dict):
            raise FetchError(f"Malformed getAccountInfo result for {pubkey}")
        value = result.get("value")
        if value is None:
            return None
        return _decode_account_data(value)

    async def get_program_accounts(
        self, program_id: str, filters: list[dict[str, Any]]
    ) -> dict[str, bytes]:
        """Map of account address → raw data for a program, in response order."""
        result = await self.rpc_call(
            "getProgramAccounts",
            [
                program_id,
                {
                    "encoding": "base64",
                    "commitment": self.commitment,
                    "filters": filters,
                },
            ],
        )
        if not isinstance(result, list):
            raise FetchError("Malformed getProgramAccounts result")

        accounts: dict[str, bytes] = {}
        for item in result:
            pubkey = item.get("pubkey") if isinstance(item, dict) else None
            account = item.get("account") if isinstance(item, dict) else None
            if not pubkey or not isinstance(account, dict):
                raise FetchError(f"Malformed program account entry: {item!r:.80}")
            accounts[pubkey] = _decode_account_data(account)
        return accounts

"""Offline snapshot of bank accounts, a drop-in substitute for live RPC."""
from __future__ import annotations

import base64
import binascii
import json
import logging
from pathlib import Path
from typing import Any

from ...errors import FetchError
from ...interfaces.chain import ChainClient
from . import parser
from .adapter import bank_filters

logger = logging.getLogger(__name__)


class SnapshotBankSource:
    """Bank accounts read from a prefetched JSON file.

    File layout::

        {
          "groupConfig": {"programId": "...", "groupPk": "..."},
          "marginfiGroup": {"data": "<base64>"},
          "banks": [{"address": "...", "data": "<base64>", "mintAddress": "..."}]
        }
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        try:
            with open(self.path) as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise FetchError(f"Cannot read snapshot {self.path}: {e}") from e

    async def fetch_bank_accounts(self) -> dict[str, bytes]:
        snapshot = self._load()
        banks = snapshot.get("banks")
        if not isinstance(banks, list):
            raise FetchError(f"Snapshot {self.path} has no 'banks' list")

        accounts: dict[str, bytes] = {}
        for record in banks:
            address = record.get("address")
            data = record.get("data")
            if not address or not data:
                logger.warning("Snapshot entry without address/data skipped")
                continue
            try:
                accounts[address] = base64.b64decode(data, validate=True)
            except binascii.Error:
                logger.warning("Snapshot entry %s has invalid base64; skipped", address)
        logger.info("Loaded %d bank accounts from snapshot %s", len(accounts), self.path)
        return accounts


async def write_snapshot(
    chain_client: ChainClient, program_id: str, group: str, path: str | Path
) -> int:
    """Fetch the group and its banks over RPC and write a snapshot file.

    Returns the number of banks written.
    """
    group_data = await chain_client.get_account_info(group)
    if group_data is None:
        raise FetchError(f"No group account found at {group}")

    accounts = await chain_client.get_program_accounts(program_id, bank_filters(group))

    banks: list[dict[str, str]] = []
    for address, data in accounts.items():
        record = {"address": address, "data": base64.b64encode(data).decode()}
        if len(data) >= parser.MINT_OFFSET + parser.PUBKEY_SIZE:
            record["mintAddress"] = parser.decode_pubkey(data, parser.MINT_OFFSET)
        banks.append(record)

    snapshot = {
        "groupConfig": {"programId": program_id, "groupPk": group},
        "marginfiGroup": {"data": base64.b64encode(group_data).decode()},
        "banks": banks,
    }

    path = Path(path)
    with open(path, "w") as f:
        json.dump(snapshot, f, indent=2)
    logger.info("Wrote %d banks to snapshot %s", len(banks), path)
    return len(banks)

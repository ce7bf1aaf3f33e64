"""Bank source protocol: where raw bank accounts come from (live RPC or snapshot)."""
from typing import Protocol


class BankSource(Protocol):
    """Abstract interface returning raw bank account buffers keyed by address."""

    async def fetch_bank_accounts(self) -> dict[str, bytes]: ...

"""Chain client protocol — blockchain RPC abstraction."""
from typing import Any, Protocol


class ChainClient(Protocol):
    """Abstract interface for Solana RPC interactions."""

    async def get_account_info(self, pubkey: str) -> bytes | None: ...

    async def get_program_accounts(
        self, program_id: str, filters: list[dict[str, Any]]
    ) -> dict[str, bytes]: ...

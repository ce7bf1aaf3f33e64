from .adapter import MarginfiReader, MarginfiState, RpcBankSource
from .snapshot import SnapshotBankSource, write_snapshot

__all__ = [
    "MarginfiReader",
    "MarginfiState",
    "RpcBankSource",
    "SnapshotBankSource",
    "write_snapshot",
]

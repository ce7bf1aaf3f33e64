"""Mint → symbol resolution."""
from .resolver import (
    OverrideSymbols,
    SymbolResolver,
    TokenRegistrySymbols,
    TruncatedMintSymbols,
)

__all__ = [
    "OverrideSymbols",
    "SymbolResolver",
    "TokenRegistrySymbols",
    "TruncatedMintSymbols",
]

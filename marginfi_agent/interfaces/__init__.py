"""Protocol interfaces for the MarginFi agent."""
from .bank_source import BankSource
from .chain import ChainClient
from .completion import CompletionClient
from .price_oracle import PriceOracle

__all__ = ["BankSource", "ChainClient", "CompletionClient", "PriceOracle"]

"""Service modules"""
from .aggregator import BankAggregator
from .chat import ChatService, SessionStore
from .report_cache import CacheState, ReportCache

__all__ = ["BankAggregator", "CacheState", "ChatService", "ReportCache", "SessionStore"]

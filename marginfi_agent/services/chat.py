"""Chat orchestration over session history, bank context and the completion service."""
from __future__ import annotations

import logging
import re

from ..completion import OpenAICompletionClient
from ..config import AppConfig
from ..errors import UpstreamError, ValidationError
from ..interfaces.completion import CompletionClient
from ..models import ChatMessage
from .aggregator import BankAggregator
from .analytics import unimplemented_topics
from .query_router import Intent, classify, render_full_listing, route
from .report_cache import ReportCache
from .tools import AnalyticsTools

logger = logging.getLogger(__name__)

DEFAULT_SESSION = "default"
REFRESHING_REPLY = "The data is currently being refreshed. Please try again in a moment."
FAILED_REPLY = "Sorry, I couldn't process that request. Please try again."

_BANK_DATA_RE = re.compile(
    r"bank|apy|assets|liabilities|marginfi|top|highest|best|total|combined",
    re.IGNORECASE,
)
_DOCS_RE = re.compile(r"docs|documentation|overview", re.IGNORECASE)
_ROUTED_INTENTS = (Intent.GREETING, Intent.TICKER)

CONTEXT_PREAMBLE = """\
You are a conversational assistant specializing in MarginFi on Solana.
Users may say "hello" or ask general questions; respond politely and informatively.

When users ask about MarginFi data:
- If data about a specific bank is requested, reference the bank data below if present.
- If a general overview is asked for, summarize the bank data or the protocol overview.
- If no data is available for the request, say "No data is available."

Keep answers clear for a user with moderate DeFi knowledge.
Use USD formatting (e.g. $1,234.56) for values and % for APYs."""

MARGINFI_OVERVIEW = """\
# MarginFi Protocol Overview

MarginFi is a decentralized, open-source protocol on Solana for
overcollateralized lending and borrowing.

**Lending.** Users deposit supported assets into per-asset pools ("banks").
Deposits earn interest that moves with supply and demand for the asset.

**Borrowing.** Borrowers post collateral worth more than the loan. Borrow
rates follow each bank's utilization-based interest curve: rates rise
gently up to an optimal utilization and steeply beyond it.

**Risk management.** Assets carry initial and maintenance weights, and
undercollateralized accounts can be liquidated to keep the protocol solvent.
Some assets are isolated and cannot be used as collateral alongside others.

**Oracles.** Prices come from oracle feeds such as Pyth and Switchboard.

**Cross-margining.** One margin account can hold several positions backed by
a shared pool of collateral.

This overview is informational only and is not investment advice. Verify
on-chain data and the official MarginFi documentation before acting."""


def needs_bank_data(message: str) -> bool:
    return bool(_BANK_DATA_RE.search(message))


def wants_docs(message: str) -> bool:
    return bool(_DOCS_RE.search(message))


class SessionStore:
    """In-memory conversation history per session id. Grows without bound."""

    def __init__(self) -> None:
        self._sessions: dict[str, list[ChatMessage]] = {}

    def append(self, session_id: str, role: str, content: str) -> None:
        self._sessions.setdefault(session_id, []).append(ChatMessage(role, content))

    def history(self, session_id: str) -> list[ChatMessage]:
        return list(self._sessions.get(session_id, []))

    def clear(self, session_id: str) -> None:
        self._sessions[session_id] = []

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions


class ChatService:
    """Answers one user turn at a time."""

    def __init__(
        self,
        cache: ReportCache,
        completion: CompletionClient,
        sessions: SessionStore | None = None,
        tools: AnalyticsTools | None = None,
    ) -> None:
        self.cache = cache
        self.completion = completion
        self.sessions = sessions or SessionStore()
        self.tools = tools

    @classmethod
    def from_config(cls, config: AppConfig) -> "ChatService":
        aggregator = BankAggregator.from_config(config)
        cache = ReportCache(aggregator.fetch_reports, ttl_seconds=config.cache.ttl_seconds)
        tools = AnalyticsTools(
            cache, lambda: aggregator.last_state, aggregator.rate_history
        )
        return cls(cache, OpenAICompletionClient(config.completion), tools=tools)

    async def build_context(self, message: str) -> str | None:
        """Bank context for ``message``; None when no data could be loaded."""
        collection = await self.cache.get()
        if collection is None:
            return None

        parts: list[str] = []
        query = classify(message, collection)
        if query.intent is Intent.SHOW_ALL:
            parts.append(render_full_listing(collection))
        elif query.intent in _ROUTED_INTENTS or needs_bank_data(message):
            parts.append(route(message, collection))

        if wants_docs(message):
            parts.append(MARGINFI_OVERVIEW)

        for topic in unimplemented_topics(message):
            parts.append(
                f"Data for {topic} is not available: this feature is not "
                f"implemented. Tell the user so and do not estimate figures."
            )

        return "\n\n".join(parts)

    async def handle(self, session_id: str, message: str) -> str:
        """Append the user turn, ask the completion service, record the reply.

        Raises:
            ValidationError: the message is empty.
            UpstreamError: the completion service failed.
        """
        if not message or not message.strip():
            raise ValidationError("Message is required.")

        self.sessions.append(session_id, "user", message)
        logger.info("[%s] User message (%d chars)", session_id, len(message))

        context = await self.build_context(message)
        if context is None:
            logger.warning("[%s] No bank data available; returning fallback", session_id)
            self.sessions.append(session_id, "assistant", REFRESHING_REPLY)
            return REFRESHING_REPLY

        final_context = f"{CONTEXT_PREAMBLE}\n\n{context}".strip()
        logger.debug("[%s] Context length=%d", session_id, len(final_context))

        history = self.sessions.history(session_id)
        try:
            if self.tools is None:
                reply = await self.completion.complete(history, final_context)
            else:
                reply = await self.completion.complete(
                    history,
                    final_context,
                    tools=self.tools.specs,
                    dispatch=self.tools.dispatch,
                )
        except UpstreamError:
            # Keep the history alternating so the next turn is well-formed
            self.sessions.append(session_id, "assistant", FAILED_REPLY)
            raise
        self.sessions.append(session_id, "assistant", reply)
        return reply

    def clear(self, session_id: str) -> None:
        self.sessions.clear(session_id)
        logger.info("[%s] Conversation cleared", session_id)

    def reset_cache(self) -> None:
        self.cache.invalidate()

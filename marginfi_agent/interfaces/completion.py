"""Completion client protocol — external language-completion service."""
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence

from ..models import ChatMessage


class CompletionClient(Protocol):
    """Abstract interface for a chat-completion backend."""

    async def complete(
        self,
        history: Sequence[ChatMessage],
        context: str = "",
        tools: Optional[Sequence[dict[str, Any]]] = None,
        dispatch: Optional[Callable[[str, str], Awaitable[dict[str, Any]]]] = None,
    ) -> str: ...

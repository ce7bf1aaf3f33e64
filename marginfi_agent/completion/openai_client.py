"""OpenAI-compatible chat-completions client."""
from __future__ import annotations

import asyncio
import json
import logging
import ssl
from typing import Any, Awaitable, Callable, Sequence

import aiohttp
import certifi

from ..config import CompletionConfig
from ..errors import UpstreamError
from ..models import ChatMessage

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = """\
You are an assistant specializing in the MarginFi lending protocol on Solana.
Users may send greetings or general questions; respond politely and helpfully.

When context data is provided, use it for MarginFi figures:
- Only reference banks or metrics that appear in the context.
- If the context says "No data found" for a bank, do NOT fabricate data.
- If asked about a bank that is not in the context, say that no data was found for it.
- If the context marks a topic as unavailable, say so instead of guessing.
- If the context is empty, greet or respond politely without inventing figures.

Use USD formatting (e.g. $1,234.56) for values and % for APYs.
Never invent or guess data beyond the provided context.
Tools may be available to look up live bank analytics; prefer them over guessing.
If a tool returns an error, tell the user the data is not available."""

# Rounds of tool calls allowed before the model must answer in text
MAX_TOOL_ROUNDS = 3

ToolDispatcher = Callable[[str, str], Awaitable[dict[str, Any]]]


class OpenAICompletionClient:
    """POST {base_url}/chat/completions with a fixed system instruction."""

    def __init__(self, config: CompletionConfig) -> None:
        self.api_key = config.api_key
        self.url = f"{config.base_url.rstrip('/')}/chat/completions"
        self.model = config.model
        self.temperature = config.temperature
        self.max_tokens = config.max_tokens
        self.top_p = config.top_p
        self.timeout = config.timeout

    def build_messages(
        self, history: Sequence[ChatMessage], context: str = ""
    ) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = [{"role": "system", "content": SYSTEM_INSTRUCTION}]
        if context:
            messages.append({"role": "system", "content": context})
        messages.extend({"role": m.role, "content": m.content} for m in history)
        return messages

    def build_payload(
        self,
        history: Sequence[ChatMessage],
        context: str = "",
        tools: Sequence[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        return self._payload(self.build_messages(history, context), tools)

    def _payload(
        self, messages: list[dict[str, Any]], tools: Sequence[dict[str, Any]] | None
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": list(messages),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
        }
        if tools:
            payload["tools"] = list(tools)
            payload["tool_choice"] = "auto"
        return payload

    async def complete(
        self,
        history: Sequence[ChatMessage],
        context: str = "",
        tools: Sequence[dict[str, Any]] | None = None,
        dispatch: ToolDispatcher | None = None,
    ) -> str:
        """Return the assistant's reply text.

        When ``tools`` and ``dispatch`` are given, tool calls requested by the
        model are run through ``dispatch(name, arguments_json)`` and their
        results sent back, for at most ``MAX_TOOL_ROUNDS`` rounds.

        Raises:
            UpstreamError: on HTTP errors, timeouts or a malformed response.
        """
        messages = self.build_messages(history, context)
        offered = tools if dispatch is not None else None

        for round_number in range(MAX_TOOL_ROUNDS + 1):
            final_round = round_number == MAX_TOOL_ROUNDS
            payload = self._payload(messages, None if final_round else offered)
            message = await self._request(payload)
            tool_calls = message.get("tool_calls") or []
            if not tool_calls or dispatch is None or final_round:
                break
            messages.append(
                {
                    "role": "assistant",
                    "content": message.get("content"),
                    "tool_calls": tool_calls,
                }
            )
            for call in tool_calls:
                messages.append(await self._run_tool(call, dispatch))

        content = message.get("content")
        logger.debug("Completion reply length=%d", len(content or ""))
        return content or ""

    async def _run_tool(self, call: Any, dispatch: ToolDispatcher) -> dict[str, Any]:
        if not isinstance(call, dict) or not isinstance(call.get("function"), dict):
            raise UpstreamError("Malformed tool call in completion response")
        function = call["function"]
        name = function.get("name", "")
        logger.info("Running tool %s", name)
        result = await dispatch(name, function.get("arguments") or "{}")
        return {
            "role": "tool",
            "tool_call_id": call.get("id", ""),
            "content": json.dumps(result),
        }

    async def _request(self, payload: dict[str, Any]) -> dict[str, Any]:
        """POST one completion request and return its first choice's message."""
        headers = {"Authorization": f"Bearer {self.api_key}"}

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.post(
                    self.url,
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status != 200:
                        body = await response.text()
                        logger.error(
                            "Completion request failed: HTTP %s %s",
                            response.status,
                            body[:500],
                        )
                        raise UpstreamError(
                            f"Completion service returned HTTP {response.status}"
                        )
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError) as e:
            logger.error("Error calling completion service: %s", e)
            raise UpstreamError(f"Completion service call failed: {e}") from e

        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamError("Malformed completion response") from e
        if not isinstance(message, dict):
            raise UpstreamError("Malformed completion response")
        return message

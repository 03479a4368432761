"""
Policy Client
=============
The decision-making policy behind the healing loop, modelled as an opaque
interface: given the transcript and the tool catalog, produce the next turn
(text and/or tool calls).

PolicyClient is the hosted implementation over raw HTTP (httpx):
    - Primary: Anthropic Messages API (tool_use / tool_result blocks)
    - Fallback: OpenAI-compatible chat completions (Groq)
    - The provider-neutral transcript is translated per provider on every call
    - Each provider gets max_retries attempts; HTTP 429 switches provider at once
    - When no provider produces a turn → PolicyUnavailableError (session-fatal)
"""
import json
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx

from healer.core.config import POLICY_MAX_TOKENS
from healer.core.errors import PolicyUnavailableError
from healer.llm.router import LLMRouter, ProviderConfig
from healer.models.turn import PolicyTurn, ToolCall, ToolResultTurn, Turn, UserTurn

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


class Policy(ABC):
    """Opaque decision-maker: transcript + tool catalog → next turn."""

    @abstractmethod
    async def get_next_turn(self, transcript: List[Turn], tools: List[dict], system_prompt: str) -> PolicyTurn:
        """Return the next policy turn. Raises PolicyUnavailableError when unreachable."""


# ---------------------------------------------------------------------------
# Anthropic translation
# ---------------------------------------------------------------------------
def to_anthropic_messages(transcript: List[Turn]) -> List[dict]:
    messages = []
    for turn in transcript:
        if isinstance(turn, UserTurn):
            messages.append({"role": "user", "content": turn.text})
        elif isinstance(turn, PolicyTurn):
            content = []
            if turn.text:
                content.append({"type": "text", "text": turn.text})
            for call in turn.tool_calls:
                content.append({"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments})
            messages.append({"role": "assistant", "content": content})
        elif isinstance(turn, ToolResultTurn):
            messages.append({
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": r.tool_call_id,
                        "content": r.content,
                        "is_error": r.is_error,
                    }
                    for r in turn.results
                ],
            })
    return messages


def to_anthropic_tools(tools: List[dict]) -> List[dict]:
    return [
        {"name": t["name"], "description": t["description"], "input_schema": t["input_schema"]}
        for t in tools
    ]


def parse_anthropic_response(data: dict) -> PolicyTurn:
    """Extract text and tool_use blocks. Raises ValueError on a malformed body."""
    blocks = data.get("content")
    if not isinstance(blocks, list):
        raise ValueError("Anthropic response has no content list")

    texts: List[str] = []
    calls: List[ToolCall] = []
    for block in blocks:
        if block.get("type") == "text":
            texts.append(block.get("text", ""))
        elif block.get("type") == "tool_use":
            calls.append(ToolCall(
                id=block["id"],
                name=block["name"],
                arguments=block.get("input") or {},
            ))
    return PolicyTurn(text="\n".join(t for t in texts if t), tool_calls=calls)


# ---------------------------------------------------------------------------
# OpenAI-compatible translation
# ---------------------------------------------------------------------------
def to_openai_messages(transcript: List[Turn], system_prompt: str) -> List[dict]:
    messages = [{"role": "system", "content": system_prompt}]
    for turn in transcript:
        if isinstance(turn, UserTurn):
            messages.append({"role": "user", "content": turn.text})
        elif isinstance(turn, PolicyTurn):
            message = {"role": "assistant", "content": turn.text or None}
            if turn.tool_calls:
                message["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                    }
                    for call in turn.tool_calls
                ]
            messages.append(message)
        elif isinstance(turn, ToolResultTurn):
            for r in turn.results:
                messages.append({"role": "tool", "tool_call_id": r.tool_call_id, "content": r.content})
    return messages


def to_openai_tools(tools: List[dict]) -> List[dict]:
    return [
        {
            "type": "function",
            "function": {"name": t["name"], "description": t["description"], "parameters": t["input_schema"]},
        }
        for t in tools
    ]


def parse_openai_response(data: dict) -> PolicyTurn:
    """Extract content and tool_calls. Raises ValueError on a malformed body."""
    choices = data.get("choices")
    if not choices:
        raise ValueError("OpenAI-compatible response has no choices")
    message = choices[0].get("message") or {}

    calls: List[ToolCall] = []
    for raw_call in message.get("tool_calls") or []:
        function = raw_call.get("function") or {}
        raw_args = function.get("arguments") or "{}"
        try:
            arguments = json.loads(raw_args) if isinstance(raw_args, str) else dict(raw_args)
        except (ValueError, TypeError):
            logger.warning("Unparseable tool arguments for %s: %.200s", function.get("name"), raw_args)
            arguments = {}
        if not isinstance(arguments, dict):
            arguments = {}
        calls.append(ToolCall(id=raw_call["id"], name=function.get("name", ""), arguments=arguments))
    return PolicyTurn(text=message.get("content") or "", tool_calls=calls)


# ---------------------------------------------------------------------------
# Policy Client
# ---------------------------------------------------------------------------
class PolicyClient(Policy):
    """
    Async HTTP policy client with provider fallback.

    Usage:
        client = PolicyClient()
        turn = await client.get_next_turn(transcript, TOOL_DEFINITIONS, SYSTEM_PROMPT)
        await client.close()
    """

    def __init__(
        self,
        router: Optional[LLMRouter] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_tokens: int = POLICY_MAX_TOKENS,
    ) -> None:
        self.router = router or LLMRouter()
        self.max_tokens = max_tokens
        self._http = client

    async def _get_http(self, timeout: float) -> httpx.AsyncClient:
        """Lazy-initialise the HTTP client."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()
            self._http = None

    async def get_next_turn(self, transcript: List[Turn], tools: List[dict], system_prompt: str) -> PolicyTurn:
        primary = self.router.get_provider()
        tried = [primary.name]
        turn = await self.call(primary, transcript, tools, system_prompt)
        if turn is not None:
            self.router.report_success(primary.name)
            return turn
        self.router.report_failure(primary.name)

        fallback = self.router.get_fallback_provider(*tried)
        while fallback is not None:
            tried.append(fallback.name)
            turn = await self.call(fallback, transcript, tools, system_prompt)
            if turn is not None:
                self.router.report_success(fallback.name)
                return turn
            self.router.report_failure(fallback.name)
            fallback = self.router.get_fallback_provider(*tried)

        raise PolicyUnavailableError(f"All policy providers failed ({', '.join(tried)})")

    async def call(
        self,
        provider: ProviderConfig,
        transcript: List[Turn],
        tools: List[dict],
        system_prompt: str,
    ) -> Optional[PolicyTurn]:
        """Try one provider up to max_retries times. Returns None on failure."""
        for attempt in range(1, provider.max_retries + 1):
            try:
                if provider.api_style == "anthropic":
                    return await self._call_anthropic(provider, transcript, tools, system_prompt)
                return await self._call_openai_compatible(provider, transcript, tools, system_prompt)
            except httpx.TimeoutException:
                logger.warning("Provider %s attempt %d: timeout", provider.name, attempt)
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                logger.warning("Provider %s attempt %d: HTTP %d", provider.name, attempt, status)
                if status == 429:  # Rate limit
                    break  # Don't retry, switch provider immediately
            except httpx.HTTPError as e:
                logger.warning("Provider %s attempt %d: %s", provider.name, attempt, e)
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("Provider %s attempt %d: unusable response: %s", provider.name, attempt, e)
        return None

    async def _call_anthropic(
        self,
        provider: ProviderConfig,
        transcript: List[Turn],
        tools: List[dict],
        system_prompt: str,
    ) -> PolicyTurn:
        http = await self._get_http(provider.timeout_seconds)
        headers = {
            "x-api-key": provider.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        payload = {
            "model": provider.model,
            "max_tokens": self.max_tokens,
            "system": system_prompt,
            "messages": to_anthropic_messages(transcript),
            "tools": to_anthropic_tools(tools),
        }
        resp = await http.post(f"{provider.base_url}/messages", json=payload, headers=headers)
        resp.raise_for_status()
        return parse_anthropic_response(resp.json())

    async def _call_openai_compatible(
        self,
        provider: ProviderConfig,
        transcript: List[Turn],
        tools: List[dict],
        system_prompt: str,
    ) -> PolicyTurn:
        http = await self._get_http(provider.timeout_seconds)
        headers = {
            "Authorization": f"Bearer {provider.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": provider.model,
            "messages": to_openai_messages(transcript, system_prompt),
            "tools": to_openai_tools(tools),
            "tool_choice": "auto",
            "max_tokens": self.max_tokens,
        }
        resp = await http.post(f"{provider.base_url}/chat/completions", json=payload, headers=headers)
        resp.raise_for_status()
        return parse_openai_response(resp.json())

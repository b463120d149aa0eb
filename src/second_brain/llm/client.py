# src/second_brain/llm/client.py

from __future__ import annotations

import json
import logging
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from ..core.conversation import Conversation, ProviderText, ToolCall, ToolTurn

logger = logging.getLogger(__name__)

_EFFORTS = {"minimal", "low", "medium", "high"}


class LLMError(RuntimeError):
    """The language provider is unreachable, misconfigured or refused the call."""


def _is_auth_error(exc: Exception) -> bool:
    return exc.__class__.__name__ in {
        "AuthenticationError",
        "PermissionDeniedError",
        "UnauthorizedError",
    }


def _is_rate_limit_error(exc: Exception) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    return exc.__class__.__name__ in {"RateLimitError", "TooManyRequestsError"}


def _is_connection_error(exc: Exception) -> bool:
    return exc.__class__.__name__ in {
        "APIConnectionError",
        "APITimeoutError",
        "ConnectTimeout",
        "ReadTimeout",
        "WriteTimeout",
    }


def _is_not_found_error(exc: Exception) -> bool:
    return exc.__class__.__name__ in {"NotFoundError"}


def _wrap_error(exc: Exception, model: str) -> LLMError:
    if _is_auth_error(exc):
        return LLMError("LLM authentication failed. Check your API key (BRAIN_LLM_API_KEY).")
    if _is_not_found_error(exc):
        return LLMError(f"LLM model not available: {model}. Check BRAIN_LLM_MODEL.")
    if _is_rate_limit_error(exc):
        return LLMError("LLM is rate-limited. Try again later.")
    if _is_connection_error(exc):
        return LLMError("LLM network/timeout error. Try again later.")
    return LLMError(f"LLM request failed ({exc.__class__.__name__}).")


def friendly_llm_error_message(err: Exception) -> str:
    msg = str(err).strip() or "LLM error."
    if "LLM API key is not set" in msg:
        return "LLM is not configured (missing API key). Set BRAIN_LLM_API_KEY in .env (see config.example.py)."
    if "LLM model is not set" in msg:
        return "LLM is not configured (no model). Set BRAIN_LLM_MODEL in .env (see config.example.py)."
    if "LLM base URL is not set" in msg:
        return "LLM is not configured (missing base URL). Set BRAIN_LLM_BASE_URL in .env (see config.example.py)."
    return msg


def find_thought_signature(obj: Any) -> str | None:
    """Search provider extras (any nesting) for a thought_signature value."""
    if isinstance(obj, dict):
        for key in ("thought_signature", "thoughtSignature"):
            value = obj.get(key)
            if isinstance(value, str) and value:
                return value
        for value in obj.values():
            found = find_thought_signature(value)
            if found:
                return found
    elif isinstance(obj, list):
        for value in obj:
            found = find_thought_signature(value)
            if found:
                return found
    return None


def _dump(obj: Any) -> Any:
    dump = getattr(obj, "model_dump", None)
    if callable(dump):
        return dump()
    return obj


def _decode_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        value = json.loads(raw or "{}")
    except (TypeError, ValueError):
        logger.warning("Undecodable tool arguments: %r", raw)
        return {}
    return value if isinstance(value, dict) else {}


class OpenAICompatibleProvider:
    """
    LLMProvider over any OpenAI-compatible chat-completions endpoint.

    Defaults point at Gemini's OpenAI-compatible API. Automatic retries are
    disabled: a failed call surfaces immediately as LLMError.
    """

    def __init__(self, settings: Any, *, client: AsyncOpenAI | None = None) -> None:
        api_key = getattr(settings, "llm_api_key", None)
        base_url = str(getattr(settings, "llm_base_url", "") or "")
        self.model = str(getattr(settings, "llm_model", "") or "").strip()
        self.send_effort = bool(getattr(settings, "llm_send_reasoning_effort", True))

        if not api_key or not str(api_key).strip():
            raise LLMError("LLM API key is not set. Set BRAIN_LLM_API_KEY in your .env.")
        if not base_url.strip():
            raise LLMError("LLM base URL is not set. Set BRAIN_LLM_BASE_URL in your .env.")
        if not self.model:
            raise LLMError("LLM model is not set. Set BRAIN_LLM_MODEL in your .env.")

        read_s = float(getattr(settings, "llm_timeout_seconds", 60.0))
        self._client = client or AsyncOpenAI(
            base_url=base_url,
            api_key=str(api_key),
            timeout=httpx.Timeout(connect=5.0, read=read_s, write=10.0, pool=5.0),
            max_retries=0,
        )

    def _effort_kwargs(self, effort: str) -> dict[str, Any]:
        if not self.send_effort:
            return {}
        e = (effort or "").strip().lower()
        return {"reasoning_effort": e if e in _EFFORTS else "low"}

    async def _create(self, **kwargs: Any) -> Any:
        try:
            return await self._client.chat.completions.create(model=self.model, **kwargs)
        except Exception as e:
            logger.info("LLM call failed on model=%s (%s)", self.model, e.__class__.__name__)
            raise _wrap_error(e, self.model) from e

    async def extract(self, prompt: str, effort: str) -> ProviderText:
        resp = await self._create(
            messages=[{"role": "user", "content": prompt}],
            response_format={"type": "json_object"},
            **self._effort_kwargs(effort),
        )
        message = resp.choices[0].message
        text = message.content or ""
        signature = find_thought_signature(_dump(message))
        logger.debug("LLM extract: %d chars, signature=%s", len(text), bool(signature))
        return ProviderText(text=text, signature=signature)

    async def complete(self, prompt: str, effort: str) -> str:
        resp = await self._create(
            messages=[{"role": "user", "content": prompt}],
            **self._effort_kwargs(effort),
        )
        return (resp.choices[0].message.content or "").strip()

    async def start_tool_conversation(
            self,
            conversation: Conversation,
            tools: list[dict[str, Any]],
    ) -> ToolTurn:
        return await self._tool_turn(conversation, tools)

    async def continue_tool_conversation(
            self,
            conversation: Conversation,
            tools: list[dict[str, Any]],
    ) -> ToolTurn:
        conversation.ensure_settled()
        return await self._tool_turn(conversation, tools)

    async def _tool_turn(self, conversation: Conversation, tools: list[dict[str, Any]]) -> ToolTurn:
        resp = await self._create(messages=conversation.messages, tools=tools)
        message = resp.choices[0].message

        calls: list[ToolCall] = []
        for i, tc in enumerate(message.tool_calls or []):
            fn = getattr(tc, "function", None)
            if fn is None:
                continue
            calls.append(
                ToolCall(
                    id=tc.id or f"call_{i}",
                    name=fn.name,
                    arguments=_decode_arguments(fn.arguments),
                    signature=find_thought_signature(_dump(tc)),
                )
            )

        signature = find_thought_signature(_dump(message))
        logger.debug("LLM tool turn: %d call(s), text=%s", len(calls), bool(message.content))
        return ToolTurn(text=message.content, tool_calls=calls, signature=signature)

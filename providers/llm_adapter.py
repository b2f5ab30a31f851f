"""Shared plumbing for adapters backed by an LLM SDK client."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import anthropic
import httpx
import openai

from core import ErrorKind, ProviderResult, SystemClock

from .base import Endpoint, classify_status, remaining_seconds
from .llm import BaseLLM, Message


logger = logging.getLogger(__name__)

_TIMEOUT_ERRORS = (openai.APITimeoutError, anthropic.APITimeoutError, httpx.TimeoutException)
_CONNECTION_ERRORS = (openai.APIConnectionError, anthropic.APIConnectionError, httpx.TransportError)
_STATUS_ERRORS = (openai.APIStatusError, anthropic.APIStatusError)


def classify_llm_exception(exc: BaseException) -> Tuple[ErrorKind, str]:
    """Map an SDK/transport exception to an error kind."""
    detail = str(exc) or exc.__class__.__name__
    # Timeout classes subclass the connection errors, so check them first.
    if isinstance(exc, _TIMEOUT_ERRORS) or isinstance(exc, asyncio.TimeoutError):
        return ErrorKind.TIMEOUT, detail
    if isinstance(exc, _CONNECTION_ERRORS):
        return ErrorKind.TRANSPORT, detail
    if isinstance(exc, _STATUS_ERRORS):
        status = int(getattr(exc, "status_code", 0) or 0)
        return classify_status(status) or ErrorKind.UPSTREAM_4XX, detail
    if isinstance(exc, (ValueError, KeyError, IndexError, AttributeError, TypeError)):
        return ErrorKind.SCHEMA, detail
    return ErrorKind.TRANSPORT, detail


def extract_json_dict(content: str) -> Optional[Dict[str, Any]]:
    """First JSON object found in ``content`` (fenced or embedded in prose)."""
    text = str(content or "").strip()
    if not text:
        return None
    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except ValueError:
        pass

    starts = [idx for idx, ch in enumerate(text) if ch == "{"]
    for start in starts:
        depth = 0
        for end in range(start, len(text)):
            ch = text[end]
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    candidate = text[start : end + 1]
                    try:
                        parsed = json.loads(candidate)
                        if isinstance(parsed, dict):
                            return parsed
                    except ValueError:
                        break
                    break
    return None


CREDENTIAL_NAMES = {
    "openai": "LLM_OPENAI_API_KEY",
    "anthropic": "LLM_ANTHROPIC_API_KEY",
    "perplexity": "PERPLEXITY_API_KEY",
}


class LLMAdapter:
    """Base for endpoints served by a chat-completion model."""

    def __init__(self, llm: BaseLLM, clock=None):
        self.llm = llm
        self.clock = clock or SystemClock()

    @property
    def provider(self) -> str:
        return self.llm.provider

    @property
    def credential_name(self) -> str:
        return CREDENTIAL_NAMES.get(self.provider, f"{self.provider} API key")

    def _failure(self, endpoint: Endpoint, kind: ErrorKind, detail: str) -> ProviderResult:
        logger.debug("provider_error provider=%s endpoint=%s kind=%s", self.provider, endpoint.value, kind.value)
        return ProviderResult.failure(kind, detail, provider=self.provider, endpoint=endpoint.value)

    async def _complete(
        self,
        endpoint: Endpoint,
        messages: List[Message],
        *,
        deadline: Optional[float] = None,
        **options: Any,
    ) -> ProviderResult:
        """Run one completion; payload is the response text."""
        if not self.llm.configured:
            return self._failure(endpoint, ErrorKind.AUTH_MISSING, f"{self.credential_name} is not configured")

        remaining = remaining_seconds(deadline, self.clock)
        if remaining is not None and remaining <= 0:
            return self._failure(endpoint, ErrorKind.TIMEOUT, "deadline exceeded before request")
        if remaining is not None:
            options.setdefault("timeout", remaining)

        try:
            if remaining is None:
                response = await self.llm.acomplete(messages, **options)
            else:
                response = await asyncio.wait_for(self.llm.acomplete(messages, **options), timeout=remaining)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            kind, detail = classify_llm_exception(exc)
            return self._failure(endpoint, kind, detail)

        content = str(response.content or "").strip()
        if not content:
            return self._failure(endpoint, ErrorKind.SCHEMA, "empty completion")
        return ProviderResult.success(
            content,
            provider=self.provider,
            endpoint=endpoint.value,
            model=response.model,
            usage=dict(response.usage or {}),
        )

    async def _complete_json(
        self,
        endpoint: Endpoint,
        messages: List[Message],
        *,
        deadline: Optional[float] = None,
        **options: Any,
    ) -> ProviderResult:
        """Run one completion and decode a JSON object from it."""
        result = await self._complete(endpoint, messages, deadline=deadline, **options)
        if not result.ok:
            return result
        parsed = extract_json_dict(result.payload)
        if parsed is None:
            return self._failure(endpoint, ErrorKind.SCHEMA, "completion did not contain a JSON object")
        return ProviderResult(ok=True, payload=parsed, metadata=result.metadata)

    async def aclose(self) -> None:
        await self.llm.aclose()

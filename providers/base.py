"""
Provider Adapter Base
Uniform call contract over heterogeneous HTTP providers.

Adapters never raise across their boundary and never retry: every outcome is
a ``ProviderResult``. Retry and degradation are handled by ``RetryPolicy``.
"""
from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from core import ErrorKind, ProviderResult, SystemClock


logger = logging.getLogger(__name__)


class Endpoint(str, Enum):
    """Logical provider endpoints."""

    KEYWORD_METRICS = "keyword_metrics"
    RELATED_KEYWORDS = "related_keywords"
    SERP_RESULTS = "serp_results"
    PAA_QUESTIONS = "paa_questions"
    TOPIC_EXPANSION = "topic_expansion"
    PLAN_ARTICLE = "plan_article"
    WRITE_SECTIONS = "write_sections"
    SEO_PASS = "seo_pass"
    GENERATE_IMAGE = "generate_image"
    VALUE_RANGE = "value_range"
    CMS_PUBLISH = "cms_publish"


def classify_status(status_code: int) -> Optional[ErrorKind]:
    """Map an HTTP status to an error kind; ``None`` for success."""
    if status_code < 400:
        return None
    if status_code in (401, 403):
        return ErrorKind.AUTH_REJECTED
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code == 408:
        return ErrorKind.TIMEOUT
    if status_code >= 500:
        return ErrorKind.UPSTREAM_5XX
    return ErrorKind.UPSTREAM_4XX


def remaining_seconds(deadline: Optional[float], clock=None) -> Optional[float]:
    """Seconds left before an absolute monotonic ``deadline``."""
    if deadline is None:
        return None
    clock = clock or SystemClock()
    return deadline - clock.monotonic()


class BaseAdapter:
    """
    Shared plumbing for REST adapters.

    Subclasses call ``_request`` and post-process the decoded JSON payload.
    ``transport`` lets tests substitute ``httpx.MockTransport``.
    """

    provider = "base"

    def __init__(
        self,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
        clock=None,
    ):
        self.transport = transport
        self.timeout = float(timeout)
        self.clock = clock or SystemClock()
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self.transport, timeout=self.timeout)
        return self._client

    def _failure(self, endpoint: Endpoint, kind: ErrorKind, detail: str, **metadata: Any) -> ProviderResult:
        logger.debug("provider_error provider=%s endpoint=%s kind=%s detail=%s", self.provider, endpoint.value, kind.value, detail)
        return ProviderResult.failure(kind, detail, provider=self.provider, endpoint=endpoint.value, **metadata)

    def _missing_credential(self, endpoint: Endpoint, name: str) -> ProviderResult:
        return self._failure(endpoint, ErrorKind.AUTH_MISSING, f"{name} is not configured")

    async def _request(
        self,
        endpoint: Endpoint,
        method: str,
        url: str,
        *,
        deadline: Optional[float] = None,
        idempotency_token: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        json_body: Any = None,
        params: Optional[Dict[str, Any]] = None,
        auth: Optional[httpx.Auth] = None,
    ) -> ProviderResult:
        """Issue one HTTP request and classify the outcome."""
        remaining = remaining_seconds(deadline, self.clock)
        if remaining is not None and remaining <= 0:
            return self._failure(endpoint, ErrorKind.TIMEOUT, "deadline exceeded before request")
        timeout = self.timeout if remaining is None else max(0.001, min(self.timeout, remaining))

        request_headers = {"Accept": "application/json", **dict(headers or {})}
        if idempotency_token:
            request_headers["Idempotency-Key"] = idempotency_token

        try:
            response = await self._get_client().request(
                method,
                url,
                headers=request_headers,
                json=json_body,
                params=params,
                auth=auth,
                timeout=timeout,
            )
        except asyncio.CancelledError:
            raise
        except httpx.TimeoutException as exc:
            return self._failure(endpoint, ErrorKind.TIMEOUT, str(exc) or "request timed out")
        except httpx.TransportError as exc:
            return self._failure(endpoint, ErrorKind.TRANSPORT, str(exc) or exc.__class__.__name__)
        except httpx.HTTPError as exc:
            return self._failure(endpoint, ErrorKind.TRANSPORT, str(exc) or exc.__class__.__name__)

        kind = classify_status(response.status_code)
        if kind is not None:
            return self._failure(
                endpoint,
                kind,
                f"HTTP {response.status_code}: {response.text[:300]}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            return self._failure(endpoint, ErrorKind.SCHEMA, f"invalid JSON: {exc}", status_code=response.status_code)

        return ProviderResult.success(
            payload,
            provider=self.provider,
            endpoint=endpoint.value,
            status_code=response.status_code,
        )

    async def aclose(self) -> None:
        client = self._client
        self._client = None
        if client is not None:
            await client.aclose()

"""Keyword research, SERP and people-also-ask adapters (kwrds.ai)."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from core import ErrorKind, ProviderResult, make_slug

from .base import BaseAdapter, Endpoint
from .requests import KeywordRequest, PAARequest, SerpRequest


logger = logging.getLogger(__name__)

KEYWORDS_URL = "https://keywordresearch.api.kwrds.ai/keywords-with-volumes"
SERP_URL = "https://keywordresearch.api.kwrds.ai/serp"
PAA_URL = "https://paa.api.kwrds.ai/people-also-ask"


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def keyword_rows(data: Any) -> List[Dict[str, Any]]:
    """
    Normalize a keywords-with-volumes payload into a list of rows.

    The service answers either column-oriented (``{"keyword": {"0": ...},
    "volume": {"0": ...}}``) or as a list of row objects.
    """
    if isinstance(data, dict) and isinstance(data.get("keywords"), list):
        data = data["keywords"]
    rows: List[Dict[str, Any]] = []
    if isinstance(data, list):
        for item in data:
            if not isinstance(item, dict) or not str(item.get("keyword") or "").strip():
                continue
            rows.append(
                {
                    "keyword": str(item["keyword"]).strip(),
                    "volume": _number(item.get("volume")),
                    "cpc": _number(item.get("cpc")),
                    "competition": str(item.get("competition") or item.get("competition_value") or "LOW"),
                    "intent": str(item.get("intent") or item.get("search-intent") or "informational"),
                }
            )
        return rows
    if not isinstance(data, dict) or not isinstance(data.get("keyword"), dict):
        raise ValueError("unexpected keyword payload shape")

    def column(name: str) -> Dict[str, Any]:
        value = data.get(name)
        return value if isinstance(value, dict) else {}

    volumes, cpcs = column("volume"), column("cpc")
    competition, intents = column("competition_value"), column("search-intent")
    for index, keyword in data["keyword"].items():
        text = str(keyword or "").strip()
        if not text:
            continue
        rows.append(
            {
                "keyword": text,
                "volume": _number(volumes.get(index)),
                "cpc": _number(cpcs.get(index)),
                "competition": str(competition.get(index) or "LOW"),
                "intent": str(intents.get(index) or "informational"),
            }
        )
    return rows


class KwrdsAdapter(BaseAdapter):
    """kwrds.ai endpoints; every call authenticates with ``X-API-KEY``."""

    provider = "kwrds"

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    def _headers(self) -> Dict[str, str]:
        return {"X-API-KEY": str(self.api_key), "Content-Type": "application/json"}

    async def _volumes(self, endpoint: Endpoint, request: KeywordRequest, deadline, idempotency_token) -> ProviderResult:
        if not self.api_key:
            return self._missing_credential(endpoint, "KWRDS_API_KEY")
        result = await self._request(
            endpoint,
            "POST",
            KEYWORDS_URL,
            deadline=deadline,
            idempotency_token=idempotency_token,
            headers=self._headers(),
            json_body={"search_question": request.keyword, "search_country": request.country},
        )
        if not result.ok:
            return result
        try:
            rows = keyword_rows(result.payload)
        except ValueError as exc:
            return self._failure(endpoint, ErrorKind.SCHEMA, str(exc))
        return ProviderResult(ok=True, payload=rows, metadata=result.metadata)

    async def keyword_metrics(
        self,
        request: KeywordRequest,
        *,
        deadline: Optional[float] = None,
        idempotency_token: Optional[str] = None,
    ) -> ProviderResult:
        """Search metrics for the seed keyword itself."""
        result = await self._volumes(Endpoint.KEYWORD_METRICS, request, deadline, idempotency_token)
        if not result.ok:
            return result
        rows = result.payload
        seed_slug = make_slug(request.keyword)
        seed = next((row for row in rows if make_slug(row["keyword"]) == seed_slug), None)
        if seed is None:
            seed = rows[0] if rows else {"keyword": request.keyword, "volume": 0.0, "cpc": 0.0, "competition": "LOW", "intent": "informational"}
        payload = {**seed, "keyword": request.keyword, "matched_keyword": seed["keyword"], "row_count": len(rows)}
        return ProviderResult(ok=True, payload=payload, metadata=result.metadata)

    async def related_keywords(
        self,
        request: KeywordRequest,
        *,
        deadline: Optional[float] = None,
        idempotency_token: Optional[str] = None,
    ) -> ProviderResult:
        """Related keyword rows, the seed excluded, by descending volume."""
        result = await self._volumes(Endpoint.RELATED_KEYWORDS, request, deadline, idempotency_token)
        if not result.ok:
            return result
        seed_slug = make_slug(request.keyword)
        related = [row for row in result.payload if make_slug(row["keyword"]) != seed_slug]
        related.sort(key=lambda row: (-row["volume"], row["keyword"]))
        return ProviderResult(
            ok=True,
            payload={"keyword": request.keyword, "related_keywords": related},
            metadata=result.metadata,
        )

    async def serp_results(
        self,
        request: SerpRequest,
        *,
        deadline: Optional[float] = None,
        idempotency_token: Optional[str] = None,
    ) -> ProviderResult:
        if not self.api_key:
            return self._missing_credential(Endpoint.SERP_RESULTS, "KWRDS_API_KEY")
        result = await self._request(
            Endpoint.SERP_RESULTS,
            "POST",
            SERP_URL,
            deadline=deadline,
            idempotency_token=idempotency_token,
            headers=self._headers(),
            json_body={"search_question": request.keyword, "search_country": request.country},
        )
        if not result.ok:
            return result
        if not isinstance(result.payload, dict):
            return self._failure(Endpoint.SERP_RESULTS, ErrorKind.SCHEMA, "SERP payload is not an object")
        data = result.payload
        payload = {
            "keyword": request.keyword,
            "serp": list(data.get("serp") or []),
            "pasf": list(data.get("pasf") or []),
            "pasf_trending": list(data.get("pasf_trending") or []),
        }
        return ProviderResult(ok=True, payload=payload, metadata=result.metadata)

    async def paa_questions(
        self,
        request: PAARequest,
        *,
        deadline: Optional[float] = None,
        idempotency_token: Optional[str] = None,
    ) -> ProviderResult:
        if not self.api_key:
            return self._missing_credential(Endpoint.PAA_QUESTIONS, "KWRDS_API_KEY")
        result = await self._request(
            Endpoint.PAA_QUESTIONS,
            "GET",
            PAA_URL,
            deadline=deadline,
            idempotency_token=idempotency_token,
            headers={"X-API-KEY": str(self.api_key)},
            params={"keyword": request.keyword, "search_country": request.country, "search_language": request.language},
        )
        if not result.ok:
            return result
        data = result.payload
        items = data.get("results") if isinstance(data, dict) else data
        if not isinstance(items, list):
            return self._failure(Endpoint.PAA_QUESTIONS, ErrorKind.SCHEMA, "PAA payload has no results list")
        questions = []
        for item in items:
            if isinstance(item, str):
                question, answer = item, ""
            elif isinstance(item, dict):
                question = str(item.get("question") or item.get("title") or "")
                answer = str(item.get("answer") or item.get("snippet") or "")
            else:
                continue
            if question.strip():
                questions.append({"question": question.strip(), "answer": answer.strip()})
        return ProviderResult(
            ok=True,
            payload={"keyword": request.keyword, "questions": questions},
            metadata=result.metadata,
        )

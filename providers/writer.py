"""Generative LLM endpoints: long-form section writing and the SEO pass."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from core import ErrorKind, ProviderResult

from .base import Endpoint
from .llm import Message
from .llm_adapter import LLMAdapter
from .requests import SEORequest, WriteRequest


logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert long-form content writer for an antiques and collectibles appraisal site. "
    "Write accurate, specific, readable prose. Always answer with a single JSON object and nothing else."
)

SECTION_PROMPT = """Write section {number} of an article about "{keyword}".

Section title: {title}
Key points to cover: {key_points}
Subsections (may be empty): {subsections}
Whole-article outline: {outline}
{valuation}
The section body must be between {min_words} and {max_words} words. Use the phrase "{keyword}" naturally.
{retry_hint}
Return JSON: {{"heading": str, "body": str, "subsections": [{{"heading": str, "body": str}}]}}
"""

FRAME_PROMPT = """Write the framing content for an article about "{keyword}".

Outline: {outline}
FAQ seeds: {faqs}
{valuation}
Return JSON with:
- "title": an engaging title that contains "{keyword}"
- "meta_description": at most 160 characters, containing "{keyword}"
- "introduction": 80 to 150 words
- "faqs": [{{"question": str, "answer": str}}] answering every FAQ seed in 40 to 90 words
- "cta": one closing call to action sentence inviting readers to request a professional appraisal
"""

SEO_PROMPT = """Optimize this article for the primary keyword "{keyword}".

Rules:
- keyword density of "{keyword}" between {low:.0%} and {high:.0%} of all words
- "{keyword}" must appear in the title and in the meta description
- keep every section, in the same order, with the same headings
- end with exactly one call to action
- suggest internal links from this list of related terms: {related}
Secondary keywords to weave in: {secondary}

Article JSON:
{article}

Return the full article as JSON with keys "title", "meta_description", "introduction",
"sections" (same shape as the input), "faqs", "cta" and "internal_links" ([{{"anchor": str, "slug": str}}]).
"""


def _valuation_line(valuation: Optional[Dict[str, Any]]) -> str:
    if not valuation:
        return ""
    value_range = valuation.get("value_range") or {}
    return (
        "Market valuation context: typical value between "
        f"${value_range.get('min')} and ${value_range.get('max')}"
        f" (most likely ${value_range.get('most_likely')})."
    )


def _outline(plan: Dict[str, Any]) -> str:
    return "; ".join(str(section.get("title") or "") for section in plan.get("sections") or [])


def build_section_prompt(request: WriteRequest) -> str:
    section = request.section or {}
    return SECTION_PROMPT.format(
        number=request.index + 1,
        keyword=request.keyword,
        title=section.get("title", ""),
        key_points=", ".join(section.get("key_points") or []) or "none",
        subsections=", ".join(section.get("subsections") or []) or "none",
        outline=_outline(request.plan),
        valuation=_valuation_line(request.valuation),
        min_words=request.min_words,
        max_words=request.max_words,
        retry_hint=request.retry_hint or "",
    )


def build_frame_prompt(request: WriteRequest) -> str:
    faqs = [faq.get("question", "") for faq in request.plan.get("faqs") or []]
    return FRAME_PROMPT.format(
        keyword=request.keyword,
        outline=_outline(request.plan),
        faqs=json.dumps(faqs, ensure_ascii=False),
        valuation=_valuation_line(request.valuation),
    )


def build_seo_prompt(request: SEORequest) -> str:
    low, high = request.density_band
    return SEO_PROMPT.format(
        keyword=request.keyword,
        low=low,
        high=high,
        related=json.dumps(request.related_terms, ensure_ascii=False),
        secondary=", ".join(request.secondary_keywords) or "none",
        article=json.dumps(request.article, ensure_ascii=False, indent=1),
    )


def _section_shape(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None
    heading = str(raw.get("heading") or raw.get("title") or "").strip()
    body = str(raw.get("body") or raw.get("content") or "").strip()
    if not heading:
        return None
    subsections: List[Dict[str, Any]] = []
    for sub in raw.get("subsections") or []:
        shaped = _section_shape(sub)
        if shaped is not None:
            subsections.append({"heading": shaped["heading"], "body": shaped["body"], "subsections": []})
    return {"heading": heading, "body": body, "subsections": subsections}


def _faq_shape(raw: Any) -> List[Dict[str, str]]:
    faqs = []
    for item in raw or []:
        if not isinstance(item, dict):
            continue
        question = str(item.get("question") or "").strip()
        answer = str(item.get("answer") or "").strip()
        if question and answer:
            faqs.append({"question": question, "answer": answer})
    return faqs


class WriterAdapter(LLMAdapter):
    """``write_sections`` and ``seo_pass`` on the generative model."""

    async def write_sections(
        self,
        request: WriteRequest,
        *,
        deadline: Optional[float] = None,
        idempotency_token: Optional[str] = None,
    ) -> ProviderResult:
        endpoint = Endpoint.WRITE_SECTIONS
        prompt = build_frame_prompt(request) if request.mode == "frame" else build_section_prompt(request)
        result = await self._complete_json(
            endpoint,
            [Message.system(SYSTEM_PROMPT), Message.user(prompt)],
            deadline=deadline,
        )
        if not result.ok:
            return result

        data = result.payload
        if request.mode == "frame":
            title = str(data.get("title") or "").strip()
            if not title:
                return self._failure(endpoint, ErrorKind.SCHEMA, "frame response has no title")
            payload = {
                "title": title,
                "meta_description": str(data.get("meta_description") or "").strip(),
                "introduction": str(data.get("introduction") or "").strip(),
                "faqs": _faq_shape(data.get("faqs")),
                "cta": str(data.get("cta") or "").strip(),
            }
        else:
            payload = _section_shape(data)
            if payload is None or not payload["body"]:
                return self._failure(endpoint, ErrorKind.SCHEMA, "section response has no heading or body")
        return ProviderResult(ok=True, payload=payload, metadata=result.metadata)

    async def seo_pass(
        self,
        request: SEORequest,
        *,
        deadline: Optional[float] = None,
        idempotency_token: Optional[str] = None,
    ) -> ProviderResult:
        endpoint = Endpoint.SEO_PASS
        result = await self._complete_json(
            endpoint,
            [Message.system(SYSTEM_PROMPT), Message.user(build_seo_prompt(request))],
            deadline=deadline,
            max_tokens=8192,
        )
        if not result.ok:
            return result

        data = result.payload
        sections = [_section_shape(raw) for raw in data.get("sections") or []]
        if not sections or any(section is None for section in sections):
            return self._failure(endpoint, ErrorKind.SCHEMA, "SEO response has malformed sections")
        links = []
        for link in data.get("internal_links") or []:
            if isinstance(link, dict) and str(link.get("anchor") or "").strip():
                links.append({"anchor": str(link["anchor"]).strip(), "slug": str(link.get("slug") or "").strip()})
        payload = {
            "title": str(data.get("title") or "").strip(),
            "meta_description": str(data.get("meta_description") or "").strip(),
            "introduction": str(data.get("introduction") or "").strip(),
            "sections": sections,
            "faqs": _faq_shape(data.get("faqs")),
            "cta": str(data.get("cta") or "").strip(),
            "internal_links": links,
        }
        return ProviderResult(ok=True, payload=payload, metadata=result.metadata)

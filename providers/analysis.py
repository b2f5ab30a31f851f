"""Analytical LLM endpoint producing the structured article plan."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from core import AnalysisPlan, ErrorKind, ProviderResult

from .base import Endpoint
from .llm import Message
from .llm_adapter import LLMAdapter
from .requests import PlanRequest


logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an SEO content strategist. You plan long-form articles from keyword research. "
    "Always answer with a single JSON object and nothing else."
)

PLAN_PROMPT = """Plan an article for the search term "{term}".

Research data (JSON):
{research}

Return JSON with exactly these keys:
- "primary_intent": one of informational, commercial, transactional, navigational
- "secondary_intents": list drawn from the same set
- "audience": list of short target-audience hints
- "sections": 5 to 8 objects {{"title": str, "key_points": [str], "subsections": [str]}} in reading order
- "faqs": 4 to 6 objects {{"question": str, "answer_hint": str}}
- "seo": {{"primary_keyword": str, "secondary_keywords": [str], "featured_snippet": "paragraph" | "list" | "table"}}
- "valuation_description": a description of the item for an appraiser, EXACTLY ten words
"""

TIGHTEN_PROMPT = (
    "\nYour previous valuation_description was \"{previous}\" ({count} words). "
    "It must contain exactly ten whitespace-separated words. Rewrite it."
)

# Research JSON embedded in the prompt is truncated to this many characters.
MAX_RESEARCH_CHARS = 12000


def build_plan_prompt(request: PlanRequest) -> str:
    research = json.dumps(request.research, ensure_ascii=False, indent=1)[:MAX_RESEARCH_CHARS]
    prompt = PLAN_PROMPT.format(term=request.term, research=research)
    if request.tighten_blurb:
        previous = request.previous_blurb or ""
        prompt += TIGHTEN_PROMPT.format(previous=previous, count=len(previous.split()))
    return prompt


def parse_plan_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Validate the raw JSON and split out the valuation description."""
    plan = AnalysisPlan.model_validate(payload)
    description = " ".join(str(payload.get("valuation_description") or "").split())
    return {"plan": plan.model_dump(mode="json"), "valuation_description": description}


class PlanAdapter(LLMAdapter):
    """``plan_article`` on the analytical model."""

    async def plan_article(
        self,
        request: PlanRequest,
        *,
        deadline: Optional[float] = None,
        idempotency_token: Optional[str] = None,
    ) -> ProviderResult:
        messages = [Message.system(SYSTEM_PROMPT), Message.user(build_plan_prompt(request))]
        result = await self._complete_json(Endpoint.PLAN_ARTICLE, messages, deadline=deadline, json_mode=True)
        if not result.ok:
            return result
        try:
            payload = parse_plan_payload(result.payload)
        except ValidationError as exc:
            return self._failure(Endpoint.PLAN_ARTICLE, ErrorKind.SCHEMA, f"plan failed validation: {exc.error_count()} errors")
        return ProviderResult(ok=True, payload=payload, metadata=result.metadata)

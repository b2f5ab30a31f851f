"""Topic expansion: five search-grounded sub-calls per keyword."""

from __future__ import annotations

import json
import logging
from typing import Optional

from core import ErrorKind, ProviderResult

from .base import Endpoint
from .llm import Message
from .llm_adapter import LLMAdapter
from .requests import ExpansionRequest


logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "Be precise and concise."

EXPANSION_PROMPTS = {
    "variations": "Generate a list of long-tail keyword variations related to '{keyword}'. Please provide at least 5 variations.",
    "intent": (
        "Explain and group the search intents behind queries related to '{keyword}'. "
        "Categorize them into the following groups: Valuation, Historical, and Identification."
    ),
    "context": (
        "List common questions, topics, or phrases that people associate with '{keyword}'. "
        "Include any nuances that might help in crafting detailed content."
    ),
    "topics": (
        "Propose several content topics based on emerging trends and popular queries related to '{keyword}'. "
        "Ensure the topics are SEO-friendly and conversion-focused."
    ),
    "complement": (
        "Given the following structured data from SERP research: {serp}, and the seed keyword '{keyword}', "
        "provide additional insights and keyword suggestions that could enhance a content strategy."
    ),
}

# Keeps the complement prompt within a sane request size.
MAX_SERP_CHARS = 6000


def build_expansion_prompt(request: ExpansionRequest) -> str:
    template = EXPANSION_PROMPTS[request.kind]
    serp = json.dumps(request.serp or {}, ensure_ascii=False)[:MAX_SERP_CHARS]
    return template.format(keyword=request.keyword, serp=serp)


class TopicExpansionAdapter(LLMAdapter):
    """``topic_expansion`` over Perplexity's sonar models."""

    async def topic_expansion(
        self,
        request: ExpansionRequest,
        *,
        deadline: Optional[float] = None,
        idempotency_token: Optional[str] = None,
    ) -> ProviderResult:
        if request.kind not in EXPANSION_PROMPTS:
            return self._failure(Endpoint.TOPIC_EXPANSION, ErrorKind.SCHEMA, f"unknown expansion kind: {request.kind}")
        messages = [Message.system(SYSTEM_PROMPT), Message.user(build_expansion_prompt(request))]
        result = await self._complete(Endpoint.TOPIC_EXPANSION, messages, deadline=deadline)
        if not result.ok:
            return result
        return ProviderResult(
            ok=True,
            payload={"kind": request.kind, "content": result.payload},
            metadata={**result.metadata, "expansion_kind": request.kind},
        )

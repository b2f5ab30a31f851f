"""Analysis stage: structured article plan plus the ten-word valuation blurb."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from core import ProviderResult, Stage
from providers import Endpoint, PlanRequest
from utils.exceptions import FailureKind, StageError
from utils.text import normalize_whitespace, word_count

from .base import BaseStage, StageContext, blurb_path, plan_path, provenance_of
from .collector import load_research_bundle


logger = logging.getLogger(__name__)

BLURB_WORDS = 10


def closest_blurb(candidates: List[str], target: int = BLURB_WORDS) -> str:
    """Candidate whose word count is nearest ``target``; earliest wins ties."""
    usable = [candidate for candidate in candidates if candidate]
    if not usable:
        return ""
    return min(usable, key=lambda candidate: abs(word_count(candidate) - target))


class ContentAnalyzer(BaseStage):
    """Consumes the research bundle and writes ``plan.json`` and ``valuation-blurb.txt``."""

    stage = Stage.ANALYSIS

    async def _plan(self, ctx: StageContext, research: Dict[str, Any], previous: Optional[str] = None) -> ProviderResult:
        request = PlanRequest(
            term=ctx.term,
            research=research,
            tighten_blurb=previous is not None,
            previous_blurb=previous,
        )
        return await ctx.gateway.call(Endpoint.PLAN_ARTICLE, request, deadline=ctx.deadline, idempotency_token=ctx.slug)

    async def _cached(self, ctx: StageContext) -> Optional[Dict[str, Any]]:
        if ctx.force:
            return None
        plan = await ctx.store.try_get(plan_path(ctx.slug))
        blurb = await ctx.store.try_get(blurb_path(ctx.slug))
        if plan is None or blurb is None:
            return None
        if not ctx.development and (plan.metadata.get("mock") or blurb.metadata.get("mock")):
            return None
        return {
            "artifacts": [plan_path(ctx.slug), blurb_path(ctx.slug)],
            "primary_intent": plan.payload.get("primary_intent"),
            "sections": len(plan.payload.get("sections") or []),
            "valuation_blurb_strict": bool(blurb.metadata.get("valuation_blurb_strict", True)),
            "cache_hit": True,
        }

    async def execute(self, ctx: StageContext) -> Dict[str, Any]:
        cached = await self._cached(ctx)
        if cached is not None:
            logger.info("analysis_cache_hit slug=%s", ctx.slug)
            return cached

        bundle = await load_research_bundle(ctx.store, ctx.slug)
        if bundle is None:
            raise StageError(
                FailureKind.INTERNAL,
                "keyword research is missing",
                stage=self.stage.value,
                code="missing_input",
            )

        research = bundle.to_dict()
        first = self._check(await self._plan(ctx, research), Endpoint.PLAN_ARTICLE.value)
        chosen = first
        blurb = normalize_whitespace(first.payload.get("valuation_description"))
        strict = word_count(blurb) == BLURB_WORDS
        tightened = False

        if not strict:
            tightened = True
            logger.info("blurb_tighten slug=%s words=%s", ctx.slug, word_count(blurb))
            second = await self._plan(ctx, research, previous=blurb)
            second_blurb = normalize_whitespace(second.payload.get("valuation_description")) if second.ok else ""
            if second.ok and word_count(second_blurb) == BLURB_WORDS:
                chosen, blurb, strict = second, second_blurb, True
            else:
                best = closest_blurb([blurb, second_blurb])
                if best and best == second_blurb and best != blurb:
                    chosen = second
                blurb = best or ctx.term
                logger.warning("blurb_not_strict slug=%s words=%s", ctx.slug, word_count(blurb))

        plan = dict(chosen.payload["plan"])
        common = {
            "provider": provenance_of(chosen),
            "endpoint": Endpoint.PLAN_ARTICLE.value,
            "mock": chosen.is_mock,
            "valuation_blurb_strict": strict,
        }
        await self._put(ctx, plan_path(ctx.slug), plan, "content_plan", **common)
        await self._put(
            ctx,
            blurb_path(ctx.slug),
            blurb,
            "valuation_blurb",
            word_count=word_count(blurb),
            tightened=tightened or None,
            **common,
        )
        return {
            "artifacts": [plan_path(ctx.slug), blurb_path(ctx.slug)],
            "primary_intent": plan.get("primary_intent"),
            "sections": len(plan.get("sections") or []),
            "valuation_blurb_strict": strict,
            "research_missing": list(bundle.missing),
        }

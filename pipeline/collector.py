"""Research stage: cache-first parallel fan-out over the research providers."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from core import ProviderResult, ResearchBundle, Stage
from providers import (
    EXPANSION_KINDS,
    Endpoint,
    ExpansionRequest,
    KeywordRequest,
    PAARequest,
    SerpRequest,
)
from storage import StoredArtifact

from .base import RESEARCH_NAMES, BaseStage, StageContext, provenance_of, research_path


logger = logging.getLogger(__name__)

GROUP_A: Dict[str, Endpoint] = {
    "keyword": Endpoint.KEYWORD_METRICS,
    "related": Endpoint.RELATED_KEYWORDS,
    "paa": Endpoint.PAA_QUESTIONS,
    "serp": Endpoint.SERP_RESULTS,
}

ARTIFACT_TYPES = {
    "keyword": "keyword_metrics",
    "related": "related_keywords",
    "serp": "serp_results",
    "paa": "paa_questions",
    "expansion": "topic_expansion",
}


def _request_for(name: str, keyword: str) -> Any:
    if name in ("keyword", "related"):
        return KeywordRequest(keyword=keyword)
    if name == "serp":
        return SerpRequest(keyword=keyword)
    return PAARequest(keyword=keyword)


def is_fresh(artifact: StoredArtifact, ctx: StageContext) -> bool:
    """A cached research artifact is reusable if unexpired and, in strict mode, not a mock."""
    if artifact.metadata.get("mock") and not ctx.development:
        return False
    ttl = int(ctx.settings.workflow.research_ttl or 0)
    if ttl <= 0:
        return True
    created = artifact.created_at
    if created is None:
        return False
    return ctx.now() - created <= timedelta(seconds=ttl)


async def load_research_bundle(store, slug: str) -> Optional[ResearchBundle]:
    """Read the research artifacts back into a bundle; ``None`` without keyword data."""
    loaded = await asyncio.gather(*(store.try_get(research_path(slug, name)) for name in RESEARCH_NAMES))
    artifacts = dict(zip(RESEARCH_NAMES, loaded))
    if artifacts["keyword"] is None:
        return None
    bundle = ResearchBundle(keyword=artifacts["keyword"].payload)
    for name in RESEARCH_NAMES[1:]:
        artifact = artifacts[name]
        if artifact is None:
            bundle.missing.append(name)
        else:
            setattr(bundle, name, artifact.payload)
    for name, artifact in artifacts.items():
        if artifact is not None:
            bundle.providers[name] = str(artifact.metadata.get("provider") or "unknown")
            bundle.mock = bundle.mock or bool(artifact.metadata.get("mock"))
    return bundle


class ResearchCollector(BaseStage):
    """Obtains keyword, related, serp, paa and expansion artifacts for a term."""

    stage = Stage.RESEARCH

    async def _cached(self, ctx: StageContext, name: str) -> Optional[StoredArtifact]:
        if ctx.force:
            return None
        artifact = await ctx.store.try_get(research_path(ctx.slug, name))
        if artifact is None or not is_fresh(artifact, ctx):
            return None
        return artifact

    async def _fetch(self, ctx: StageContext, name: str) -> Tuple[str, ProviderResult]:
        endpoint = GROUP_A[name]
        result = await ctx.gateway.call(
            endpoint,
            _request_for(name, ctx.term),
            deadline=ctx.deadline,
            idempotency_token=ctx.slug,
        )
        return name, result

    async def _expand(self, ctx: StageContext, serp: Optional[Dict[str, Any]]) -> Tuple[Dict[str, Any], List[ProviderResult]]:
        """Five independent expansion sub-calls fed with the SERP output."""
        calls = [
            ctx.gateway.call(
                Endpoint.TOPIC_EXPANSION,
                ExpansionRequest(keyword=ctx.term, kind=kind, serp=serp),
                deadline=ctx.deadline,
                idempotency_token=ctx.slug,
            )
            for kind in EXPANSION_KINDS
        ]
        results = await asyncio.gather(*calls)
        payload: Dict[str, Any] = {}
        for kind, result in zip(EXPANSION_KINDS, results):
            payload[kind] = result.payload.get("content") if result.ok else None
        return payload, list(results)

    async def execute(self, ctx: StageContext) -> Dict[str, Any]:
        cached_list = await asyncio.gather(*(self._cached(ctx, name) for name in RESEARCH_NAMES))
        cached = {name: artifact for name, artifact in zip(RESEARCH_NAMES, cached_list) if artifact is not None}
        cache_hits = sorted(cached)

        payloads: Dict[str, Any] = {name: artifact.payload for name, artifact in cached.items()}
        missing: List[str] = []
        written: List[str] = []

        to_fetch = [name for name in GROUP_A if name not in cached]
        fetched = await asyncio.gather(*(self._fetch(ctx, name) for name in to_fetch))
        results = dict(fetched)

        keyword_result = results.get("keyword")
        if keyword_result is not None:
            self._check(keyword_result, Endpoint.KEYWORD_METRICS.value)

        for name in to_fetch:
            result = results[name]
            if not result.ok:
                logger.warning("research_source_missing slug=%s source=%s kind=%s", ctx.slug, name, result.kind.value)
                missing.append(name)
                continue
            payloads[name] = result.payload
            written.append(
                await self._put(
                    ctx,
                    research_path(ctx.slug, name),
                    result.payload,
                    ARTIFACT_TYPES[name],
                    provider=provenance_of(result),
                    endpoint=GROUP_A[name].value,
                    mock=result.is_mock,
                    attempts=result.metadata.get("attempts"),
                )
            )

        if "expansion" not in cached:
            expansion, expansion_results = await self._expand(ctx, payloads.get("serp"))
            succeeded = [result for result in expansion_results if result.ok]
            if succeeded:
                payloads["expansion"] = expansion
                providers = sorted({provenance_of(result) for result in succeeded})
                written.append(
                    await self._put(
                        ctx,
                        research_path(ctx.slug, "expansion"),
                        expansion,
                        ARTIFACT_TYPES["expansion"],
                        provider=",".join(providers),
                        endpoint=Endpoint.TOPIC_EXPANSION.value,
                        mock=any(result.is_mock for result in succeeded),
                        partial=len(succeeded) < len(expansion_results) or None,
                    )
                )
            else:
                logger.warning("research_source_missing slug=%s source=expansion", ctx.slug)
                missing.append("expansion")

        logger.info(
            "research_collected slug=%s cache_hits=%s fetched=%s missing=%s",
            ctx.slug,
            len(cache_hits),
            len(written),
            ",".join(missing) or "-",
        )
        return {
            "artifacts": [research_path(ctx.slug, name) for name in RESEARCH_NAMES if name in payloads],
            "cache_hits": cache_hits,
            "missing": sorted(missing),
        }

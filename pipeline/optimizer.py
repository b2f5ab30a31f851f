"""Optimization stage: the SEO pass over the enhanced article."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from core import ArticleRecord, Stage, make_slug
from providers import Endpoint, SEORequest
from utils.exceptions import FailureKind, StageError
from utils.text import (
    DENSITY_BAND,
    article_density,
    contains_phrase,
    in_density_band,
    normalize_whitespace,
)

from .base import BaseStage, StageContext, enhanced_path, optimized_path, provenance_of, research_path


logger = logging.getLogger(__name__)

MAX_RELATED_TERMS = 8
MAX_TAGS = 8

INTENT_CATEGORIES = {
    "informational": "Guides",
    "commercial": "Valuation",
    "transactional": "Services",
    "navigational": "Resources",
}


def related_terms_from(payload: Optional[Dict[str, Any]], own_slug: str, limit: int = MAX_RELATED_TERMS) -> List[Dict[str, str]]:
    """Anchor/slug pairs from ``related.json`` rows, highest volume first."""
    if not payload:
        return []
    rows = [row for row in payload.get("related_keywords") or [] if isinstance(row, dict)]
    rows.sort(key=lambda row: float(row.get("volume") or 0), reverse=True)
    terms: List[Dict[str, str]] = []
    seen = {own_slug}
    for row in rows:
        anchor = normalize_whitespace(row.get("keyword"))
        slug = make_slug(anchor)
        if not slug or slug in seen:
            continue
        seen.add(slug)
        terms.append({"anchor": anchor, "slug": slug})
        if len(terms) >= limit:
            break
    return terms


def merge_links(*groups: List[Dict[str, str]], own_slug: str, limit: int = MAX_RELATED_TERMS) -> List[Dict[str, str]]:
    merged: List[Dict[str, str]] = []
    seen = {own_slug}
    for group in groups:
        for link in group:
            anchor = normalize_whitespace(link.get("anchor"))
            slug = make_slug(link.get("slug") or anchor)
            if not anchor or not slug or slug in seen:
                continue
            seen.add(slug)
            merged.append({"anchor": anchor, "slug": slug})
    return merged[:limit]


def _display(keyword: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in keyword.split())


def _strip_cta(sections: List[Dict[str, Any]], cta: str) -> List[Dict[str, Any]]:
    """Remove copies of the closing call to action from section bodies."""
    if not cta:
        return sections
    cleaned = []
    for section in sections:
        section = dict(section)
        section["body"] = normalize_whitespace(str(section.get("body") or "").replace(cta, " "))
        section["subsections"] = _strip_cta(list(section.get("subsections") or []), cta)
        cleaned.append(section)
    return cleaned


def _dedupe(values: List[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        value = normalize_whitespace(value)
        if value and value.lower() not in seen:
            seen.add(value.lower())
            result.append(value)
    return result


class SEOOptimizer(BaseStage):
    """Runs ``seo_pass`` and enforces keyword placement, links, a single CTA and the density band."""

    stage = Stage.OPTIMIZATION

    def _enforce(self, refined: Dict[str, Any], keyword: str, own_slug: str, related: List[Dict[str, str]]) -> Dict[str, Any]:
        article = dict(refined)
        title = normalize_whitespace(article.get("title"))
        if not contains_phrase(title, keyword):
            title = f"{_display(keyword)}: {title}" if title else _display(keyword)
        meta = normalize_whitespace(article.get("meta_description"))
        if not contains_phrase(meta, keyword):
            meta = f"{_display(keyword)}: {meta}" if meta else f"{_display(keyword)} explained."
        cta = normalize_whitespace(article.get("cta"))

        article["title"] = title
        article["meta_description"] = meta
        article["cta"] = cta
        article["sections"] = _strip_cta(list(article.get("sections") or []), cta)
        article["internal_links"] = merge_links(list(article.get("internal_links") or []), related, own_slug=own_slug)
        return article

    async def execute(self, ctx: StageContext) -> Dict[str, Any]:
        enhanced = (await self._require(ctx, enhanced_path(ctx.slug))).payload
        keyword = str(enhanced.get("primary_keyword") or ctx.term)
        related_artifact = await ctx.store.try_get(research_path(ctx.slug, "related"))
        related = related_terms_from(related_artifact.payload if related_artifact else None, ctx.slug)

        source = {key: enhanced.get(key) for key in ("title", "meta_description", "introduction", "sections", "faqs", "cta")}
        request = SEORequest(
            keyword=keyword,
            article=source,
            secondary_keywords=list(enhanced.get("secondary_keywords") or []),
            related_terms=related,
            density_band=DENSITY_BAND,
        )
        result = self._check(
            await ctx.gateway.call(Endpoint.SEO_PASS, request, deadline=ctx.deadline, idempotency_token=ctx.slug),
            Endpoint.SEO_PASS.value,
        )
        refined = result.payload
        if len(refined.get("sections") or []) != len(source["sections"] or []):
            raise StageError(
                FailureKind.VALIDATION,
                "SEO pass changed the number of sections",
                stage=self.stage.value,
                code="seo_shape",
            )

        article = self._enforce(refined, keyword, ctx.slug, related)
        density = article_density(article, keyword)
        if not in_density_band(density):
            raise StageError(
                FailureKind.POLICY_VIOLATION,
                f"keyword density {density:.4f} outside {DENSITY_BAND[0]}-{DENSITY_BAND[1]}",
                stage=self.stage.value,
                code="seo_density",
                density=round(density, 4),
            )

        intents = [enhanced.get("primary_intent")]
        categories = _dedupe([INTENT_CATEGORIES[intent] for intent in intents if intent in INTENT_CATEGORIES])
        secondary = list(enhanced.get("secondary_keywords") or [])
        provenance = dict(enhanced.get("provenance") or {})
        provenance["seo_pass"] = provenance_of(result)
        image = enhanced.get("featured_image") or None

        record = ArticleRecord(
            title=article["title"],
            meta_description=article["meta_description"],
            primary_keyword=keyword,
            introduction=normalize_whitespace(article.get("introduction")),
            sections=article["sections"],
            faqs=list(article.get("faqs") or []),
            tags=_dedupe(secondary + [term["anchor"] for term in related])[:MAX_TAGS],
            keywords=_dedupe([keyword] + secondary),
            categories=categories,
            images=[image] if image else [],
            featured_image=image["url"] if image else None,
            valuation=enhanced.get("valuation"),
            valuation_blurb=enhanced.get("valuation_description"),
            internal_links=article["internal_links"],
            related_terms=related,
            cta=article["cta"],
            provenance=provenance,
        )
        document = record.model_dump(mode="json")
        document["seo"] = {
            "density": round(density, 4),
            "density_band": list(DENSITY_BAND),
            "featured_snippet": enhanced.get("featured_snippet", "paragraph"),
        }
        await self._put(
            ctx,
            optimized_path(ctx.slug),
            document,
            "optimized_content",
            provider=provenance["seo_pass"],
            endpoint=Endpoint.SEO_PASS.value,
            mock=result.is_mock or bool(enhanced.get("provenance", {}).get("write_sections") == "mock"),
        )
        logger.info("seo_pass slug=%s density=%.4f links=%s", ctx.slug, density, len(record.internal_links))
        return {
            "artifacts": [optimized_path(ctx.slug)],
            "density": round(density, 4),
            "internal_links": len(record.internal_links),
        }

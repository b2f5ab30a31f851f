"""
Article Renderer
Turns the optimized ArticleRecord into front-matter plus body markdown.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from core import ArticleRecord, ArticleSection, RelatedTerm, Stage, ValuationRange

from .base import (
    BaseStage,
    StageContext,
    article_path,
    blurb_path,
    enhanced_path,
    optimized_path,
    plan_path,
    valuation_path,
)


logger = logging.getLogger(__name__)

FRONT_MATTER_FIELDS = (
    "title",
    "date",
    "lastmod",
    "draft",
    "slug",
    "description",
    "keywords",
    "categories",
    "tags",
    "featured_image",
)

_WS_RE = re.compile(r"\s+")


def _clean(value: Any) -> str:
    return _WS_RE.sub(" ", str(value or "")).strip()


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def _quote(value: Any) -> str:
    return json.dumps(_clean(value), ensure_ascii=False)


def _array(values: Sequence[Any]) -> str:
    return "[" + ", ".join(_quote(value) for value in values if _clean(value)) + "]"


def render_front_matter(
    record: ArticleRecord,
    *,
    slug: str,
    date: datetime,
    lastmod: datetime,
    draft: bool = False,
) -> str:
    """``---`` delimited header with the fields in their fixed order."""
    values = {
        "title": _quote(record.title),
        "date": format_timestamp(date),
        "lastmod": format_timestamp(lastmod),
        "draft": "true" if draft else "false",
        "slug": _quote(slug),
        "description": _quote(record.meta_description),
        "keywords": _array(record.keywords),
        "categories": _array(record.categories),
        "tags": _array(record.tags),
        "featured_image": _quote(record.featured_image or ""),
    }
    lines = ["---"]
    lines.extend(f"{name}: {values[name]}" for name in FRONT_MATTER_FIELDS)
    lines.append("---")
    return "\n".join(lines)


def _money(value: float, currency: str) -> str:
    symbol = "$" if currency.upper() == "USD" else f"{currency.upper()} "
    return f"{symbol}{value:,.0f}"


def render_valuation(valuation: ValuationRange, blurb: Optional[str] = None) -> str:
    line = (
        f"> **Estimated value:** {_money(valuation.min, valuation.currency)} "
        f"to {_money(valuation.max, valuation.currency)}"
    )
    if valuation.most_likely is not None:
        line += f" (most likely {_money(valuation.most_likely, valuation.currency)})"
    if blurb:
        line += f"\n>\n> Based on: *{_clean(blurb)}*"
    return line


def _render_section(section: ArticleSection, level: int, lines: List[str]) -> None:
    lines.append(f"{'#' * level} {_clean(section.heading)}")
    lines.append("")
    body = str(section.body or "").strip()
    if body:
        lines.append(body)
        lines.append("")
    for sub in section.subsections:
        _render_section(sub, min(level + 1, 6), lines)


def render_body(record: ArticleRecord) -> str:
    lines: List[str] = [f"# {_clean(record.title)}", ""]

    if record.introduction.strip():
        lines.extend([record.introduction.strip(), ""])

    if record.valuation is not None:
        lines.extend([render_valuation(record.valuation, record.valuation_blurb), ""])

    for section in record.sections:
        _render_section(section, 2, lines)

    if record.cta.strip():
        lines.extend([f"**{_clean(record.cta)}**", ""])

    if record.faqs:
        lines.extend(["## Frequently Asked Questions", ""])
        for faq in record.faqs:
            lines.extend([f"### {_clean(faq.question)}", "", faq.answer.strip(), ""])

    links = _link_list(record)
    if links:
        lines.extend(["## Related Terms", ""])
        lines.extend(f"- [{_clean(link.anchor)}](/{link.slug}/)" for link in links)
        lines.append("")

    return "\n".join(lines).rstrip("\n") + "\n"


def _link_list(record: ArticleRecord) -> List[RelatedTerm]:
    """Related terms first, then internal-link suggestions, one entry per slug."""
    seen = set()
    links: List[RelatedTerm] = []
    for link in list(record.related_terms) + list(record.internal_links):
        if not link.slug or link.slug in seen:
            continue
        seen.add(link.slug)
        links.append(link)
    return links


def render_article(
    record: ArticleRecord,
    *,
    slug: str,
    date: datetime,
    lastmod: datetime,
    draft: bool = False,
) -> Tuple[str, str]:
    """Pure ``ArticleRecord -> (front_matter, body)``; no I/O."""
    return (
        render_front_matter(record, slug=slug, date=date, lastmod=lastmod, draft=draft),
        render_body(record),
    )


def compose_markdown(front_matter: str, body: str) -> str:
    return f"{front_matter}\n\n{body}"


class ArticleRenderer(BaseStage):
    stage = Stage.RENDER

    async def _lastmod(self, ctx: StageContext, fallback: datetime) -> datetime:
        """Newest ``created_at`` across the artifacts the article was built from."""
        latest = fallback
        for path in (plan_path(ctx.slug), blurb_path(ctx.slug), valuation_path(ctx.slug), enhanced_path(ctx.slug), optimized_path(ctx.slug)):
            metadata = await ctx.store.get_metadata(path)
            if not metadata or not metadata.get("created_at"):
                continue
            try:
                created = datetime.fromisoformat(str(metadata["created_at"]))
            except ValueError:
                continue
            if created.tzinfo is None:
                created = created.replace(tzinfo=timezone.utc)
            if created > latest:
                latest = created
        return latest

    async def execute(self, ctx: StageContext) -> Dict[str, Any]:
        optimized = await self._require(ctx, optimized_path(ctx.slug))
        record = ArticleRecord.model_validate(optimized.payload)
        date = ctx.run.created_at
        if date.tzinfo is None:
            date = date.replace(tzinfo=timezone.utc)
        lastmod = await self._lastmod(ctx, date)

        front_matter, body = render_article(record, slug=ctx.slug, date=date, lastmod=lastmod)
        await self._put(
            ctx,
            article_path(ctx.slug),
            compose_markdown(front_matter, body),
            "article",
            mock=bool(optimized.metadata.get("mock")) or None,
        )
        logger.info("article_rendered slug=%s sections=%s", ctx.slug, len(record.sections))
        return {"artifacts": [article_path(ctx.slug)], "lastmod": format_timestamp(lastmod)}

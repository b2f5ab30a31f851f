"""Enhancement stage: expand every plan section into long-form prose."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from core import AnalysisPlan, ProviderResult, Stage, StageStatus
from providers import Endpoint, ImageRequest, WriteRequest
from utils.exceptions import FailureKind, StageError
from utils.text import truncate_words, word_count

from .base import BaseStage, StageContext, enhanced_path, plan_path, provenance_of, valuation_path


logger = logging.getLogger(__name__)


class ContentEnhancer(BaseStage):
    """
    Writes ``enhanced.json``.

    Section expansions run in parallel together with the framing call
    (title, introduction, FAQ answers, CTA) and the featured image. The
    article keeps plan order regardless of completion order.
    """

    stage = Stage.ENHANCEMENT

    async def _valuation(self, ctx: StageContext) -> Optional[Dict[str, Any]]:
        if ctx.run.status_of(Stage.VALUATION) != StageStatus.COMPLETED:
            return None
        artifact = await ctx.store.try_get(valuation_path(ctx.slug))
        return artifact.payload if artifact is not None else None

    async def _write_section(
        self,
        ctx: StageContext,
        plan: Dict[str, Any],
        index: int,
        section: Dict[str, Any],
        keyword: str,
        valuation: Optional[Dict[str, Any]],
    ) -> Tuple[Dict[str, Any], ProviderResult]:
        workflow = ctx.settings.workflow
        min_words, max_words = workflow.section_min_words, workflow.section_max_words
        hint: Optional[str] = None
        for attempt in range(2):
            request = WriteRequest(
                keyword=keyword,
                plan=plan,
                mode="section",
                section=section,
                index=index,
                min_words=min_words,
                max_words=max_words,
                valuation=valuation,
                retry_hint=hint,
            )
            result = self._check(
                await ctx.gateway.call(Endpoint.WRITE_SECTIONS, request, deadline=ctx.deadline, idempotency_token=ctx.slug),
                Endpoint.WRITE_SECTIONS.value,
            )
            written = dict(result.payload)
            count = word_count(written.get("body"))
            if count > max_words:
                written["body"] = truncate_words(written["body"], max_words)
                count = word_count(written["body"])
            if count >= min_words:
                written["heading"] = section["title"]
                return written, result
            hint = f"The previous draft had only {count} words; write at least {min_words} words."
            logger.info("section_too_short slug=%s index=%s words=%s attempt=%s", ctx.slug, index, count, attempt + 1)

        raise StageError(
            FailureKind.VALIDATION,
            f"section {index + 1} stayed below {min_words} words",
            stage=self.stage.value,
            code="section_length",
        )

    async def _frame(
        self, ctx: StageContext, plan: Dict[str, Any], keyword: str, valuation: Optional[Dict[str, Any]]
    ) -> ProviderResult:
        request = WriteRequest(keyword=keyword, plan=plan, mode="frame", valuation=valuation)
        return self._check(
            await ctx.gateway.call(Endpoint.WRITE_SECTIONS, request, deadline=ctx.deadline, idempotency_token=ctx.slug),
            Endpoint.WRITE_SECTIONS.value,
        )

    async def _image(self, ctx: StageContext, keyword: str) -> Optional[ProviderResult]:
        request = ImageRequest(
            keyword=keyword,
            prompt=f"Editorial photograph of {keyword}, natural light, neutral background",
            slug=ctx.slug,
        )
        result = await ctx.gateway.call(Endpoint.GENERATE_IMAGE, request, deadline=ctx.deadline, idempotency_token=ctx.slug)
        if not result.ok:
            logger.warning("featured_image_missing slug=%s kind=%s", ctx.slug, result.kind.value)
            return None
        return result

    async def execute(self, ctx: StageContext) -> Dict[str, Any]:
        plan_model = AnalysisPlan.model_validate((await self._require(ctx, plan_path(ctx.slug))).payload)
        plan = plan_model.model_dump(mode="json")
        keyword = plan_model.seo.primary_keyword or ctx.term
        valuation = await self._valuation(ctx)

        section_calls = [
            self._write_section(ctx, plan, index, section, keyword, valuation)
            for index, section in enumerate(plan["sections"])
        ]
        outcomes = await asyncio.gather(
            self._frame(ctx, plan, keyword, valuation),
            self._image(ctx, keyword),
            *section_calls,
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        frame_result, image_result = outcomes[0], outcomes[1]
        section_outcomes = outcomes[2:]
        frame = frame_result.payload
        sections: List[Dict[str, Any]] = [written for written, _ in section_outcomes]

        provenance = {"write_sections": provenance_of(frame_result)}
        if any(result.is_mock for _, result in section_outcomes):
            provenance["write_sections"] = "mock"
        featured_image = None
        if image_result is not None:
            featured_image = dict(image_result.payload)
            provenance["generate_image"] = provenance_of(image_result)

        mock = frame_result.is_mock or any(result.is_mock for _, result in section_outcomes)
        document: Dict[str, Any] = {
            "term": ctx.term,
            "primary_keyword": keyword,
            "secondary_keywords": list(plan_model.seo.secondary_keywords),
            "featured_snippet": plan_model.seo.featured_snippet,
            "primary_intent": plan_model.primary_intent,
            "title": frame["title"],
            "meta_description": frame["meta_description"],
            "introduction": frame["introduction"],
            "sections": sections,
            "faqs": frame["faqs"],
            "cta": frame["cta"],
            "featured_image": featured_image,
            "provenance": provenance,
        }
        if valuation is not None:
            document["valuation"] = dict(valuation["value_range"])
            document["valuation_description"] = valuation.get("description", "")

        await self._put(
            ctx,
            enhanced_path(ctx.slug),
            document,
            "enhanced_content",
            provider=provenance["write_sections"],
            endpoint=Endpoint.WRITE_SECTIONS.value,
            mock=mock,
        )
        logger.info(
            "enhanced slug=%s sections=%s words=%s valuation=%s",
            ctx.slug,
            len(sections),
            sum(word_count(section.get("body")) for section in sections),
            valuation is not None,
        )
        return {
            "artifacts": [enhanced_path(ctx.slug)],
            "sections": len(sections),
            "with_valuation": valuation is not None,
            "featured_image": bool(featured_image),
        }

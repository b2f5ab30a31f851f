"""Valuation stage: price range for the ten-word blurb."""

from __future__ import annotations

import logging
from typing import Any, Dict

from core import Stage
from providers import Endpoint, ValuationRequest

from .base import BaseStage, StageContext, blurb_path, provenance_of, valuation_path


logger = logging.getLogger(__name__)


class ValuationStage(BaseStage):
    stage = Stage.VALUATION

    async def execute(self, ctx: StageContext) -> Dict[str, Any]:
        blurb = str((await self._require(ctx, blurb_path(ctx.slug))).payload).strip()
        result = self._check(
            await ctx.gateway.call(
                Endpoint.VALUE_RANGE,
                ValuationRequest(description=blurb),
                deadline=ctx.deadline,
                idempotency_token=ctx.slug,
            ),
            Endpoint.VALUE_RANGE.value,
        )
        data = result.payload
        document = {
            "description": blurb,
            "value_range": {"min": data["min"], "max": data["max"], "most_likely": data.get("most_likely")},
            "explanation": data.get("explanation", ""),
            "auction_results": list(data.get("auction_results") or []),
            "timestamp": ctx.now().isoformat(),
        }
        await self._put(
            ctx,
            valuation_path(ctx.slug),
            document,
            "valuation_data",
            provider=provenance_of(result),
            endpoint=Endpoint.VALUE_RANGE.value,
            mock=result.is_mock,
            time_fields=["created_at", "timestamp"],
        )
        logger.info("valuation_range slug=%s min=%s max=%s", ctx.slug, data["min"], data["max"])
        return {"artifacts": [valuation_path(ctx.slug)], "value_range": document["value_range"]}

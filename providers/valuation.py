"""Valuation service: maps a short item description to a price range."""

from __future__ import annotations

import logging
from typing import Optional

from core import ErrorKind, ProviderResult

from .base import BaseAdapter, Endpoint
from .requests import ValuationRequest


logger = logging.getLogger(__name__)


def _amount(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class ValuerAdapter(BaseAdapter):
    """``value_range`` via ``POST {VALUER_API_URL}/find-value-range``."""

    provider = "valuer"

    def __init__(self, base_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.base_url = (base_url or "").rstrip("/")

    async def value_range(
        self,
        request: ValuationRequest,
        *,
        deadline: Optional[float] = None,
        idempotency_token: Optional[str] = None,
    ) -> ProviderResult:
        if not self.base_url:
            return self._missing_credential(Endpoint.VALUE_RANGE, "VALUER_API_URL")
        result = await self._request(
            Endpoint.VALUE_RANGE,
            "POST",
            f"{self.base_url}/find-value-range",
            deadline=deadline,
            idempotency_token=idempotency_token,
            headers={"Content-Type": "application/json"},
            json_body={"text": request.description},
        )
        if not result.ok:
            return result
        data = result.payload if isinstance(result.payload, dict) else {}
        low, high = _amount(data.get("minValue")), _amount(data.get("maxValue"))
        if low is None or high is None or low > high:
            return self._failure(Endpoint.VALUE_RANGE, ErrorKind.SCHEMA, "valuation response has no usable range")
        payload = {
            "min": low,
            "max": high,
            "most_likely": _amount(data.get("mostLikelyValue")),
            "explanation": str(data.get("explanation") or ""),
            "auction_results": list(data.get("auctionResults") or []),
        }
        return ProviderResult(ok=True, payload=payload, metadata=result.metadata)

"""
Providers Module
Adapters for the external research, LLM, image, valuation and CMS services,
plus the retry/degradation policy and the endpoint gateway.
"""
from .base import BaseAdapter, Endpoint, classify_status
from .gateway import EndpointBinding, ProviderGateway, build_gateway
from .mocks import MOCK_GENERATORS
from .policy import RetryPolicy
from .requests import (
    EXPANSION_KINDS,
    ExpansionRequest,
    ImageRequest,
    KeywordRequest,
    PAARequest,
    PlanRequest,
    PublishRequest,
    SEORequest,
    SerpRequest,
    ValuationRequest,
    WriteRequest,
)

__all__ = [
    "BaseAdapter",
    "Endpoint",
    "classify_status",
    "EndpointBinding",
    "ProviderGateway",
    "build_gateway",
    "MOCK_GENERATORS",
    "RetryPolicy",
    "EXPANSION_KINDS",
    "ExpansionRequest",
    "ImageRequest",
    "KeywordRequest",
    "PAARequest",
    "PlanRequest",
    "PublishRequest",
    "SEORequest",
    "SerpRequest",
    "ValuationRequest",
    "WriteRequest",
]

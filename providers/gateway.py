"""Endpoint registry: routes logical endpoint calls through the retry policy."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from core import ErrorKind, ProviderResult, SystemClock

from .base import Endpoint
from .expansion import TopicExpansionAdapter
from .analysis import PlanAdapter
from .image import ImageAdapter
from .kwrds import KwrdsAdapter
from .llm import get_llm
from .mocks import MOCK_GENERATORS
from .policy import RetryPolicy
from .valuation import ValuerAdapter
from .wordpress import WordPressAdapter
from .writer import WriterAdapter


logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[ProviderResult]]


@dataclass
class EndpointBinding:
    handler: Handler
    mock: Optional[Callable[[Any], Any]] = None
    credential_required: bool = False


class ProviderGateway:
    """The adapter bundle handed to the engine as an explicit capability."""

    def __init__(self, policy: RetryPolicy, bindings: Optional[Dict[Endpoint, EndpointBinding]] = None):
        self.policy = policy
        self.bindings: Dict[Endpoint, EndpointBinding] = dict(bindings or {})
        self._closers: List[Callable[[], Awaitable[None]]] = []

    def bind(self, endpoint: Endpoint, binding: EndpointBinding) -> None:
        self.bindings[Endpoint(endpoint)] = binding

    def add_closer(self, closer: Callable[[], Awaitable[None]]) -> None:
        self._closers.append(closer)

    @property
    def development(self) -> bool:
        return self.policy.development

    async def call(
        self,
        endpoint: Endpoint,
        request: Any,
        *,
        deadline: Optional[float] = None,
        idempotency_token: Optional[str] = None,
    ) -> ProviderResult:
        endpoint = Endpoint(endpoint)
        binding = self.bindings.get(endpoint)
        if binding is None:
            return ProviderResult.failure(ErrorKind.AUTH_MISSING, f"no adapter bound for {endpoint.value}", endpoint=endpoint.value)

        async def _attempt() -> ProviderResult:
            return await binding.handler(request, deadline=deadline, idempotency_token=idempotency_token)

        return await self.policy.call(
            endpoint.value,
            _attempt,
            deadline=deadline,
            mock=binding.mock,
            request=request,
            credential_required=binding.credential_required,
        )

    async def aclose(self) -> None:
        for closer in self._closers:
            await closer()
        self._closers.clear()


def build_gateway(
    settings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock=None,
    policy: Optional[RetryPolicy] = None,
) -> ProviderGateway:
    """
    Wire every endpoint to its concrete adapter and mock.

    Args:
        settings: root ``Settings``
        transport: optional httpx transport shared by every adapter (tests)
        clock: optional clock for deadline arithmetic
        policy: optional pre-built retry policy
    """
    clock = clock or SystemClock()
    providers = settings.providers
    policy = policy or RetryPolicy.from_settings(settings.workflow, clock=clock)
    gateway = ProviderGateway(policy)

    rest_options = {"transport": transport, "timeout": providers.request_timeout, "clock": clock}
    kwrds = KwrdsAdapter(api_key=providers.kwrds_api_key, **rest_options)
    image = ImageAdapter(url=providers.image_service_url, api_key=providers.image_service_api_key, **rest_options)
    valuer = ValuerAdapter(base_url=providers.valuer_api_url, **rest_options)
    wordpress = WordPressAdapter(
        api_url=providers.wordpress_api_url,
        username=providers.wordpress_username,
        app_password=providers.wordpress_app_password,
        **rest_options,
    )

    def _http_client() -> Optional[httpx.AsyncClient]:
        return httpx.AsyncClient(transport=transport) if transport is not None else None

    llm_settings = settings.llm
    expansion = TopicExpansionAdapter(
        get_llm("perplexity", model=llm_settings.expansion_model, settings=settings, http_client=_http_client()),
        clock=clock,
    )
    planner = PlanAdapter(
        get_llm(llm_settings.analysis_provider, model=llm_settings.analysis_model, settings=settings, http_client=_http_client()),
        clock=clock,
    )
    writer = WriterAdapter(
        get_llm(llm_settings.generation_provider, model=llm_settings.generation_model, settings=settings, http_client=_http_client()),
        clock=clock,
    )

    handlers: Dict[Endpoint, Handler] = {
        Endpoint.KEYWORD_METRICS: kwrds.keyword_metrics,
        Endpoint.RELATED_KEYWORDS: kwrds.related_keywords,
        Endpoint.SERP_RESULTS: kwrds.serp_results,
        Endpoint.PAA_QUESTIONS: kwrds.paa_questions,
        Endpoint.TOPIC_EXPANSION: expansion.topic_expansion,
        Endpoint.PLAN_ARTICLE: planner.plan_article,
        Endpoint.WRITE_SECTIONS: writer.write_sections,
        Endpoint.SEO_PASS: writer.seo_pass,
        Endpoint.GENERATE_IMAGE: image.generate_image,
        Endpoint.VALUE_RANGE: valuer.value_range,
        Endpoint.CMS_PUBLISH: wordpress.cms_publish,
    }
    for endpoint, handler in handlers.items():
        gateway.bind(
            endpoint,
            EndpointBinding(
                handler=handler,
                mock=MOCK_GENERATORS.get(endpoint),
                credential_required=endpoint == Endpoint.CMS_PUBLISH,
            ),
        )

    for adapter in (kwrds, image, valuer, wordpress, expansion, planner, writer):
        gateway.add_closer(adapter.aclose)
    return gateway

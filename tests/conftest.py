from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import pytest

from config import LLMSettings, ProviderSettings, Settings, StorageSettings, WorkflowSettings
from core import ProviderResult, RetryBudget, SystemClock, Term, WorkflowRun
from orchestrator import WorkflowEngine
from pipeline import StageContext
from providers import Endpoint, EndpointBinding, MOCK_GENERATORS, ProviderGateway, RetryPolicy
from storage import LocalArtifactStore


FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

Override = Callable[[Any], Awaitable[ProviderResult]]


class FixedClock(SystemClock):
    """Frozen wall clock; monotonic time stays real so deadlines still work."""

    def __init__(self, now: datetime = FIXED_NOW):
        self._now = now

    def now(self) -> datetime:
        return self._now


async def no_sleep(_seconds: float) -> None:
    return None


class StubProviders:
    """Canned adapter handlers backed by the deterministic generators, with per-endpoint overrides."""

    def __init__(self, overrides: Optional[Dict[Endpoint, Override]] = None):
        self.calls: Counter = Counter()
        self.requests: Dict[Endpoint, list] = {}
        self.overrides: Dict[Endpoint, Override] = dict(overrides or {})

    def _handler(self, endpoint: Endpoint):
        generator = MOCK_GENERATORS[endpoint]

        async def _handle(request, *, deadline=None, idempotency_token=None) -> ProviderResult:
            self.calls[endpoint] += 1
            self.requests.setdefault(endpoint, []).append(request)
            override = self.overrides.get(endpoint)
            if override is not None:
                return await override(request)
            return ProviderResult.success(generator(request), provider="stub", endpoint=endpoint.value)

        return _handle

    def gateway(self, *, development: bool = False) -> ProviderGateway:
        policy = RetryPolicy(
            RetryBudget(max_attempts=3, base_delay=0.01, multiplier=2.0, max_delay=0.05),
            development=development,
            sleep=no_sleep,
        )
        gateway = ProviderGateway(policy)
        for endpoint, generator in MOCK_GENERATORS.items():
            gateway.bind(endpoint, EndpointBinding(handler=self._handler(endpoint), mock=generator))
        return gateway


def build_settings(root: str, **workflow: Any) -> Settings:
    workflow.setdefault("mode", "strict")
    return Settings(
        storage=StorageSettings(root_dir=root, output_bucket=None),
        workflow=WorkflowSettings(**workflow),
        providers=ProviderSettings(),
        llm=LLMSettings(),
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def store(tmp_path, clock) -> LocalArtifactStore:
    return LocalArtifactStore(str(tmp_path / "artifacts"), clock=clock)


@pytest.fixture
def stubs() -> StubProviders:
    return StubProviders()


@pytest.fixture
def make_context(tmp_path, store, clock, stubs):
    def _make(
        term: str = "antique lamps",
        *,
        providers: Optional[StubProviders] = None,
        development: bool = False,
        force: bool = False,
        **workflow: Any,
    ) -> StageContext:
        providers = providers or stubs
        mode = "development" if development else "strict"
        settings = build_settings(str(tmp_path / "artifacts"), mode=mode, **workflow)
        return StageContext(
            run=WorkflowRun.start(Term.from_text(term), now=clock.now()),
            store=store,
            gateway=providers.gateway(development=development),
            settings=settings,
            clock=clock,
            force=force,
        )

    return _make


@pytest.fixture
def make_engine(tmp_path, store, clock, stubs):
    def _make(*, providers: Optional[StubProviders] = None, development: bool = False, **workflow: Any) -> WorkflowEngine:
        providers = providers or stubs
        mode = "development" if development else "strict"
        settings = build_settings(str(tmp_path / "artifacts"), mode=mode, **workflow)
        return WorkflowEngine(store, providers.gateway(development=development), settings, clock=clock)

    return _make

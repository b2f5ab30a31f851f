"""Core contracts and shared types for the article workflow."""

from .clock import SystemClock
from .contracts import (
    INTENTS,
    RETRIABLE_KINDS,
    SETTLED_STATUSES,
    STAGE_ORDER,
    TERMINAL_STATUSES,
    AnalysisPlan,
    ArticleRecord,
    ArticleSection,
    ErrorKind,
    FAQEntry,
    FAQSeed,
    ImageRef,
    PlanSection,
    ProviderResult,
    RelatedTerm,
    ResearchBundle,
    RetryBudget,
    SEOPlan,
    Stage,
    StageFailure,
    StageState,
    StageStatus,
    Term,
    ValuationRange,
    WorkflowRun,
    make_slug,
)

__all__ = [
    "INTENTS",
    "RETRIABLE_KINDS",
    "SETTLED_STATUSES",
    "STAGE_ORDER",
    "TERMINAL_STATUSES",
    "AnalysisPlan",
    "ArticleRecord",
    "ArticleSection",
    "ErrorKind",
    "FAQEntry",
    "FAQSeed",
    "ImageRef",
    "PlanSection",
    "ProviderResult",
    "RelatedTerm",
    "ResearchBundle",
    "RetryBudget",
    "SEOPlan",
    "Stage",
    "StageFailure",
    "StageState",
    "StageStatus",
    "SystemClock",
    "Term",
    "ValuationRange",
    "WorkflowRun",
    "make_slug",
]

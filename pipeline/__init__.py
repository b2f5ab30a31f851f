"""
Pipeline Module
One component per workflow stage, all sharing the ``BaseStage`` contract.
"""
from .analyzer import ContentAnalyzer, closest_blurb
from .base import (
    BaseStage,
    StageContext,
    article_path,
    blurb_path,
    enhanced_path,
    optimized_path,
    plan_path,
    research_path,
    run_path,
    stage_error_from_result,
    valuation_path,
)
from .collector import ResearchCollector, load_research_bundle
from .enhancer import ContentEnhancer
from .exporter import ArticleExporter, export_articles, rendered_slugs
from .optimizer import SEOOptimizer, related_terms_from
from .renderer import ArticleRenderer, compose_markdown, render_article
from .valuation import ValuationStage


def default_stages():
    """Stage -> component mapping used by the workflow engine."""
    components = (
        ResearchCollector(),
        ContentAnalyzer(),
        ValuationStage(),
        ContentEnhancer(),
        SEOOptimizer(),
        ArticleRenderer(),
        ArticleExporter(),
    )
    return {component.stage: component for component in components}


__all__ = [
    "BaseStage",
    "StageContext",
    "ResearchCollector",
    "ContentAnalyzer",
    "ValuationStage",
    "ContentEnhancer",
    "SEOOptimizer",
    "ArticleRenderer",
    "ArticleExporter",
    "default_stages",
    "closest_blurb",
    "load_research_bundle",
    "related_terms_from",
    "render_article",
    "compose_markdown",
    "export_articles",
    "rendered_slugs",
    "stage_error_from_result",
    "article_path",
    "blurb_path",
    "enhanced_path",
    "optimized_path",
    "plan_path",
    "research_path",
    "run_path",
    "valuation_path",
]

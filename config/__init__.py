"""
Configuration Management Module
Environment-driven settings for the article pipeline.
"""
from .settings import (
    LLMSettings,
    ProviderSettings,
    Settings,
    StorageSettings,
    WorkflowSettings,
    get_llm_settings,
    get_provider_settings,
    get_settings,
    get_storage_settings,
    get_workflow_settings,
)

__all__ = [
    "LLMSettings",
    "ProviderSettings",
    "Settings",
    "StorageSettings",
    "WorkflowSettings",
    "get_llm_settings",
    "get_provider_settings",
    "get_settings",
    "get_storage_settings",
    "get_workflow_settings",
]

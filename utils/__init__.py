"""
Utils Module
Logging, error taxonomy, keyed locks and text metrics.
"""
from .logger import setup_logger
from .locks import KeyedLocks
from .exceptions import (
    ArticleEngineError,
    ArtifactNotFoundError,
    ConfigurationError,
    FailureKind,
    PathEscapeError,
    ProviderError,
    StageError,
    StorageError,
)

__all__ = [
    "setup_logger",
    "KeyedLocks",
    "ArticleEngineError",
    "ArtifactNotFoundError",
    "ConfigurationError",
    "FailureKind",
    "PathEscapeError",
    "ProviderError",
    "StageError",
    "StorageError",
]

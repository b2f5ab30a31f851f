"""
Custom Exceptions
Error taxonomy shared by the storage layer, the stages and the engine.
"""
from enum import Enum
from typing import Optional


class FailureKind(str, Enum):
    """Stage-visible failure categories recorded in a run's status map."""

    CONFIG = "config"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    VALIDATION = "validation"
    POLICY_VIOLATION = "policy_violation"
    INTERNAL = "internal"
    CANCELLED = "cancelled"


FATAL_KINDS = frozenset({FailureKind.CONFIG, FailureKind.INTERNAL})


class ArticleEngineError(Exception):
    """Base error for the article pipeline."""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(ArticleEngineError):
    """Invalid or missing configuration."""
    pass


class StorageError(ArticleEngineError):
    """Artifact store I/O failure."""
    pass


class ArtifactNotFoundError(StorageError):
    """Requested artifact does not exist."""

    def __init__(self, path: str):
        super().__init__(f"Artifact not found: {path}", {"path": path})
        self.path = path


class PathEscapeError(StorageError):
    """Artifact path is malformed or escapes the store root."""

    def __init__(self, path: str, reason: str = "path escapes the artifact root"):
        super().__init__(f"Invalid artifact path '{path}': {reason}", {"path": path})
        self.path = path


class StageError(ArticleEngineError):
    """A stage failed with one of the stage-visible failure kinds."""

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        *,
        stage: Optional[str] = None,
        code: Optional[str] = None,
        **details,
    ):
        super().__init__(message, details)
        self.kind = FailureKind(kind)
        self.stage = stage
        self.code = code

    @property
    def fatal(self) -> bool:
        return self.kind in FATAL_KINDS


class ProviderError(ArticleEngineError):
    """Misconfigured provider client (unknown provider name, bad binding)."""
    pass

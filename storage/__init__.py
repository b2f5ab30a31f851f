"""
Storage Module
Artifact store capability with local-filesystem and S3 backends.
"""
from typing import Any

from .base import (
    ArtifactStore,
    StoredArtifact,
    MEDIA_BYTES,
    MEDIA_JSON,
    MEDIA_MARKDOWN,
    MEDIA_TEXT,
    normalize_path,
    sidecar_path,
)
from .local import LocalArtifactStore, atomic_write_bytes
from .s3 import S3ArtifactStore


def get_artifact_store(settings=None, *, clock=None, client: Any = None) -> ArtifactStore:
    """
    Build the configured artifact store.

    Args:
        settings: ``StorageSettings``; defaults to the process settings
        clock: optional clock used for sidecar timestamps
        client: optional boto3 S3 client (object-store backend only)
    """
    if settings is None:
        from config import get_storage_settings
        settings = get_storage_settings()

    if settings.output_bucket:
        return S3ArtifactStore(
            bucket=settings.output_bucket,
            prefix=settings.output_prefix,
            region=settings.aws_region,
            client=client,
            clock=clock,
        )
    return LocalArtifactStore(settings.root_dir, clock=clock)


__all__ = [
    "ArtifactStore",
    "StoredArtifact",
    "LocalArtifactStore",
    "atomic_write_bytes",
    "S3ArtifactStore",
    "MEDIA_BYTES",
    "MEDIA_JSON",
    "MEDIA_MARKDOWN",
    "MEDIA_TEXT",
    "get_artifact_store",
    "normalize_path",
    "sidecar_path",
]

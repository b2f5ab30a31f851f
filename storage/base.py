"""
Artifact Store
Capability interface shared by the local-filesystem and object-store backends.
"""
from __future__ import annotations

import hashlib
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Tuple

from utils.exceptions import ArtifactNotFoundError, PathEscapeError
from utils.locks import KeyedLocks


logger = logging.getLogger(__name__)

META_SUFFIX = ".meta"

MEDIA_JSON = "application/json"
MEDIA_MARKDOWN = "text/markdown"
MEDIA_TEXT = "text/plain"
MEDIA_BYTES = "application/octet-stream"

# Sidecar keys owned by the store; caller metadata cannot override them.
SYSTEM_KEYS = ("path", "media_type", "size", "sha256", "created_at")


@dataclass
class StoredArtifact:
    """Payload plus its sidecar metadata."""

    path: str
    payload: Any
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def media_type(self) -> str:
        return str(self.metadata.get("media_type") or MEDIA_BYTES)

    @property
    def created_at(self) -> Optional[datetime]:
        raw = self.metadata.get("created_at")
        if not raw:
            return None
        try:
            return datetime.fromisoformat(str(raw))
        except ValueError:
            return None

    def to_dict(self) -> Dict[str, Any]:
        payload = self.payload
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        return {"path": self.path, "payload": payload, "metadata": dict(self.metadata)}


def normalize_path(path: str) -> str:
    """Validate an artifact path and return its canonical relative form."""
    raw = str(path or "").replace("\\", "/").strip()
    if not raw:
        raise PathEscapeError(str(path), "path is empty")
    if raw.startswith("/") or (len(raw) > 1 and raw[1] == ":"):
        raise PathEscapeError(raw, "absolute paths are not allowed")
    parts = [part for part in raw.split("/") if part not in ("", ".")]
    if any(part == ".." for part in parts):
        raise PathEscapeError(raw)
    if not parts:
        raise PathEscapeError(raw, "path is empty")
    return "/".join(parts)


def normalize_prefix(prefix: str) -> str:
    """Like ``normalize_path`` but an empty prefix means the store root."""
    if not str(prefix or "").strip().strip("/"):
        return ""
    return normalize_path(prefix)


def sidecar_path(path: str) -> str:
    return f"{path}{META_SUFFIX}"


def guess_media_type(path: str, payload: Any = None) -> str:
    if isinstance(payload, bytes):
        return MEDIA_BYTES
    if isinstance(payload, (dict, list)):
        return MEDIA_JSON
    suffix = PurePosixPath(path).suffix.lower()
    if isinstance(payload, str):
        return MEDIA_MARKDOWN if suffix == ".md" else MEDIA_TEXT
    if suffix == ".json":
        return MEDIA_JSON
    if suffix == ".md":
        return MEDIA_MARKDOWN
    if suffix == ".txt":
        return MEDIA_TEXT
    return MEDIA_BYTES if payload is None else MEDIA_JSON


def encode_payload(path: str, payload: Any) -> Tuple[bytes, str]:
    media_type = guess_media_type(path, payload)
    if media_type == MEDIA_JSON:
        data = (json.dumps(payload, indent=2, ensure_ascii=False) + "\n").encode("utf-8")
    elif isinstance(payload, bytes):
        data = payload
    else:
        data = str(payload).encode("utf-8")
    return data, media_type


def decode_payload(data: bytes, media_type: str) -> Any:
    if media_type == MEDIA_JSON:
        return json.loads(data.decode("utf-8"))
    if media_type.startswith("text/"):
        return data.decode("utf-8")
    return data


def build_sidecar(
    path: str,
    data: bytes,
    media_type: str,
    metadata: Optional[Dict[str, Any]],
    created_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Merge caller metadata with store-owned fields."""
    sidecar: Dict[str, Any] = {}
    for key, value in dict(metadata or {}).items():
        if key not in SYSTEM_KEYS:
            sidecar[key] = value
    time_fields = list(sidecar.get("time_fields") or [])
    if "created_at" not in time_fields:
        time_fields.insert(0, "created_at")
    sidecar.update(
        {
            "path": path,
            "media_type": media_type,
            "size": len(data),
            "sha256": hashlib.sha256(data).hexdigest(),
            "created_at": (created_at or datetime.now(timezone.utc)).isoformat(),
            "time_fields": time_fields,
        }
    )
    return sidecar


def encode_sidecar(sidecar: Dict[str, Any]) -> bytes:
    return (json.dumps(sidecar, indent=2, ensure_ascii=False, default=str) + "\n").encode("utf-8")


class ArtifactStore(ABC):
    """
    Content store keyed by ``<slug>/<stage>[/<sub>].<ext>`` paths.

    Every artifact has a JSON sidecar at ``<path>.meta``. Writes are atomic:
    readers observe either the previous payload and sidecar in full or the new
    pair. Within a process a per-path lock spans both objects; across processes
    (or after a crash between the two writes) a payload whose digest does not
    match its sidecar reads as absent.
    """

    backend = "abstract"

    def __init__(self, clock=None):
        self._clock = clock
        self._path_locks = KeyedLocks()

    def _now(self) -> datetime:
        if self._clock is not None:
            return self._clock.now()
        return datetime.now(timezone.utc)

    @staticmethod
    def _check_writable(path: str) -> str:
        normalized = normalize_path(path)
        if normalized.endswith(META_SUFFIX):
            raise PathEscapeError(normalized, "sidecar paths are reserved")
        return normalized

    async def put(self, path: str, payload: Any, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Atomically write ``payload`` and its sidecar; returns the sidecar."""
        normalized = self._check_writable(path)
        data, media_type = encode_payload(normalized, payload)
        sidecar = build_sidecar(normalized, data, media_type, metadata, created_at=self._now())
        async with self._path_locks.hold(normalized):
            await self._write(normalized, data, media_type)
            await self._write(sidecar_path(normalized), encode_sidecar(sidecar), MEDIA_JSON)
        logger.debug("artifact_put path=%s size=%s backend=%s", normalized, len(data), self.backend)
        return sidecar

    async def get(self, path: str) -> StoredArtifact:
        """Return payload and metadata; raises ``ArtifactNotFoundError`` when absent."""
        normalized = normalize_path(path)
        async with self._path_locks.hold(normalized):
            data = await self._read(normalized)
            if data is None:
                raise ArtifactNotFoundError(normalized)
            metadata = await self._read_metadata(normalized) or {}
        digest = metadata.get("sha256")
        if digest and digest != hashlib.sha256(data).hexdigest():
            logger.warning("artifact_sidecar_mismatch path=%s backend=%s", normalized, self.backend)
            raise ArtifactNotFoundError(normalized)
        media_type = str(metadata.get("media_type") or guess_media_type(normalized))
        metadata.setdefault("media_type", media_type)
        return StoredArtifact(path=normalized, payload=decode_payload(data, media_type), metadata=metadata)

    async def try_get(self, path: str) -> Optional[StoredArtifact]:
        try:
            return await self.get(path)
        except ArtifactNotFoundError:
            return None

    async def get_metadata(self, path: str) -> Optional[Dict[str, Any]]:
        normalized = normalize_path(path)
        async with self._path_locks.hold(normalized):
            return await self._read_metadata(normalized)

    async def _read_metadata(self, normalized: str) -> Optional[Dict[str, Any]]:
        raw = await self._read(sidecar_path(normalized))
        if raw is None:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError:
            logger.warning("sidecar_unreadable path=%s", normalized)
            return None

    async def exists(self, path: str) -> bool:
        """Never raises; invalid paths and backend errors read as absent."""
        try:
            normalized = normalize_path(path)
            return await self._exists(normalized)
        except Exception as exc:
            logger.debug("exists_check_failed path=%s error=%s", path, exc)
            return False

    async def ensure_dir(self, prefix: str) -> None:
        await self._ensure_dir(normalize_prefix(prefix))

    async def list(self, prefix: str = "") -> List[str]:
        """Artifact paths under ``prefix`` (sidecars excluded), sorted."""
        normalized = normalize_prefix(prefix)
        paths = await self._list(normalized)
        return sorted(path for path in paths if not path.endswith(META_SUFFIX))

    async def purge(self, prefix: str) -> int:
        """Delete artifacts (and sidecars) under ``prefix``; returns the artifact count."""
        normalized = normalize_prefix(prefix)
        removed = 0
        targets = await self._list(normalized)
        if normalized and await self._exists(normalized):
            targets = [normalized, sidecar_path(normalized)] + targets
        seen = set()
        for target in targets:
            if target in seen:
                continue
            seen.add(target)
            if await self._delete(target) and not target.endswith(META_SUFFIX):
                removed += 1
        logger.info("artifact_purge prefix=%s removed=%s backend=%s", normalized or "/", removed, self.backend)
        return removed

    @abstractmethod
    async def _write(self, path: str, data: bytes, media_type: str) -> None:
        pass

    @abstractmethod
    async def _read(self, path: str) -> Optional[bytes]:
        """Raw bytes, or ``None`` if the object does not exist."""
        pass

    @abstractmethod
    async def _exists(self, path: str) -> bool:
        pass

    @abstractmethod
    async def _ensure_dir(self, prefix: str) -> None:
        pass

    @abstractmethod
    async def _list(self, prefix: str) -> List[str]:
        """All stored object paths under ``prefix``, sidecars included."""
        pass

    @abstractmethod
    async def _delete(self, path: str) -> bool:
        pass

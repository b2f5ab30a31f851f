"""Local filesystem artifact backend with write-then-rename atomicity."""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from utils.exceptions import PathEscapeError, StorageError

from .base import ArtifactStore


logger = logging.getLogger(__name__)

_TMP_SUFFIX = ".tmp"


def atomic_write_bytes(target: Path, data: bytes) -> None:
    """Write ``data`` to a temporary sibling, fsync, then rename over ``target``."""
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=_TMP_SUFFIX, dir=str(target.parent))
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class LocalArtifactStore(ArtifactStore):
    """Artifacts stored as plain files under ``root``."""

    backend = "local"

    def __init__(self, root: str, clock=None):
        super().__init__(clock=clock)
        self.root = Path(root).expanduser().resolve()

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve() if path else self.root
        if target != self.root and self.root not in target.parents:
            raise PathEscapeError(path)
        return target

    def _write_sync(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        try:
            atomic_write_bytes(target, data)
        except OSError as exc:
            raise StorageError(f"Failed to write artifact: {path}", {"error": str(exc)}) from exc

    def _read_sync(self, path: str) -> Optional[bytes]:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError:
            return None
        except IsADirectoryError:
            return None
        except OSError as exc:
            raise StorageError(f"Failed to read artifact: {path}", {"error": str(exc)}) from exc

    def _list_sync(self, prefix: str) -> List[str]:
        base = self._resolve(prefix)
        if not base.is_dir():
            return []
        found: List[str] = []
        for file_path in base.rglob("*"):
            if not file_path.is_file():
                continue
            if file_path.name.startswith(".") and file_path.name.endswith(_TMP_SUFFIX):
                continue
            found.append(file_path.relative_to(self.root).as_posix())
        return found

    def _delete_sync(self, path: str) -> bool:
        target = self._resolve(path)
        try:
            target.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Failed to delete artifact: {path}", {"error": str(exc)}) from exc

    def _ensure_dir_sync(self, prefix: str) -> None:
        try:
            self._resolve(prefix).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to create directory: {prefix}", {"error": str(exc)}) from exc

    async def _write(self, path: str, data: bytes, media_type: str) -> None:
        await asyncio.to_thread(self._write_sync, path, data)

    async def _read(self, path: str) -> Optional[bytes]:
        return await asyncio.to_thread(self._read_sync, path)

    async def _exists(self, path: str) -> bool:
        target = self._resolve(path)
        return await asyncio.to_thread(target.is_file)

    async def _ensure_dir(self, prefix: str) -> None:
        await asyncio.to_thread(self._ensure_dir_sync, prefix)

    async def _list(self, prefix: str) -> List[str]:
        return await asyncio.to_thread(self._list_sync, prefix)

    async def _delete(self, path: str) -> bool:
        return await asyncio.to_thread(self._delete_sync, path)

"""S3 artifact backend; object PUTs are atomic so no temp-key dance is needed."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from utils.exceptions import StorageError

from .base import ArtifactStore


logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound", "NoSuchBucket"}


def _is_not_found(exc: ClientError) -> bool:
    code = str((exc.response or {}).get("Error", {}).get("Code") or "")
    return code in _NOT_FOUND_CODES


class S3ArtifactStore(ArtifactStore):
    """Artifacts stored as objects under ``s3://<bucket>/<prefix>/``."""

    backend = "s3"

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        region: Optional[str] = None,
        client: Any = None,
        clock=None,
    ):
        super().__init__(clock=clock)
        self.bucket = str(bucket or "").strip()
        if not self.bucket:
            raise StorageError("s3 bucket is required")
        self.prefix = str(prefix or "").strip().strip("/")
        self.region = str(region or os.environ.get("AWS_DEFAULT_REGION") or os.environ.get("AWS_REGION") or "").strip()
        if client is not None:
            self.client = client
        else:
            self.client = boto3.client("s3", region_name=self.region) if self.region else boto3.client("s3")

    def _key(self, path: str) -> str:
        if not self.prefix:
            return path
        return f"{self.prefix}/{path}" if path else self.prefix

    def _strip(self, key: str) -> str:
        if self.prefix and key.startswith(self.prefix + "/"):
            return key[len(self.prefix) + 1 :]
        return key

    def _put_sync(self, path: str, data: bytes, media_type: str) -> None:
        try:
            self.client.put_object(Bucket=self.bucket, Key=self._key(path), Body=data, ContentType=media_type)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to write artifact: {path}", {"bucket": self.bucket, "error": str(exc)}) from exc

    def _get_sync(self, path: str) -> Optional[bytes]:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=self._key(path))
        except ClientError as exc:
            if _is_not_found(exc):
                return None
            raise StorageError(f"Failed to read artifact: {path}", {"bucket": self.bucket, "error": str(exc)}) from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to read artifact: {path}", {"bucket": self.bucket, "error": str(exc)}) from exc
        return response["Body"].read()

    def _head_sync(self, path: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=self._key(path))
            return True
        except ClientError as exc:
            if _is_not_found(exc):
                return False
            raise

    def _list_sync(self, prefix: str) -> List[str]:
        key_prefix = self._key(prefix)
        if key_prefix:
            key_prefix = key_prefix.rstrip("/") + "/"
        params: Dict[str, Any] = {"Bucket": self.bucket, "Prefix": key_prefix}
        found: List[str] = []
        try:
            while True:
                response = self.client.list_objects_v2(**params)
                for item in response.get("Contents", []) or []:
                    found.append(self._strip(str(item["Key"])))
                if not response.get("IsTruncated"):
                    break
                params["ContinuationToken"] = response["NextContinuationToken"]
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to list artifacts: {prefix}", {"bucket": self.bucket, "error": str(exc)}) from exc
        return found

    def _delete_sync(self, path: str) -> bool:
        try:
            if not self._head_sync(path):
                return False
            self.client.delete_object(Bucket=self.bucket, Key=self._key(path))
            return True
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to delete artifact: {path}", {"bucket": self.bucket, "error": str(exc)}) from exc

    async def _write(self, path: str, data: bytes, media_type: str) -> None:
        await asyncio.to_thread(self._put_sync, path, data, media_type)

    async def _read(self, path: str) -> Optional[bytes]:
        return await asyncio.to_thread(self._get_sync, path)

    async def _exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._head_sync, path)

    async def _ensure_dir(self, prefix: str) -> None:
        # Object stores have no directories.
        return None

    async def _list(self, prefix: str) -> List[str]:
        return await asyncio.to_thread(self._list_sync, prefix)

    async def _delete(self, path: str) -> bool:
        return await asyncio.to_thread(self._delete_sync, path)

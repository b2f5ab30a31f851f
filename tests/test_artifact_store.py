from __future__ import annotations

import asyncio
import io
import threading
from typing import Any, Dict

import pytest
from botocore.exceptions import ClientError

from storage import LocalArtifactStore, S3ArtifactStore, get_artifact_store, sidecar_path
from config import StorageSettings
from utils.exceptions import ArtifactNotFoundError, PathEscapeError


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client calls the store makes."""

    def __init__(self, page_size: int = 3):
        self.objects: Dict[str, bytes] = {}
        self.page_size = page_size
        self._lock = threading.Lock()

    @staticmethod
    def _missing(operation: str, code: str = "NoSuchKey") -> ClientError:
        return ClientError({"Error": {"Code": code, "Message": "missing"}}, operation)

    def put_object(self, Bucket: str, Key: str, Body: bytes, ContentType: str = "") -> Dict[str, Any]:
        with self._lock:
            self.objects[Key] = bytes(Body)
        return {}

    def get_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        with self._lock:
            if Key not in self.objects:
                raise self._missing("GetObject")
            return {"Body": io.BytesIO(self.objects[Key])}

    def head_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        with self._lock:
            if Key not in self.objects:
                raise self._missing("HeadObject", code="404")
        return {}

    def delete_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        with self._lock:
            self.objects.pop(Key, None)
        return {}

    def list_objects_v2(self, Bucket: str, Prefix: str = "", ContinuationToken: str = None) -> Dict[str, Any]:
        with self._lock:
            keys = sorted(key for key in self.objects if key.startswith(Prefix))
        start = int(ContinuationToken or 0)
        page = keys[start : start + self.page_size]
        response: Dict[str, Any] = {"Contents": [{"Key": key} for key in page]}
        if start + self.page_size < len(keys):
            response["IsTruncated"] = True
            response["NextContinuationToken"] = str(start + self.page_size)
        return response


@pytest.fixture(params=["local", "s3"])
def any_store(request, tmp_path, clock):
    if request.param == "local":
        return LocalArtifactStore(str(tmp_path / "root"), clock=clock)
    return S3ArtifactStore(bucket="articles-test", prefix="out", client=FakeS3Client(), clock=clock)


@pytest.mark.asyncio
async def test_put_then_get_json_and_text(any_store) -> None:
    sidecar = await any_store.put("antique-lamps/research/keyword.json", {"volume": 120}, {"provider": "kwrds", "mock": False})
    assert sidecar["media_type"] == "application/json"
    assert sidecar["provider"] == "kwrds"

    artifact = await any_store.get("antique-lamps/research/keyword.json")
    assert artifact.payload == {"volume": 120}
    assert artifact.metadata["provider"] == "kwrds"
    assert artifact.metadata["size"] > 0
    assert artifact.created_at is not None

    await any_store.put("antique-lamps/analysis/valuation-blurb.txt", "one two three")
    text = await any_store.get("antique-lamps/analysis/valuation-blurb.txt")
    assert text.payload == "one two three"


@pytest.mark.asyncio
async def test_opaque_bytes_stay_bytes(any_store) -> None:
    await any_store.put("antique-lamps/raw.bin", b"\x00\x01\x02")
    artifact = await any_store.get("antique-lamps/raw.bin")
    assert artifact.payload == b"\x00\x01\x02"


@pytest.mark.asyncio
async def test_missing_artifact(any_store) -> None:
    with pytest.raises(ArtifactNotFoundError):
        await any_store.get("nothing/here.json")
    assert await any_store.try_get("nothing/here.json") is None
    assert await any_store.exists("nothing/here.json") is False


@pytest.mark.asyncio
async def test_exists_flips_after_put(any_store) -> None:
    path = "antique-lamps/enhanced.json"
    assert await any_store.exists(path) is False
    await any_store.put(path, {"title": "x"})
    assert await any_store.exists(path) is True


@pytest.mark.asyncio
async def test_exists_never_raises_on_bad_paths(any_store) -> None:
    assert await any_store.exists("../outside.json") is False
    assert await any_store.exists("") is False


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["../escape.json", "/etc/passwd", "a/../../b.json", "C:/windows.json", ""])
async def test_put_rejects_escaping_paths(any_store, path: str) -> None:
    with pytest.raises(PathEscapeError):
        await any_store.put(path, {"x": 1})


@pytest.mark.asyncio
async def test_sidecar_paths_are_reserved(any_store) -> None:
    with pytest.raises(PathEscapeError):
        await any_store.put(sidecar_path("antique-lamps/plan.json"), {"x": 1})


@pytest.mark.asyncio
async def test_list_excludes_sidecars_and_purge_removes_prefix(any_store) -> None:
    for name in ("keyword", "related", "serp", "paa"):
        await any_store.put(f"lamps/research/{name}.json", {"name": name})
    await any_store.put("lamps/run.json", {"state": "pending"})
    await any_store.put("other/run.json", {"state": "pending"})

    listed = await any_store.list("lamps/research")
    assert listed == [f"lamps/research/{name}.json" for name in ("keyword", "paa", "related", "serp")]

    removed = await any_store.purge("lamps/research")
    assert removed == 4
    assert await any_store.list("lamps") == ["lamps/run.json"]
    assert await any_store.exists("other/run.json")


@pytest.mark.asyncio
async def test_purge_single_artifact(any_store) -> None:
    await any_store.put("lamps/article.md", "# Lamps\n")
    assert await any_store.purge("lamps/article.md") == 1
    assert await any_store.get_metadata("lamps/article.md") is None


@pytest.mark.asyncio
async def test_ensure_dir_is_idempotent(any_store) -> None:
    await any_store.ensure_dir("lamps/analysis")
    await any_store.ensure_dir("lamps/analysis")


@pytest.mark.asyncio
async def test_rewrite_is_byte_identical_for_identical_payload(any_store) -> None:
    payload = {"sections": [{"heading": "A", "body": "text"}], "title": "Lamps"}
    await any_store.put("lamps/optimized.json", payload, {"type": "optimized_content"})
    first = await any_store.get_metadata("lamps/optimized.json")
    await any_store.put("lamps/optimized.json", payload, {"type": "optimized_content"})
    second = await any_store.get_metadata("lamps/optimized.json")
    assert first["sha256"] == second["sha256"]
    assert "created_at" in second["time_fields"]


@pytest.mark.asyncio
async def test_concurrent_readers_never_see_partial_writes(tmp_path, clock) -> None:
    store = LocalArtifactStore(str(tmp_path / "root"), clock=clock)
    path = "lamps/enhanced.json"
    versions = [{"body": "a" * 200_000}, {"body": "b" * 200_000}]
    await store.put(path, versions[0])

    seen = []

    async def _reader() -> None:
        for _ in range(40):
            artifact = await store.get(path)
            assert artifact.payload in versions
            seen.append(artifact.payload["body"][0])
            await asyncio.sleep(0)

    async def _writer() -> None:
        for index in range(20):
            await store.put(path, versions[(index + 1) % 2])

    await asyncio.gather(_writer(), *(_reader() for _ in range(4)))
    assert len(seen) == 160
    leftovers = [p.name for p in (tmp_path / "root" / "lamps").iterdir() if p.name.endswith(".tmp")]
    assert leftovers == []


@pytest.mark.asyncio
async def test_reader_never_pairs_new_payload_with_stale_sidecar(any_store) -> None:
    path = "lamps/research/keyword.json"
    await any_store.put(path, {"v": 1}, {"mock": True})

    sidecar_started = asyncio.Event()
    release = asyncio.Event()
    write = any_store._write

    async def _slow_sidecar_write(target: str, data: bytes, media_type: str) -> None:
        if target.endswith(".meta"):
            sidecar_started.set()
            await release.wait()
        await write(target, data, media_type)

    any_store._write = _slow_sidecar_write
    writer = asyncio.create_task(any_store.put(path, {"v": 2}, {"mock": False}))
    await sidecar_started.wait()

    reader = asyncio.create_task(any_store.get(path))
    await asyncio.sleep(0.01)
    assert not reader.done()

    release.set()
    written = await writer
    artifact = await reader
    assert artifact.payload == {"v": 2}
    assert artifact.metadata["mock"] is False
    assert artifact.metadata["sha256"] == written["sha256"]
    assert artifact.metadata["size"] == written["size"]


@pytest.mark.asyncio
async def test_payload_not_matching_its_sidecar_reads_as_absent(tmp_path, clock) -> None:
    store = LocalArtifactStore(str(tmp_path / "root"), clock=clock)
    await store.put("lamps/research/keyword.json", {"v": 1}, {"mock": True})
    # a writer that died between the payload and the sidecar
    (tmp_path / "root" / "lamps" / "research" / "keyword.json").write_text('{"v": 2}\n', encoding="utf-8")

    with pytest.raises(ArtifactNotFoundError):
        await store.get("lamps/research/keyword.json")
    assert await store.try_get("lamps/research/keyword.json") is None


@pytest.mark.asyncio
async def test_path_locks_are_released_after_use(any_store) -> None:
    await asyncio.gather(*(any_store.put(f"lamps/part-{index}.json", {"i": index}) for index in range(5)))
    await asyncio.gather(*(any_store.get(f"lamps/part-{index}.json") for index in range(5)))
    assert len(any_store._path_locks) == 0


@pytest.mark.asyncio
async def test_local_root_escape_via_symlinked_parent_is_rejected(tmp_path, clock) -> None:
    outside = tmp_path / "outside"
    outside.mkdir()
    root = tmp_path / "root"
    root.mkdir()
    (root / "link").symlink_to(outside, target_is_directory=True)
    store = LocalArtifactStore(str(root), clock=clock)
    with pytest.raises(PathEscapeError):
        await store.put("link/escape.json", {"x": 1})


def test_backend_selection(tmp_path) -> None:
    local = get_artifact_store(StorageSettings(root_dir=str(tmp_path), output_bucket=None))
    assert isinstance(local, LocalArtifactStore)

    s3 = get_artifact_store(
        StorageSettings(root_dir=str(tmp_path), output_bucket="bucket", output_prefix="articles"),
        client=FakeS3Client(),
    )
    assert isinstance(s3, S3ArtifactStore)
    assert s3.prefix == "articles"

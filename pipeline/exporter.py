"""
Article Exporter
Copies rendered articles out of the artifact store into a consumer directory.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from core import Stage
from storage import ArtifactStore, atomic_write_bytes
from utils.exceptions import StorageError

from .base import BaseStage, StageContext, article_path


logger = logging.getLogger(__name__)

ARTICLE_NAME = "article.md"


async def rendered_slugs(store: ArtifactStore) -> list:
    """Slugs that currently have an ``article.md``."""
    slugs = []
    for path in await store.list(""):
        parts = path.split("/")
        if len(parts) == 2 and parts[1] == ARTICLE_NAME:
            slugs.append(parts[0])
    return sorted(slugs)


async def export_articles(
    store: ArtifactStore,
    dest: Union[str, Path],
    slugs: Optional[Iterable[str]] = None,
) -> Dict[str, Path]:
    """
    Write ``<dest>/<slug>.md`` for every requested slug that has been rendered.

    Args:
        store: artifact store holding the rendered articles
        dest: output directory, created if needed
        slugs: restrict the export; all rendered slugs by default

    Returns:
        slug -> written file path (slugs without an article are left out)
    """
    out_path = Path(dest).expanduser()
    wanted = list(slugs) if slugs is not None else await rendered_slugs(store)

    written: Dict[str, Path] = {}
    for slug in wanted:
        artifact = await store.try_get(article_path(slug))
        if artifact is None:
            logger.warning("export_missing slug=%s", slug)
            continue
        payload = artifact.payload
        data = payload if isinstance(payload, bytes) else str(payload).encode("utf-8")
        target = out_path / f"{slug}.md"
        try:
            await asyncio.to_thread(atomic_write_bytes, target, data)
        except OSError as exc:
            raise StorageError(f"Failed to export article: {target}", {"error": str(exc)}) from exc
        written[slug] = target

    logger.info("export_done dest=%s count=%s", out_path, len(written))
    return written


class ArticleExporter(BaseStage):
    """Exports the run's article when an export directory is configured."""

    stage = Stage.EXPORT

    async def execute(self, ctx: StageContext) -> Dict[str, Any]:
        export_dir = ctx.settings.workflow.export_dir
        if not export_dir:
            return {"exported": False}
        written = await export_articles(ctx.store, export_dir, [ctx.slug])
        target = written.get(ctx.slug)
        return {"exported": target is not None, "path": str(target) if target else None}

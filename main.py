"""CLI entrypoint for the article workflow."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from config import Settings
from core import make_slug
from pipeline import export_articles
from utils.exceptions import ArtifactNotFoundError, ConfigurationError, FailureKind, StageError
from utils.logger import setup_logger
from webapp.runtime import Runtime, build_runtime, set_runtime


EXIT_OK = 0
EXIT_CONFIG = 2
EXIT_PARTIAL = 3
EXIT_FAILED = 4
EXIT_USAGE = 5


class UsageError(Exception):
    pass


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def read_seed_file(path: Path) -> List[str]:
    """One term per line; blank lines and ``#`` comments skipped; first occurrence per slug wins."""
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise UsageError(f"cannot read seed file {path}: {exc}") from exc
    terms: List[str] = []
    seen = set()
    for line in lines:
        text = line.strip()
        if not text or text.startswith("#"):
            continue
        slug = make_slug(text)
        if not slug or slug in seen:
            continue
        seen.add(slug)
        terms.append(text)
    return terms


def chunked(items: Sequence[str], size: int) -> List[List[str]]:
    return [list(items[index : index + size]) for index in range(0, len(items), size)]


def combined_exit_code(successful: int, failed: int) -> int:
    if failed == 0:
        return EXIT_OK
    return EXIT_FAILED if successful == 0 else EXIT_PARTIAL


def _print(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


async def _process(runtime: Runtime, terms: List[str], force: bool) -> int:
    if not terms:
        raise UsageError("no terms to process")
    batch_size = runtime.settings.workflow.batch_size
    summaries: List[Dict[str, Any]] = []
    successful = failed = 0
    for batch in chunked(terms, batch_size):
        report = await runtime.engine.process_batch(batch, force=force)
        if report.status == "already_running":
            _print({"status": "already_running"})
            return EXIT_FAILED
        summaries.append(report.to_dict())
        successful += report.successful
        failed += report.failed
    _print({"batches": summaries, "successful": successful, "failed": failed})
    return combined_exit_code(successful, failed)


async def _export(runtime: Runtime, dest: str, term: Optional[str]) -> int:
    slugs = [make_slug(term)] if term else None
    written = await export_articles(runtime.store, dest, slugs)
    _print({"exported": {slug: str(path) for slug, path in written.items()}})
    if term and not written:
        return EXIT_FAILED
    return EXIT_OK


async def _restore(runtime: Runtime) -> int:
    _print(await runtime.engine.restore_defaults())
    return EXIT_OK


async def _publish(runtime: Runtime, term: str, status: str) -> int:
    try:
        _print(await runtime.publish(make_slug(term), status=status))
    except ArtifactNotFoundError as exc:
        _print({"error": str(exc)})
        return EXIT_FAILED
    except StageError as exc:
        _print({"error": exc.message, "kind": exc.kind.value})
        return EXIT_CONFIG if exc.kind == FailureKind.CONFIG else EXIT_FAILED
    return EXIT_OK


async def _run(runtime: Runtime, args: argparse.Namespace) -> int:
    try:
        if args.command == "process":
            return await _process(runtime, read_seed_file(Path(args.seed_file)), args.force)
        if args.command == "process-term":
            return await _process(runtime, [args.text], args.force)
        if args.command == "export":
            return await _export(runtime, args.to, args.term)
        if args.command == "restore-defaults":
            return await _restore(runtime)
        if args.command == "publish":
            return await _publish(runtime, args.term, args.status)
    finally:
        await runtime.aclose()
    raise UsageError(f"unknown command: {args.command}")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(prog="article-pipeline", description="Seed-term to article workflow")
    parser.add_argument("--mode", choices=["strict", "development"], default=None, help="Override MODE")
    parser.add_argument("--env-file", default=None, help="Path to a .env file")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    process = sub.add_parser("process", help="Process every term in a seed file")
    process.add_argument("seed_file")
    process.add_argument("--force", action="store_true")

    term = sub.add_parser("process-term", help="Process a single term")
    term.add_argument("text")
    term.add_argument("--force", action="store_true")

    export = sub.add_parser("export", help="Copy rendered articles to a directory")
    export.add_argument("--to", required=True)
    export.add_argument("--term", default=None)

    sub.add_parser("restore-defaults", help="Purge mock artifacts and reset their stages")

    publish = sub.add_parser("publish", help="Publish a rendered article to WordPress")
    publish.add_argument("--term", required=True)
    publish.add_argument("--status", default="draft", choices=["draft", "publish", "pending"])

    serve = sub.add_parser("serve", help="Start the HTTP server")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logger(level=args.log_level.upper())

    try:
        settings = Settings.load_from_env_file(Path(args.env_file) if args.env_file else None)
        settings = settings.with_mode(args.mode)
        runtime = build_runtime(settings)
    except ConfigurationError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    if args.command == "serve":
        import uvicorn

        set_runtime(runtime)
        uvicorn.run("webapp.app:app", host=args.host, port=args.port)
        return EXIT_OK

    try:
        return asyncio.run(_run(runtime, args))
    except UsageError as exc:
        print(f"usage error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())

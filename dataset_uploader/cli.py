"""Command line interface for dataset_uploader."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from rich.logging import RichHandler

from .cli_progress import (
    BatchUploadProgressDisplay,
    render_configuration_summary,
    render_notification,
    render_staged_files,
    render_storage_error,
    render_uploaded_urls,
)
from .errors import CLIError


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug or --log-level is provided.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    if silent or (not debug and not log_level):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, log_level.upper(), logging.INFO)

    handler = RichHandler(
        rich_tracebacks=True,
        markup=True,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _collect_sources(paths: Sequence[Path]) -> List[Path]:
    """Expand the CLI arguments into the ordered list of files to stage."""
    sources: List[Path] = []
    for raw in paths:
        path = Path(raw).expanduser()
        if not path.exists():
            raise CLIError(f"source does not exist: {path}")
        if path.is_dir():
            sources.extend(sorted(p for p in path.iterdir() if p.is_file()))
        else:
            sources.append(path)
    if not sources:
        raise CLIError("no files to upload")
    return sources


async def _run_upload(sources: Sequence[Path], config) -> int:
    from .models import StagedFile
    from .orchestrator import UploadOrchestrator

    async with UploadOrchestrator(config) as orchestrator:
        if orchestrator.storage_error:
            render_storage_error(orchestrator.storage_error)
            return 1

        session = orchestrator.session
        display = BatchUploadProgressDisplay()
        session.dispatcher.on_file_start(display.on_file_start)
        session.on_file_progress(display.on_file_progress)
        session.dispatcher.on_file_complete(display.on_file_complete)
        session.dispatcher.on_file_fail(display.on_file_fail)
        session.on_finish(display.on_finish)

        session.open_modal()
        session.add_files([StagedFile.from_path(path) for path in sources])
        render_staged_files(session.staged_files)

        try:
            batch = await session.submit()
        finally:
            display.stop()

        render_notification(session.current_notification)
        render_uploaded_urls(session.uploaded_urls)
        if batch is None or not batch.all_success:
            return 1
        return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dataset-up",
        description="Upload a batch of dataset files to object storage.",
    )
    parser.add_argument("sources", nargs="*", type=Path, help="Files (or folders) to upload")
    parser.add_argument(
        "--storage-url",
        default=None,
        help="Storage route base URL (default from STORAGE_API_URL)",
    )
    parser.add_argument(
        "--bucket",
        default=None,
        help="Storage bucket name (default from STORAGE_BUCKET or publicFiles)",
    )
    parser.add_argument(
        "-j",
        "--concurrency",
        type=int,
        default=None,
        help="Maximum uploads in flight (default from UPLOADER_MAX_PARALLEL or 3)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="dataset-up (from dataset_uploader)",
    )
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    from .models import UploaderConfig

    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if not args.sources:
        parser.print_help()
        return 0

    try:
        sources = _collect_sources(args.sources)
        config = UploaderConfig.from_env(
            storage_url=args.storage_url,
            bucket=args.bucket,
            concurrency_limit=args.concurrency,
        )
        if not config.storage_url:
            raise CLIError("storage URL not set (use --storage-url or STORAGE_API_URL)")
        if config.concurrency_limit < 1:
            raise CLIError(f"concurrency must be at least 1, got {config.concurrency_limit}")
    except (CLIError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    render_configuration_summary(
        {
            "Files": len(sources),
            "Storage": config.storage_url,
            "Bucket": config.bucket,
            "Accepts": ", ".join(config.accepted_extensions) or "any",
            "Concurrency": config.concurrency_limit,
            "Env File": str(used_env_file) if used_env_file else "-",
            "Logging": effective_log_mode,
        }
    )

    try:
        return asyncio.run(_run_upload(sources, config))
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()

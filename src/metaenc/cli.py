from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from pydantic import ValidationError

from .config import MetaencSettings, cli_overrides_from_args
from .encoder import cmd_to_string, encode_task, native_path, terminate_running
from .errors import MetadataError, UsageError
from .ffmpeg_check import probe_ffmpeg
from .logging import bind_run, configure_logging, log_event
from .metadata import load_metadata
from .models import Outcome
from .planner import plan_tasks
from .scheduler import run_tasks


EXIT_OK = 0
EXIT_USAGE = 2
EXIT_FATAL = 3
EXIT_INTERRUPTED = 130


def _empty_summary() -> dict[str, Any]:
    return {
        "planned": 0,
        "skipped": 0,
        "compile_errors": 0,
        "converted": 0,
        "failed": 0,
    }


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {text!r}")
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {value}")
    return value


def resolve_workers(requested: Optional[int], parallel: bool = True) -> int:
    """CLI/settings value, else host CPU count; ``parallel: false`` means one worker."""
    if requested is not None and requested < 1:
        raise UsageError(f"worker count must be >= 1, got {requested}")
    if not parallel:
        return 1
    return requested or (os.cpu_count() or 1)


def cmd_preflight(ffmpeg: str) -> int:
    st = probe_ffmpeg(ffmpeg)
    if not st.available:
        logger.error(f"ffmpeg: NOT FOUND ({ffmpeg})")
        if st.error:
            logger.error(st.error)
        return EXIT_FATAL
    logger.info(f"ffmpeg: {st.ffmpeg_path}")
    logger.info(f"version: {st.ffmpeg_version}")
    for fmt, present in st.encoders.items():
        logger.info(f"{fmt}: {'YES' if present else 'NO'}")
    return EXIT_OK


def cmd_encode(
    metadata_path: Path,
    *,
    workers: Optional[int] = None,
    ffmpeg_path: Optional[str] = None,
    source_ext: str = ".wav",
    task_timeout: Optional[float] = None,
    dry_run: bool = False,
) -> tuple[int, dict[str, Any]]:
    """Plan and run all encodes described by ``metadata_path``.

    Only an unusable metadata file or output root is fatal. Per-track and
    per-task failures are reported and counted but leave the exit code at 0.
    """
    t_start = time.time()
    summary = _empty_summary()

    try:
        metadata, metadata_mtime_ns = load_metadata(metadata_path)
    except MetadataError as e:
        logger.error(f"error: {e}")
        return EXIT_FATAL, summary

    out_root = Path(metadata.output_path)
    try:
        out_root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"error: Creating the output path {out_root}: {e}")
        return EXIT_FATAL, summary

    max_workers = resolve_workers(workers, metadata.parallel)
    ffmpeg = native_path(ffmpeg_path or metadata.ffmpeg_path)

    t_plan = time.time()
    plan = plan_tasks(metadata, metadata_mtime_ns, source_ext=source_ext)
    d_plan = time.time() - t_plan
    summary["planned"] = len(plan.tasks)
    summary["skipped"] = len(plan.skipped)
    summary["compile_errors"] = len(plan.errors)

    logger.info(f"Processing {len(plan.tasks)} track(s)")

    if dry_run:
        for task in plan.tasks:
            logger.info(f"DRY-RUN {cmd_to_string([ffmpeg, *task.args])}")
        return EXIT_OK, summary

    def report(outcome: Outcome) -> None:
        if outcome.ok:
            summary["converted"] += 1
            logger.info(outcome.description)
        else:
            summary["failed"] += 1
            logger.error(str(outcome.error))
        log_event(
            "encode",
            msg="encode complete" if outcome.ok else "encode failed",
            level="DEBUG",
            task=outcome.description,
            status="ok" if outcome.ok else "error",
            elapsed_ms=int(outcome.elapsed_s * 1000),
        )

    t_encode = time.time()
    run_tasks(
        plan.tasks,
        max_workers,
        lambda task: encode_task(task, ffmpeg, timeout=task_timeout),
        report,
        on_interrupt=terminate_running,
    )
    d_encode = time.time() - t_encode

    logger.info(
        f"Planned: {summary['planned']} | Skipped: {summary['skipped']} | Errors: {summary['compile_errors']}"
        f" | Converted: {summary['converted']} | Failed: {summary['failed']}"
    )
    d_total = time.time() - t_start
    logger.info(
        f"Timing: total={d_total:.3f}s plan={d_plan:.3f}s encode={d_encode:.3f}s workers={max_workers}"
    )
    return EXIT_OK, summary


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="metaenc",
        description="Encode rendered audio into tagged formats as described by a JSON metadata file.",
    )
    p.add_argument("metadata", nargs="?", help="Path to the JSON metadata file")
    p.add_argument(
        "--workers",
        "--num-threads",
        dest="workers",
        type=_positive_int,
        default=None,
        help="Number of parallel ffmpeg processes (default: CPU cores)",
    )
    p.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ~/.config/python-meta-encoder/config.toml)",
    )
    p.add_argument(
        "--write-config",
        action="store_true",
        help="Write current effective settings to the config file and exit",
    )
    p.add_argument(
        "--log-level",
        dest="log_level",
        default=None,
        help="Console log level (default from settings)",
    )
    p.add_argument(
        "--log-json",
        dest="log_json",
        default=None,
        help="Write structured JSON lines to this path",
    )
    p.add_argument(
        "--ffmpeg",
        dest="ffmpeg_path",
        default=None,
        help="ffmpeg executable (default: ffmpeg_path from the metadata file)",
    )
    p.add_argument(
        "--timeout",
        dest="task_timeout",
        type=float,
        default=None,
        help="Kill a single ffmpeg call after this many seconds",
    )
    p.add_argument(
        "--dry-run",
        dest="dry_run",
        action="store_const",
        const=True,
        default=None,
        help="Plan and print ffmpeg commands without running them",
    )
    p.add_argument(
        "--preflight",
        action="store_true",
        help="Check that ffmpeg and its encoders are available, then exit",
    )
    return p


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)

    try:
        cfg = MetaencSettings.load(
            config_path=Path(args.config_path).expanduser() if args.config_path else None,
            overrides=cli_overrides_from_args(args),
        )
    except ValidationError as e:
        print(f"error: invalid settings: {e}", file=sys.stderr)
        return EXIT_USAGE

    if args.write_config:
        written = cfg.write(Path(args.config_path).expanduser() if args.config_path else None)
        print(f"Config written to: {written}")
        return EXIT_OK

    configure_logging(cfg.log_level, cfg.log_json)
    bind_run()

    if args.preflight:
        return cmd_preflight(native_path(cfg.ffmpeg_path or "ffmpeg"))

    try:
        if not args.metadata:
            raise UsageError("the following arguments are required: metadata")
        exit_code, _ = cmd_encode(
            Path(args.metadata),
            workers=cfg.workers,
            ffmpeg_path=cfg.ffmpeg_path,
            source_ext=cfg.source_ext,
            task_timeout=cfg.task_timeout,
            dry_run=cfg.dry_run,
        )
    except UsageError as e:
        p.print_usage(sys.stderr)
        logger.error(f"error: {e}")
        return EXIT_USAGE
    except KeyboardInterrupt:
        logger.warning("Run interrupted")
        return EXIT_INTERRUPTED
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

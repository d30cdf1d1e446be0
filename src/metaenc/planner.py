"""Planner: decide which encodes a run has to perform.

Walks albums → tracks → output formats and produces one task per
(track, format) pair unless the source is unusable, the target path is taken
by a directory, or an existing target is newer than both its source and the
metadata file. Problems are collected on the plan rather than raised, so one
bad track never prevents the rest of the tree from being planned.

Up-to-date detection relies only on modification times of a local
filesystem; if the filesystem clock disagrees with the host clock the result
is undefined.
"""
from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import Optional

from loguru import logger

from .encoder import build_ffmpeg_args
from .errors import (
    CompileError,
    DirectoryCreateFailed,
    SourceIsDirectory,
    SourceNotFound,
    TargetIsDirectory,
    TargetNotAccessible,
)
from .metadata import Album, Metadata
from .models import Plan, SkipNotice, Task
from .paths import source_path, target_dir, target_name


def is_stale(
    target_exists: bool,
    target_mtime_ns: Optional[int],
    source_mtime_ns: int,
    metadata_mtime_ns: int,
) -> bool:
    """True when the target has to be (re)built.

    An existing target is kept only if it is strictly newer than both the
    source file and the metadata that describes it.
    """
    if not target_exists or target_mtime_ns is None:
        return True
    return not (target_mtime_ns > source_mtime_ns and target_mtime_ns > metadata_mtime_ns)


def _report(plan: Plan, err: CompileError) -> None:
    logger.error(f"error: {err}")
    plan.errors.append(err)


def plan_album(
    album: Album,
    *,
    input_root: Path,
    output_root: Path,
    variants: list[str],
    metadata_mtime_ns: int,
    source_ext: str = ".wav",
) -> Plan:
    """Plan all tracks of one album.

    Target directories are created here, so every returned task can write its
    output without further preparation.
    """
    plan = Plan()

    for index, track in enumerate(album.tracks):
        ordinal = index + 1

        src = source_path(input_root, track, source_ext)
        try:
            src_st = src.stat()
        except FileNotFoundError:
            _report(plan, SourceNotFound(src))
            continue
        except OSError as e:
            _report(plan, SourceNotFound(src, str(e)))
            continue
        if stat.S_ISDIR(src_st.st_mode):
            _report(plan, SourceIsDirectory(src))
            continue

        for variant in variants:
            folder = target_dir(output_root, variant, album)
            try:
                folder.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                _report(plan, DirectoryCreateFailed(folder, str(e)))
                continue

            target = folder / target_name(album, ordinal, track, variant)

            try:
                target_st: Optional[os.stat_result] = target.stat()
            except FileNotFoundError:
                target_st = None
            except OSError as e:
                _report(plan, TargetNotAccessible(target, str(e)))
                continue
            if target_st is not None and stat.S_ISDIR(target_st.st_mode):
                _report(plan, TargetIsDirectory(target))
                continue

            if not is_stale(
                target_st is not None,
                target_st.st_mtime_ns if target_st is not None else None,
                src_st.st_mtime_ns,
                metadata_mtime_ns,
            ):
                logger.info(f"Skipping {target} (is more recent)")
                plan.skipped.append(SkipNotice(target))
                continue

            args = build_ffmpeg_args(src, target, variant, ordinal, album, track)
            plan.tasks.append(
                Task(
                    src_path=src,
                    target_path=target,
                    variant=variant,
                    args=tuple(args),
                    description=f"{src} to {target}",
                )
            )

    return plan


def plan_tasks(metadata: Metadata, metadata_mtime_ns: int, *, source_ext: str = ".wav") -> Plan:
    """Plan every album in the document, preserving album and track order."""
    plan = Plan()
    input_root = Path(metadata.input_path)
    output_root = Path(metadata.output_path)
    for album in metadata.albums:
        plan.extend(
            plan_album(
                album,
                input_root=input_root,
                output_root=output_root,
                variants=list(metadata.output_extensions),
                metadata_mtime_ns=metadata_mtime_ns,
                source_ext=source_ext,
            )
        )
    logger.debug(
        f"plan: tasks={len(plan.tasks)} skipped={len(plan.skipped)} errors={len(plan.errors)}"
    )
    return plan

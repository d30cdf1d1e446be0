"""FFmpeg command construction and execution.

The argument dialect is fixed: cover art is attached as a picture stream for
every format except WAV (which is a straight stream copy), MP3 additionally
gets explicit stream mapping and ID3v2.3 tags, and each compressed format uses
the encoder's highest practical quality setting.

Running processes are tracked so an interrupted run can terminate them instead
of leaving orphaned encoders behind.
"""
from __future__ import annotations

import os
import shlex
import subprocess
import threading
import time
from pathlib import Path
from typing import List, Optional, Set

from loguru import logger

from .errors import LaunchFailure, NonZeroExit
from .logging import truncate
from .metadata import Album, Track
from .models import Outcome, Task


# Format-specific compression/quality flags.
FORMAT_QUALITY_ARGS = {
    "flac": ["-compression_level", "12"],
    "mp3": ["-compression_level", "0", "-abr", "1", "-b:a", "320k"],
    "ogg": ["-q", "10"],
}

_live: Set[subprocess.Popen] = set()
_live_lock = threading.Lock()


def native_path(path: str) -> str:
    """Convert forward slashes from the metadata file to native separators."""
    return path.replace("/", os.sep)


def build_ffmpeg_args(
    src: Path,
    target: Path,
    variant: str,
    ordinal: int,
    album: Album,
    track: Track,
) -> List[str]:
    """Build ffmpeg arguments (without the executable) for one track/format."""
    tags = track.resolved(album)
    args = ["-loglevel", "error", "-y", "-i", str(src)]

    cover = tags["cover"]
    if cover:
        # No cover art for WAV.
        if variant != "wav":
            args += [
                "-i",
                native_path(cover),
                "-disposition:v",
                "attached_pic",
                "-metadata:s:v",
                "title=Album Cover",
                "-metadata:s:v",
                "comment=Cover (Front)",
            ]
        # Most MP3 players only read ID3v2.3 pictures.
        if variant == "mp3":
            args += ["-map", "0:a", "-map", "1:v", "-id3v2_version", "3"]

    if variant == "wav":
        args += ["-acodec", "copy"]

    args += [
        "-metadata", f"track={ordinal}",
        "-metadata", f"title={track.title}",
        "-metadata", f"album={album.title}",
        "-metadata", f"genre={tags['genre']}",
        "-metadata", f"date={tags['date']}",
        "-metadata", f"artist={tags['artist']}",
        "-metadata", f"album_artist={tags['artist']}",
        "-metadata", f"composer={tags['composer']}",
        "-metadata", f"comment={tags['copyright']}",
    ]

    args += FORMAT_QUALITY_ARGS.get(variant, [])
    args.append(str(target))
    return args


def cmd_to_string(cmd: List[str]) -> str:
    return " ".join(shlex.quote(p) for p in cmd)


def format_output(stdout: str, stderr: str) -> str:
    """Collapse ffmpeg's stdout and stderr into a single line."""
    output = []
    for text in (stdout, stderr):
        text = text.strip("\r\n")
        if text:
            output.append(", ".join(text.splitlines()))
    return ", ".join(output)


def run_ffmpeg(cmd: List[str], timeout: Optional[float] = None) -> tuple[int, str, str]:
    """Run a command to completion and return (exit code, stdout, stderr).

    Both streams are drained fully before returning. OSError (or ValueError for
    arguments Popen rejects) from launching propagates. On timeout the process
    is killed and subprocess.TimeoutExpired is raised after its output has been
    collected.
    """
    proc = subprocess.Popen(
        cmd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
    )
    with _live_lock:
        _live.add(proc)
    try:
        try:
            out, err = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            proc.kill()
            out, err = proc.communicate()
            e.output, e.stderr = out, err
            raise
        return proc.returncode, out or "", err or ""
    finally:
        with _live_lock:
            _live.discard(proc)


def terminate_running() -> int:
    """Terminate every encoder process still running. Returns how many."""
    with _live_lock:
        procs = list(_live)
    count = 0
    for proc in procs:
        if proc.poll() is None:
            try:
                proc.terminate()
                count += 1
            except OSError as e:
                logger.warning(f"Could not terminate pid {proc.pid}: {e}")
    return count


def encode_task(task: Task, ffmpeg: str, *, timeout: Optional[float] = None) -> Outcome:
    """Run one task and turn the process result into an Outcome."""
    cmd = [ffmpeg, *task.args]
    logger.debug("Running ffmpeg: {}", cmd_to_string(cmd))
    t0 = time.time()
    try:
        rc, out, err = run_ffmpeg(cmd, timeout=timeout)
    except (OSError, ValueError) as e:
        # ValueError: arguments Popen refuses, such as an embedded NUL byte
        return Outcome(
            task.description,
            LaunchFailure(f"error: {task.description}: {e}"),
            time.time() - t0,
        )
    except subprocess.TimeoutExpired as e:
        detail = format_output(e.output or "", e.stderr or "")
        return Outcome(
            task.description,
            NonZeroExit(f"error: {task.description}: timed out after {timeout}s ({truncate(detail)})", -1),
            time.time() - t0,
        )

    if rc != 0:
        return Outcome(
            task.description,
            NonZeroExit(f"error: ffmpeg: {truncate(err or format_output(out, err))}", rc),
            time.time() - t0,
        )
    return Outcome(task.description, None, time.time() - t0)

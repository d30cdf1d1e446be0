"""FFmpeg preflight checks.

Uses only the Python standard library.
"""
from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass, field
from typing import Dict, Optional

# Encoders behind the formats metaenc knows how to tune.
FORMAT_ENCODERS = {
    "flac": "flac",
    "mp3": "libmp3lame",
    "ogg": "libvorbis",
}


@dataclass
class FFmpegStatus:
    available: bool
    ffmpeg_path: Optional[str] = None
    ffmpeg_version: Optional[str] = None
    encoders: Dict[str, bool] = field(default_factory=dict)
    error: Optional[str] = None


def _run(cmd: list[str]) -> tuple[int, str, str]:
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=False,
            text=True,
        )
        return proc.returncode, proc.stdout, proc.stderr
    except OSError as exc:
        return 1, "", str(exc)


def probe_ffmpeg(executable: str = "ffmpeg") -> FFmpegStatus:
    path = shutil.which(executable)
    if not path:
        return FFmpegStatus(available=False, error=f"{executable} not found")

    # Version (stdout)
    rc_v, out_v, err_v = _run([path, "-version"])
    version = out_v.splitlines()[0].strip() if out_v else None

    # Encoders (stdout)
    rc_e, out_e, _ = _run([path, "-hide_banner", "-encoders"])
    encoders_text = (out_e or "").lower() if rc_e == 0 else ""
    encoders = {fmt: (name in encoders_text) for fmt, name in FORMAT_ENCODERS.items()}

    return FFmpegStatus(
        available=(rc_v == 0),
        ffmpeg_path=path,
        ffmpeg_version=version,
        encoders=encoders,
        error=None if rc_v == 0 else (err_v or "ffmpeg -version failed"),
    )


"""Source and target path construction.

Target names follow a fixed pattern that other tools rely on:

    <out>/<format>/<artist>/<album>/<artist> - <album> - <NN> <title> [<rendered_file>].<format>
"""
from __future__ import annotations

import re
import unicodedata
from pathlib import Path

from .metadata import Album, Track


# Characters that would split a segment or cannot appear in a file name at all.
_ILLEGAL_CHARS_RE = re.compile(r"[\x00-\x1F\x7F/\\]")

# Most filesystems limit a path segment to 255 bytes (not characters).
_MAX_SEGMENT_BYTES = 255


def _clip_utf8(s: str, max_bytes: int) -> str:
    """Cut ``s`` to at most ``max_bytes`` of UTF-8 without splitting a character."""
    return s.encode("utf-8")[:max_bytes].decode("utf-8", errors="ignore")


def _sanitize_segment(name: str, *, preserve_ext: str | None = None) -> str:
    """Make a single path segment safe without changing ordinary names.

    - Normalize Unicode to NFC
    - Replace control characters and path separators with '_'
    - Enforce the per-segment byte limit (preserving extension if provided)
    - Ensure not empty
    """
    s = unicodedata.normalize("NFC", name)
    s = _ILLEGAL_CHARS_RE.sub("_", s)
    if not s or s in (".", ".."):
        s = s.replace(".", "_") or "_"

    if len(s.encode("utf-8")) > _MAX_SEGMENT_BYTES:
        ext_bytes = len(preserve_ext.encode("utf-8")) if preserve_ext else 0
        if preserve_ext and s.endswith(preserve_ext) and ext_bytes < _MAX_SEGMENT_BYTES:
            s = _clip_utf8(s[: -len(preserve_ext)], _MAX_SEGMENT_BYTES - ext_bytes) + preserve_ext
        else:
            s = _clip_utf8(s, _MAX_SEGMENT_BYTES)
    return s


def source_path(input_root: Path, track: Track, ext: str = ".wav") -> Path:
    return input_root / (track.rendered_file + ext)


def target_dir(output_root: Path, variant: str, album: Album) -> Path:
    """Directory holding every output of ``album`` in format ``variant``.

    Empty artist or album names add no directory level.
    """
    parts = [_sanitize_segment(p) for p in (variant, album.artist, album.title) if p]
    return output_root.joinpath(*parts)


def target_name(album: Album, ordinal: int, track: Track, variant: str) -> str:
    """File name for one track in one format; a pure function of its inputs."""
    ext = f".{variant}"
    name = f"{album.artist} - {album.title} - {ordinal:02d} {track.title} [{track.rendered_file}]{ext}"
    return _sanitize_segment(name, preserve_ext=ext)

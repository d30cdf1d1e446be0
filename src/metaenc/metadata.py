"""Album/track metadata description and tag resolution.

The JSON document describes where the rendered files live, where outputs go,
which formats to produce and, per album, the default tags. Tracks may override
any album tag; a missing key (``None``) inherits the album value while an empty
string is a real override.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import MetadataInvalid, MetadataUnreadable


TAG_FIELDS = ("composer", "artist", "genre", "date", "cover", "copyright")


def override(default: str, value: Optional[str]) -> str:
    """Return ``value`` if present, otherwise the album-level ``default``."""
    if value is not None:
        return value
    return default


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _lower_keys(cls, data: Any) -> Any:
        # Keys are case-insensitive: "Title", "Albums" and "title", "albums" are the same
        if isinstance(data, dict):
            return {str(k).lower(): v for k, v in data.items()}
        return data


class Track(_Model):
    rendered_file: str
    title: str = ""
    composer: Optional[str] = None
    artist: Optional[str] = None
    genre: Optional[str] = None
    date: Optional[str] = None
    cover: Optional[str] = None
    copyright: Optional[str] = None

    def resolved(self, album: "Album") -> Dict[str, str]:
        """Effective tag values for this track within ``album``."""
        return {name: override(getattr(album, name), getattr(self, name)) for name in TAG_FIELDS}


class Album(_Model):
    title: str = ""
    composer: str = ""
    artist: str = ""
    genre: str = ""
    date: str = ""
    cover: str = ""
    copyright: str = ""
    tracks: List[Track] = Field(default_factory=list)


class Metadata(_Model):
    ffmpeg_path: str = "ffmpeg"
    input_path: str = "."
    output_path: str = "."
    output_extensions: List[str] = Field(default_factory=list)
    parallel: bool = True
    albums: List[Album] = Field(default_factory=list)


def load_metadata(path: Path) -> Tuple[Metadata, int]:
    """Read and validate a metadata document.

    Returns the parsed document and its modification time in nanoseconds, which
    the planner compares against existing outputs.
    """
    try:
        mtime_ns = path.stat().st_mtime_ns
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise MetadataUnreadable(path, str(e)) from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MetadataInvalid(path, f"not valid JSON: {e}") from e

    try:
        return Metadata.model_validate(data), mtime_ns
    except ValidationError as e:
        raise MetadataInvalid(path, str(e)) from e

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tomlkit import dumps as toml_dumps


DEFAULT_CONFIG_PATH = Path("~/.config/python-meta-encoder/config.toml").expanduser()
ENV_PREFIX = "METAENC_"


class MetaencSettings(BaseSettings):
    """Global settings for python-meta-encoder.

    Priority (lowest -> highest):
    - Class defaults below
    - TOML file at `config_path` (default: ~/.config/python-meta-encoder/config.toml)
    - Environment variables with prefix METAENC_
    - CLI overrides passed to `load(overrides=...)`
    """

    # Logging
    log_level: str = Field(default="INFO", description="Console log level")
    log_json: Optional[str] = Field(default=None, description="Path for structured JSON log file")

    # Run
    workers: Optional[int] = Field(default=None, ge=1, description="Parallel workers; None=auto (CPU cores)")
    ffmpeg_path: Optional[str] = Field(
        default=None, description="ffmpeg executable; None=use ffmpeg_path from the metadata file"
    )
    source_ext: str = Field(default=".wav", description="Extension appended to each track's rendered_file")
    task_timeout: Optional[float] = Field(
        default=None, gt=0, description="Seconds before a single ffmpeg call is killed; None=no limit"
    )
    dry_run: bool = Field(default=False, description="Plan and print commands without encoding")

    # Config source/path (not persisted as part of effective config when writing)
    config_path: Path = Field(default=DEFAULT_CONFIG_PATH, exclude=True)

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore")

    @classmethod
    def _toml_file_source(cls, config_path: Path) -> Dict[str, Any]:
        """Read settings from a TOML file if it exists; return dict values.

        Unknown keys are ignored by pydantic via extra="ignore".
        """
        if not config_path or not config_path.exists():
            return {}
        with config_path.open("rb") as f:
            data = tomllib.load(f)
        if not isinstance(data, dict):
            return {}
        return data

    @classmethod
    def load(
        cls,
        *,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "MetaencSettings":
        """Load settings from defaults + TOML + env + CLI overrides.

        - config_path: path to TOML config; defaults to ~/.config/python-meta-encoder/config.toml
        - overrides: dict of CLI values (None values are ignored)
        """
        cp = config_path or DEFAULT_CONFIG_PATH
        file_values = cls._toml_file_source(cp)
        # Init kwargs outrank env in pydantic-settings, so drop file keys the env sets
        env_keys = {k[len(ENV_PREFIX):].lower() for k in os.environ if k.upper().startswith(ENV_PREFIX)}
        file_values = {k: v for k, v in file_values.items() if k.lower() not in env_keys}
        # Build settings in two steps so that env can override file, and CLI overrides override env
        base = cls(**file_values)
        if overrides:
            non_none = {k: v for k, v in overrides.items() if v is not None}
        else:
            non_none = {}
        merged = base.model_dump()
        merged.update(non_none)
        settings = cls(**merged)
        settings.config_path = cp
        return settings

    def to_toml(self) -> str:
        """Serialize effective settings (excluding ephemeral and unset fields) to TOML string."""
        data = self.model_dump(exclude={"config_path"}, exclude_none=True)
        return toml_dumps(data)

    def write(self, path: Optional[Path] = None) -> Path:
        """Write effective config to TOML at `path` (or default path). Creates parent dirs.

        Returns the path written.
        """
        target = path or self.config_path or DEFAULT_CONFIG_PATH
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.to_toml(), encoding="utf-8")
        return target


def cli_overrides_from_args(args: Any) -> Dict[str, Any]:
    """Extract known settings keys from argparse Namespace into an overrides dict.

    Unknown keys are ignored; None values are preserved for filtering by `load()`.
    """
    keys = {
        "log_level",
        "log_json",
        "workers",
        "ffmpeg_path",
        "source_ext",
        "task_timeout",
        "dry_run",
    }
    result: Dict[str, Any] = {}
    for k in keys:
        if hasattr(args, k):
            result[k] = getattr(args, k)
    return result

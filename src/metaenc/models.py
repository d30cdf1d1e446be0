from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import CompileError, TaskExecutionError


@dataclass(frozen=True)
class Task:
    """One fully specified ffmpeg invocation. Never mutated after planning."""

    src_path: Path
    target_path: Path
    variant: str
    args: Tuple[str, ...]
    description: str


@dataclass(frozen=True)
class Outcome:
    description: str
    error: Optional[TaskExecutionError] = None
    elapsed_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class SkipNotice:
    target_path: Path
    reason: str = "is more recent"


@dataclass
class Plan:
    tasks: List[Task] = field(default_factory=list)
    skipped: List[SkipNotice] = field(default_factory=list)
    errors: List[CompileError] = field(default_factory=list)

    def extend(self, other: "Plan") -> None:
        self.tasks.extend(other.tasks)
        self.skipped.extend(other.skipped)
        self.errors.extend(other.errors)

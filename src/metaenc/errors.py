"""Error taxonomy.

Fatal errors (usage, metadata) are raised and stop a run before any work is
done. Compile and execution errors are collected as values on the plan and on
task outcomes so a partially invalid tree still produces as much work as
possible.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional


class MetaencError(Exception):
    """Base class for all metaenc errors."""


class UsageError(MetaencError):
    """Bad command line invocation."""


class MetadataError(MetaencError):
    """The metadata description cannot be used."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class MetadataUnreadable(MetadataError):
    pass


class MetadataInvalid(MetadataError):
    pass


class CompileError(MetaencError):
    """A track (or one track/format pair) that could not be planned."""

    message = "cannot plan"

    def __init__(self, path: Path, detail: Optional[str] = None) -> None:
        text = f"{self.message}: {path}"
        if detail:
            text += f": {detail}"
        super().__init__(text)
        self.path = path
        self.detail = detail


class SourceNotFound(CompileError):
    message = "source not found"


class SourceIsDirectory(CompileError):
    message = "source is a directory (skipping)"


class DirectoryCreateFailed(CompileError):
    message = "cannot create directory"


class TargetIsDirectory(CompileError):
    message = "target is a directory (skipping)"


class TargetNotAccessible(CompileError):
    message = "cannot inspect target (skipping)"


class TaskExecutionError(MetaencError):
    """An encode task that ran but did not succeed."""


class LaunchFailure(TaskExecutionError):
    """The encoder process could not be started."""


class NonZeroExit(TaskExecutionError):
    def __init__(self, message: str, returncode: int) -> None:
        super().__init__(message)
        self.returncode = returncode

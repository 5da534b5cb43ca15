"""
Error taxonomy — every fatal condition a formula run can hit.

Each error names the phase it aborted and carries enough context
(command, file, expected vs actual) to diagnose the failure without
rerunning with more verbosity. Adapters never raise these; the engine
and services raise them, and the use cases catch them at the top.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class FormulaError(Exception):
    """Base class for all fatal formula errors."""

    phase = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {"phase": self.phase, "error": str(self), "type": type(self).__name__}


class RecipeError(FormulaError):
    """Raised when a recipe file is missing, unreadable, or invalid."""

    phase = "load"


class KegError(FormulaError):
    """Raised when the installation directory is in the wrong state for the operation."""

    phase = "keg"


class FetchError(FormulaError):
    """Raised when the source archive cannot be fetched, verified, or staged."""

    phase = "fetch"


class PatchError(FormulaError):
    """Raised when a patch is malformed or targets a path outside the tree."""

    phase = "patch"


class PatchConflict(PatchError):
    """A hunk's old lines did not match the target file."""

    def __init__(self, file: str, hunk_index: int, reason: str = ""):
        self.file = file
        self.hunk_index = hunk_index
        self.reason = reason
        message = f"Patch conflict in {file} (hunk #{hunk_index + 1})"
        if reason:
            message += f": {reason}"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(file=self.file, hunk_index=self.hunk_index, reason=self.reason)
        return data


class StepFailed(FormulaError):
    """An external process (or file operation) exited unsuccessfully."""

    def __init__(
        self,
        index: int,
        command: list[str] | str,
        exit_code: int | None,
        stderr: str = "",
        phase: str = "build",
    ):
        self.index = index
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        self.phase = phase
        shown = command if isinstance(command, str) else " ".join(command)
        code = f"exit {exit_code}" if exit_code is not None else "no exit code"
        message = f"Step #{index + 1} failed ({code}): {shown}"
        if stderr:
            message += f"\n{stderr}"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            index=self.index,
            command=self.command,
            exit_code=self.exit_code,
            stderr=self.stderr,
        )
        return data


class PruneError(FormulaError):
    """Raised when a matched path cannot be removed from the keg."""

    phase = "prune"


class LinkError(FormulaError):
    """Raised when a keg cannot be linked into the install root."""

    phase = "link"


class VerificationFailed(FormulaError):
    """A smoke-test check did not produce the expected result."""

    phase = "test"

    def __init__(self, index: int, command: list[str], expected: str, actual: str):
        self.index = index
        self.command = command
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Check #{index + 1} failed: {' '.join(command)}\n"
            f"  expected: {expected!r}\n"
            f"  actual:   {actual!r}"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            index=self.index,
            command=self.command,
            expected=self.expected,
            actual=self.actual,
        )
        return data


@dataclass(frozen=True)
class PruneWarning:
    """A prune pattern that matched nothing. Informational, never raised."""

    pattern: str
    message: str = "pattern matched no paths"

    def to_dict(self) -> dict[str, str]:
        return {"pattern": self.pattern, "message": self.message}

"""
Action and Receipt models — the invocation contract.

An Action is one concrete invocation derived from a recipe step or
check: an argv (or a file operation) with everything substituted and a
resolved working directory. A Receipt is what an adapter hands back.
Adapters never raise; failures travel inside the Receipt and the engine
decides what is fatal.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Action(BaseModel):
    """A fully-resolved operation to hand to an adapter."""

    id: str                         # e.g. "op-...:build:3"
    adapter: str                    # "process", "filesystem", ...
    name: str = ""                  # human-readable label
    index: int = 0                  # position within its phase
    cwd: str = "."                  # absolute working directory
    argv: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    timeout: float | None = None
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def display(self) -> str:
        """Command line (or operation) as shown in logs and errors."""
        if self.argv:
            return " ".join(self.argv)
        operation = self.params.get("operation", self.adapter)
        return f"{operation} {self.params.get('target', '')}".strip()


class Receipt(BaseModel):
    """Result of an adapter execution."""

    adapter: str
    action_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    exit_code: int | None = None
    output: str = ""                # raw stdout, untrimmed
    error: str | None = None        # stderr or adapter error message

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(
        cls,
        adapter: str,
        action_id: str,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        kwargs.setdefault("exit_code", 0)
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="ok",
            output=output,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        adapter: str,
        action_id: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="failed",
            error=error,
            **kwargs,
        )

    @classmethod
    def skip(
        cls,
        adapter: str,
        action_id: str,
        reason: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a skip receipt (dry runs)."""
        return cls(
            adapter=adapter,
            action_id=action_id,
            status="skipped",
            output=reason,
            **kwargs,
        )

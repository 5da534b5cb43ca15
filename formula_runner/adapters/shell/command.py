"""
Process adapter — run one external program with an argument vector.

This is the single place where ``subprocess.run`` is called. The
command runs directly (never through a shell) inside the action's
working directory; the caller's own working directory is untouched.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from pathlib import Path

from formula_runner.adapters.base import Adapter, ExecutionContext
from formula_runner.core.models.action import Receipt

logger = logging.getLogger(__name__)

# Bytes of stderr kept in a failure receipt
_STDERR_TAIL = 4000


class ProcessAdapter(Adapter):
    """Execute ``action.argv`` and capture its output.

    Action fields used:
        argv: Executable followed by its arguments.
        cwd: Working directory (must exist).
        env: Extra environment variables layered over os.environ.
        timeout: Seconds before the process is killed (None = unbounded).
    """

    @property
    def name(self) -> str:
        return "process"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        action = context.action
        if not action.argv:
            return False, "Missing argument vector"
        if not Path(action.cwd).is_dir():
            return False, f"Working directory does not exist: {action.cwd}"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        action = context.action
        env = os.environ.copy()
        env.update(action.env)

        logger.debug("Executing: %s (cwd=%s)", action.display, action.cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                action.argv,
                cwd=action.cwd,
                env=env,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=action.timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=action.id,
                error=f"Command timed out after {action.timeout}s",
                metadata={"command": action.argv, "timeout": action.timeout},
            )
        except FileNotFoundError:
            return Receipt.failure(
                adapter=self.name,
                action_id=action.id,
                error=f"Executable not found: {action.argv[0]}",
                metadata={"command": action.argv},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=action.id,
                error=f"Cannot execute {action.argv[0]}: {e}",
                metadata={"command": action.argv},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        stderr = result.stderr or ""
        if stderr:
            logger.debug("stderr of %s:\n%s", action.argv[0], stderr[-_STDERR_TAIL:])

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=action.id,
                output=result.stdout,
                exit_code=0,
                duration_ms=elapsed_ms,
                metadata={"command": action.argv, "stderr": stderr[-_STDERR_TAIL:]},
            )

        return Receipt.failure(
            adapter=self.name,
            action_id=action.id,
            error=stderr[-_STDERR_TAIL:].strip() or f"Command exited with code {result.returncode}",
            output=result.stdout,
            exit_code=result.returncode,
            duration_ms=elapsed_ms,
            metadata={"command": action.argv},
        )

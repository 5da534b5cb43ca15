"""
Filesystem adapter — copy files into the keg and create symlinks.

Backs the ``install`` and ``symlink`` recipe steps with the same
receipt contract as the process adapter, so the engine can run,
dry-run and audit them uniformly.
"""

from __future__ import annotations

import glob
import logging
import os
import shutil
from pathlib import Path

from formula_runner.adapters.base import Adapter, ExecutionContext
from formula_runner.core.models.action import Receipt

logger = logging.getLogger(__name__)

VALID_OPERATIONS = {"install", "symlink"}


class FilesystemAdapter(Adapter):
    """File operations with receipts.

    Action params:
        operation (str): 'install' or 'symlink'.
        target (str): Destination directory (install) or link path (symlink).
        sources (list[str]): Globs relative to action.cwd (install).
        points_to (str): Absolute path the link refers to (symlink).
        relative (bool): Store the link target relative to the link (symlink).
    """

    @property
    def name(self) -> str:
        return "filesystem"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        params = context.action.params
        operation = params.get("operation", "")
        if operation not in VALID_OPERATIONS:
            valid = ", ".join(sorted(VALID_OPERATIONS))
            return False, f"Unknown operation '{operation}'. Valid: {valid}"

        if not params.get("target"):
            return False, "Missing required param: 'target'"

        if operation == "install":
            if not params.get("sources"):
                return False, "Missing required param: 'sources'"
            if not Path(context.working_dir).is_dir():
                return False, f"Working directory does not exist: {context.working_dir}"
        elif not params.get("points_to"):
            return False, "Missing required param: 'points_to'"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.action.params["operation"]
        try:
            if operation == "install":
                return self._install(context)
            return self._symlink(context)
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Filesystem error: {e}",
                metadata={"operation": operation, "target": context.action.params["target"]},
            )

    def _install(self, ctx: ExecutionContext) -> Receipt:
        params = ctx.action.params
        base = Path(ctx.working_dir)
        dest = Path(params["target"])

        installed: list[str] = []
        for pattern in params["sources"]:
            matches = sorted(base.glob(pattern)) if glob.has_magic(pattern) else [base / pattern]
            if not glob.has_magic(pattern) and not os.path.lexists(matches[0]):
                return Receipt.failure(
                    adapter=self.name,
                    action_id=ctx.action.id,
                    error=f"Nothing to install: {base / pattern} does not exist",
                    metadata={"operation": "install", "pattern": pattern},
                )
            if not matches:
                logger.info("install: '%s' matched nothing under %s", pattern, base)

            dest.mkdir(parents=True, exist_ok=True)
            for src in matches:
                target = dest / src.name
                if src.is_dir() and not src.is_symlink():
                    shutil.copytree(src, target, symlinks=True, dirs_exist_ok=True)
                else:
                    shutil.copy2(src, target, follow_symlinks=False)
                installed.append(str(target))

        logger.debug("Installed %d entries into %s", len(installed), dest)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output="\n".join(installed),
            metadata={"operation": "install", "target": str(dest), "count": len(installed)},
        )

    def _symlink(self, ctx: ExecutionContext) -> Receipt:
        params = ctx.action.params
        link = Path(params["target"])
        points_to = Path(params["points_to"])

        link.parent.mkdir(parents=True, exist_ok=True)
        if link.is_symlink() or link.exists():
            if link.is_dir() and not link.is_symlink():
                return Receipt.failure(
                    adapter=self.name,
                    action_id=ctx.action.id,
                    error=f"Cannot replace directory with symlink: {link}",
                )
            link.unlink()

        value = os.path.relpath(points_to, link.parent) if params.get("relative", True) else str(points_to)
        link.symlink_to(value)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"{link} -> {value}",
            metadata={"operation": "symlink", "target": str(link), "points_to": value},
        )

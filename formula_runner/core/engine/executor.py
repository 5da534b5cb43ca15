"""
Engine executor — the step runner at the heart of every install.

It turns recipe steps into fully-resolved Actions (substituting
``{prefix}``-style tokens and anchoring working directories), then runs
them one at a time through the adapter registry. The first failed
receipt stops the run with StepFailed; nothing already done is undone.

Flow:
    steps → build_actions → ExecutionPlan → run_plan → ExecutionReport
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from formula_runner.adapters.registry import AdapterRegistry
from formula_runner.core.config.settings import Layout
from formula_runner.core.errors import StepFailed
from formula_runner.core.models.action import Action, Receipt
from formula_runner.core.models.recipe import Step

logger = logging.getLogger(__name__)


@dataclass
class ExecutionPlan:
    """The ordered actions of one phase."""

    operation_id: str = ""
    phase: str = "build"
    actions: list[Action] = field(default_factory=list)

    @property
    def total_actions(self) -> int:
        return len(self.actions)


@dataclass
class ExecutionReport:
    """Receipts of a phase that ran to completion."""

    operation_id: str = ""
    phase: str = "build"
    receipts: list[Receipt] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.receipts)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.receipts if r.ok)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.receipts if r.status == "skipped")

    @property
    def duration_ms(self) -> int:
        return sum(r.duration_ms for r in self.receipts)

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "phase": self.phase,
            "total": self.total,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "duration_ms": self.duration_ms,
        }


def substitute(value: str, variables: dict[str, str]) -> str:
    """Replace known ``{var}`` tokens; any other braces are left alone.

    Recipe arguments routinely contain literal braces (kpathsea brace
    lists, shell globs), so only names present in ``variables`` count.
    """
    for key, replacement in variables.items():
        value = value.replace(f"{{{key}}}", replacement)
    return value


def _anchor(path: str, base: Path) -> Path:
    """Absolute path for ``path``, interpreted relative to ``base``."""
    candidate = Path(path)
    return candidate if candidate.is_absolute() else base / candidate


def build_actions(
    steps: list[Step],
    layout: Layout,
    buildpath: Path,
    operation_id: str,
    phase: str = "build",
) -> ExecutionPlan:
    """Resolve recipe steps into an execution plan.

    Working directories are relative to ``buildpath``; install
    destinations and symlink paths are relative to the keg.
    """
    variables = layout.variables(buildpath)
    plan = ExecutionPlan(operation_id=operation_id, phase=phase)

    for index, step in enumerate(steps):
        cwd = _anchor(substitute(step.cwd, variables), buildpath)
        params: dict = {}

        if step.install is not None:
            params = {
                "operation": "install",
                "sources": [substitute(s, variables) for s in step.install.sources],
                "target": str(_anchor(substitute(step.install.to, variables), layout.prefix)),
            }
        elif step.symlink is not None:
            params = {
                "operation": "symlink",
                "target": str(_anchor(substitute(step.symlink.link, variables), layout.prefix)),
                "points_to": str(_anchor(substitute(step.symlink.target, variables), layout.prefix)),
                "relative": step.symlink.relative,
            }

        plan.actions.append(
            Action(
                id=f"{operation_id}:{phase}:{index}",
                adapter=step.adapter,
                name=step.label,
                index=index,
                cwd=str(cwd),
                argv=[substitute(arg, variables) for arg in step.run],
                env={k: substitute(v, variables) for k, v in step.env.items()},
                timeout=step.timeout,
                params=params,
            )
        )

    return plan


def run_plan(
    plan: ExecutionPlan,
    registry: AdapterRegistry,
    dry_run: bool = False,
) -> ExecutionReport:
    """Run every action in order, stopping at the first failure.

    Raises:
        StepFailed: On the first failed receipt. Side effects of the
            actions before it are left in place.
    """
    report = ExecutionReport(operation_id=plan.operation_id, phase=plan.phase)

    for action in plan.actions:
        logger.info("==> [%s %d/%d] %s", plan.phase, action.index + 1, plan.total_actions, action.display)
        receipt = registry.execute_action(action, dry_run=dry_run)
        report.receipts.append(receipt)

        if receipt.failed:
            logger.error("✗ %s → %s", action.display, receipt.error)
            raise StepFailed(
                index=action.index,
                command=action.argv or action.display,
                exit_code=receipt.exit_code,
                stderr=receipt.error or "",
                phase=plan.phase,
            )

        marker = "⊘" if receipt.status == "skipped" else "✓"
        logger.debug("%s %s (%dms)", marker, action.display, receipt.duration_ms)

    return report


def generate_operation_id() -> str:
    """Unique, sortable operation identifier."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    return f"op-{now}-{uuid.uuid4().hex[:6]}"

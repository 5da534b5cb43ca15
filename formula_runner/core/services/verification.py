"""
Verification runner — smoke-test a finished keg.

Checks run in order through the adapter registry, like build steps,
but they are read-only queries: nothing they do should change the keg.
The first check whose exit code or output differs from what the
recipe expects stops verification with VerificationFailed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from formula_runner.adapters.registry import AdapterRegistry
from formula_runner.core.config.settings import Layout
from formula_runner.core.engine.executor import substitute
from formula_runner.core.errors import VerificationFailed
from formula_runner.core.models.action import Action
from formula_runner.core.models.recipe import Check

logger = logging.getLogger(__name__)


def normalize_output(output: str) -> str:
    """Trailing whitespace is insignificant; everything else is compared."""
    return output.rstrip()


@dataclass
class CheckOutcome:
    index: int
    command: list[str]
    exit_code: int | None
    output: str

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "command": self.command,
            "exit_code": self.exit_code,
            "output": self.output,
        }


@dataclass
class VerificationReport:
    outcomes: list[CheckOutcome] = field(default_factory=list)

    @property
    def passed(self) -> int:
        return len(self.outcomes)

    def to_dict(self) -> dict:
        return {"passed": self.passed, "checks": [o.to_dict() for o in self.outcomes]}


def build_check_actions(checks: list[Check], layout: Layout, operation_id: str) -> list[Action]:
    """Resolve checks into process actions running inside the keg."""
    variables = layout.variables()
    actions = []
    for index, check in enumerate(checks):
        cwd = substitute(check.cwd, variables) if check.cwd else str(layout.prefix)
        if not Path(cwd).is_absolute():
            cwd = str(layout.prefix / cwd)
        actions.append(
            Action(
                id=f"{operation_id}:test:{index}",
                adapter="process",
                name=check.label,
                index=index,
                cwd=cwd,
                argv=[substitute(arg, variables) for arg in check.run],
            )
        )
    return actions


def run_checks(
    checks: list[Check],
    layout: Layout,
    registry: AdapterRegistry,
    operation_id: str = "",
) -> VerificationReport:
    """Run every check, stopping at the first mismatch.

    Raises:
        VerificationFailed: With the command and expected vs actual.
    """
    report = VerificationReport()
    actions = build_check_actions(checks, layout, operation_id)

    for check, action in zip(checks, actions):
        logger.info("==> [test %d/%d] %s", action.index + 1, len(actions), action.display)
        receipt = registry.execute_action(action)

        if receipt.exit_code != check.expect_exit:
            actual = f"exit {receipt.exit_code}" if receipt.exit_code is not None else (receipt.error or "no exit code")
            if receipt.error and receipt.exit_code is not None:
                actual += f": {receipt.error}"
            raise VerificationFailed(
                index=action.index,
                command=action.argv,
                expected=f"exit {check.expect_exit}",
                actual=actual,
            )

        output = normalize_output(receipt.output)
        if check.expect_output is not None and output != check.expect_output:
            raise VerificationFailed(
                index=action.index,
                command=action.argv,
                expected=check.expect_output,
                actual=output,
            )

        report.outcomes.append(
            CheckOutcome(
                index=action.index,
                command=action.argv,
                exit_code=receipt.exit_code,
                output=output,
            )
        )
        logger.debug("✓ %s", action.display)

    return report

"""
Verify use case — run a recipe's smoke-test checks against its keg.

Backs ``formula test``. The keg must carry an install receipt; checks
then run in declared order and the first mismatch fails the run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path

from formula_runner.adapters.registry import AdapterRegistry, default_registry
from formula_runner.core.config.loader import load_recipe
from formula_runner.core.config.settings import Layout, Settings
from formula_runner.core.engine.executor import generate_operation_id
from formula_runner.core.errors import FormulaError, KegError
from formula_runner.core.models.recipe import Recipe
from formula_runner.core.persistence.audit import AuditEntry, AuditWriter
from formula_runner.core.persistence.receipt_file import load_receipt
from formula_runner.core.services.verification import VerificationReport, run_checks

logger = logging.getLogger(__name__)


@dataclass
class VerifyResult:
    """Result of testing an installed recipe."""

    recipe: Recipe | None = None
    layout: Layout | None = None
    operation_id: str = ""
    report: VerificationReport | None = None
    error: FormulaError | None = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        result: dict = {"ok": self.ok, "operation_id": self.operation_id}
        if self.recipe:
            result["formula"] = self.recipe.name
            result["version"] = self.recipe.version
        if self.layout:
            result["prefix"] = str(self.layout.prefix)
        if self.report:
            result["report"] = self.report.to_dict()
        if self.error:
            result["error"] = self.error.to_dict()
        return result


def verify_formula(
    recipe_ref: str | Path,
    settings: Settings,
    registry: AdapterRegistry | None = None,
    search_dirs: list[Path] | None = None,
) -> VerifyResult:
    """Run every check of an installed recipe.

    Returns:
        VerifyResult; ``error`` holds the first VerificationFailed, or
        the reason the keg could not be tested at all.
    """
    result = VerifyResult(operation_id=generate_operation_id())
    start = time.monotonic()

    try:
        recipe = load_recipe(recipe_ref, search_dirs)
        layout = settings.layout(recipe)
        result.recipe = recipe
        result.layout = layout

        if load_receipt(layout.receipt_path) is None:
            raise KegError(f"{recipe.full_name} is not installed in {layout.prefix}")

        if not recipe.checks:
            logger.warning("%s declares no checks", recipe.full_name)

        if registry is None:
            registry = default_registry()

        result.report = run_checks(recipe.checks, layout, registry, result.operation_id)
        logger.info("All %d check(s) passed for %s", result.report.passed, recipe.full_name)

    except FormulaError as e:
        result.error = e
        logger.error("test failed: %s", e)

    result.duration_ms = int((time.monotonic() - start) * 1000)
    AuditWriter(state_dir=settings.state_dir).write(
        AuditEntry(
            operation_id=result.operation_id,
            operation="test",
            formula=result.recipe.name if result.recipe else "",
            version=result.recipe.version if result.recipe else "",
            prefix=str(result.layout.prefix) if result.layout else "",
            status="ok" if result.ok else "failed",
            phase=result.error.phase if result.error else "test",
            duration_ms=result.duration_ms,
            error=str(result.error) if result.error else None,
            context={"passed": result.report.passed if result.report else 0},
        )
    )
    return result

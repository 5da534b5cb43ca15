"""
Install use case — build a recipe into its keg.

The full vertical slice of one install, phase by phase:

    load → keg check → fetch → stage → patch → build → prune
         → link → post_install → receipt → audit

The first failing phase stops the run. Nothing is rolled back: a
partial keg stays on disk for inspection, and ``force`` clears it on
the next attempt. Every run, successful or not, leaves one audit entry.
"""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path

from formula_runner.adapters.registry import AdapterRegistry, default_registry
from formula_runner.core.config.loader import load_recipe
from formula_runner.core.config.settings import Layout, Settings
from formula_runner.core.engine.executor import (
    ExecutionPlan,
    ExecutionReport,
    build_actions,
    generate_operation_id,
    run_plan,
)
from formula_runner.core.errors import FormulaError, KegError
from formula_runner.core.models.install import InstallReceipt
from formula_runner.core.models.recipe import Recipe
from formula_runner.core.persistence.audit import AuditEntry, AuditWriter
from formula_runner.core.persistence.receipt_file import save_receipt
from formula_runner.core.services.fetching import StagedSource, fetch_source, stage
from formula_runner.core.services.linking import LinkResult, link_keg, unlink_keg
from formula_runner.core.services.patching import PatchResult, apply_patch_spec
from formula_runner.core.services.pruning import PruneResult, prune

logger = logging.getLogger(__name__)


@dataclass
class InstallResult:
    """Result of installing one recipe."""

    recipe: Recipe | None = None
    layout: Layout | None = None
    operation_id: str = ""
    phase: str = "load"
    dry_run: bool = False

    plans: list[ExecutionPlan] = field(default_factory=list)
    reports: list[ExecutionReport] = field(default_factory=list)
    patch: PatchResult | None = None
    pruned: PruneResult | None = None
    linked: LinkResult | None = None
    receipt: InstallReceipt | None = None
    buildpath: Path | None = None

    error: FormulaError | None = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        result: dict = {
            "ok": self.ok,
            "operation_id": self.operation_id,
            "phase": self.phase,
            "dry_run": self.dry_run,
            "duration_ms": self.duration_ms,
        }
        if self.recipe:
            result["formula"] = self.recipe.name
            result["version"] = self.recipe.version
        if self.layout:
            result["prefix"] = str(self.layout.prefix)
        if self.error:
            result["error"] = self.error.to_dict()
        if self.patch:
            result["patch"] = self.patch.to_dict()
        if self.reports:
            result["reports"] = [r.to_dict() for r in self.reports]
        if self.pruned:
            result["prune"] = self.pruned.to_dict()
        if self.linked:
            result["link"] = self.linked.to_dict()
        if self.dry_run:
            result["plans"] = [
                {
                    "phase": plan.phase,
                    "actions": [
                        {"name": a.name, "adapter": a.adapter, "cwd": a.cwd, "command": a.display}
                        for a in plan.actions
                    ],
                }
                for plan in self.plans
            ]
        return result


def install_formula(
    recipe_ref: str | Path,
    settings: Settings,
    force: bool = False,
    keep_tmp: bool = False,
    dry_run: bool = False,
    mock_mode: bool = False,
    registry: AdapterRegistry | None = None,
    search_dirs: list[Path] | None = None,
) -> InstallResult:
    """Install a recipe into ``<cellar>/<name>/<version>``.

    Args:
        recipe_ref: Recipe file path or bundled recipe name.
        settings: Resolved directory configuration.
        force: Remove an existing keg first instead of refusing.
        keep_tmp: Keep the staged build directory afterwards.
        dry_run: Resolve and report every action without fetching or
            running anything.
        mock_mode: Route every step through a mock adapter.
        registry: Optional pre-configured adapter registry.
        search_dirs: Extra directories to look up bare recipe names in.

    Returns:
        InstallResult; ``error`` and ``phase`` say where a failed run stopped.
    """
    result = InstallResult(operation_id=generate_operation_id(), dry_run=dry_run)
    start = time.monotonic()
    staged: StagedSource | None = None

    try:
        # ── Load recipe ──────────────────────────────────────────
        recipe = load_recipe(recipe_ref, search_dirs)
        layout = settings.layout(recipe)
        result.recipe = recipe
        result.layout = layout

        if dry_run:
            _plan_only(result, recipe, layout, settings)
            return result

        # ── Keg check ────────────────────────────────────────────
        result.phase = "keg"
        _prepare_keg(layout, settings, force)

        if registry is None:
            registry = default_registry(mock_mode=mock_mode)

        # ── Fetch & stage ────────────────────────────────────────
        result.phase = "fetch"
        archive = fetch_source(recipe, settings.cache)
        staged = stage(archive, settings.tmpdir, prefix=f"{recipe.name}-{recipe.version}-")
        result.buildpath = staged.buildpath

        # ── Patch ────────────────────────────────────────────────
        if recipe.patch is not None:
            result.phase = "patch"
            result.patch = apply_patch_spec(recipe.patch, staged.buildpath, settings.root)

        # ── Build ────────────────────────────────────────────────
        result.phase = "build"
        try:
            layout.prefix.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise KegError(f"Cannot create keg {layout.prefix}: {e}") from e
        _run_phase(result, recipe, layout, staged.buildpath, registry, "build")

        # ── Prune ────────────────────────────────────────────────
        if recipe.prune:
            result.phase = "prune"
            result.pruned = prune(layout.prefix, recipe.prune)

        # ── Link ─────────────────────────────────────────────────
        if recipe.link:
            result.phase = "link"
            result.linked = link_keg(layout.prefix, settings.root)

        # ── Post-install ─────────────────────────────────────────
        if recipe.post_install:
            result.phase = "post_install"
            _run_phase(result, recipe, layout, staged.buildpath, registry, "post_install")

        # ── Receipt ──────────────────────────────────────────────
        result.phase = "receipt"
        result.receipt = InstallReceipt(
            name=recipe.name,
            version=recipe.version,
            source_url=recipe.source.url,
            source_sha256=recipe.source.sha256.lower(),
            prefix=str(layout.prefix),
            patch_status=result.patch.status if result.patch else "none",
            steps_run=sum(r.total for r in result.reports),
            pruned=result.pruned.removed if result.pruned else [],
            linked=len(result.linked.linked) if result.linked else 0,
        )
        try:
            save_receipt(result.receipt, layout.receipt_path)
        except OSError as e:
            raise KegError(f"Cannot write install receipt: {e}") from e

        result.phase = "done"
        logger.info("Installed %s into %s", recipe.full_name, layout.prefix)

    except FormulaError as e:
        result.error = e
        logger.error("install failed in phase '%s': %s", result.phase, e)

    finally:
        result.duration_ms = int((time.monotonic() - start) * 1000)
        if staged is not None:
            if keep_tmp:
                logger.info("Keeping build directory %s", staged.workdir)
            else:
                staged.cleanup()
        if not dry_run:
            _audit(result, settings)

    return result


def _prepare_keg(layout: Layout, settings: Settings, force: bool) -> None:
    """Refuse to install over an existing keg unless forced."""
    if not layout.prefix.resolve().is_relative_to(settings.cellar):
        raise KegError(f"Keg {layout.prefix} is outside the cellar {settings.cellar}")
    if not layout.prefix.exists():
        return
    if not force:
        state = "installed" if layout.receipt_path.is_file() else "partially installed"
        raise KegError(
            f"{layout.name} {layout.version} is already {state} in {layout.prefix} "
            "(use --force to reinstall)"
        )
    unlink_keg(layout.prefix, settings.root)
    logger.info("Removing existing keg %s", layout.prefix)
    try:
        shutil.rmtree(layout.prefix)
    except OSError as e:
        raise KegError(f"Cannot remove existing keg {layout.prefix}: {e}") from e


def _run_phase(
    result: InstallResult,
    recipe: Recipe,
    layout: Layout,
    buildpath: Path,
    registry: AdapterRegistry,
    phase: str,
) -> None:
    steps = recipe.steps if phase == "build" else recipe.post_install
    plan = build_actions(steps, layout, buildpath, result.operation_id, phase=phase)
    result.plans.append(plan)
    result.reports.append(run_plan(plan, registry))


def _plan_only(result: InstallResult, recipe: Recipe, layout: Layout, settings: Settings) -> None:
    """Resolve every action against a placeholder build path."""
    buildpath = settings.tmpdir / f"{recipe.name}-{recipe.version}"
    result.buildpath = buildpath
    result.plans.append(build_actions(recipe.steps, layout, buildpath, result.operation_id, "build"))
    if recipe.post_install:
        result.plans.append(
            build_actions(recipe.post_install, layout, buildpath, result.operation_id, "post_install")
        )
    result.phase = "planned"


def _audit(result: InstallResult, settings: Settings) -> None:
    entry = AuditEntry(
        operation_id=result.operation_id,
        operation="install",
        formula=result.recipe.name if result.recipe else "",
        version=result.recipe.version if result.recipe else "",
        prefix=str(result.layout.prefix) if result.layout else "",
        status="ok" if result.ok else "failed",
        phase=result.phase,
        duration_ms=result.duration_ms,
        error=str(result.error) if result.error else None,
        context={
            "steps_run": sum(r.total for r in result.reports),
            "patch": result.patch.status if result.patch else "none",
            "pruned": len(result.pruned.removed) if result.pruned else 0,
            "linked": len(result.linked.linked) if result.linked else 0,
        },
    )
    AuditWriter(state_dir=settings.state_dir).write(entry)

"""
Recipe check use case — validate a recipe file and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from formula_runner.core.config.loader import find_recipe_file, load_recipe
from formula_runner.core.errors import RecipeError
from formula_runner.core.models.recipe import Recipe


@dataclass
class RecipeCheckResult:
    """Result of recipe validation."""

    valid: bool = False
    recipe: Recipe | None = None
    recipe_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "recipe_path": str(self.recipe_path) if self.recipe_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "formula": self.recipe.name if self.recipe else None,
            "version": self.recipe.version if self.recipe else None,
            "step_count": len(self.recipe.steps) if self.recipe else 0,
            "check_count": len(self.recipe.checks) if self.recipe else 0,
        }


def check_recipe(recipe_ref: str | Path, search_dirs: list[Path] | None = None) -> RecipeCheckResult:
    """Validate a recipe and report semantic issues.

    Schema problems (bad checksum, a step with no action, prune
    patterns escaping the keg) are errors from loading; the checks
    below add what the schema cannot express.
    """
    result = RecipeCheckResult()
    result.recipe_path = find_recipe_file(recipe_ref, search_dirs)

    try:
        recipe = load_recipe(recipe_ref, search_dirs)
        result.recipe = recipe
    except RecipeError as e:
        result.errors.append(str(e))
        return result

    if not recipe.steps:
        result.warnings.append("No build steps defined. Nothing will be installed.")

    if not recipe.checks:
        result.warnings.append("No checks defined. 'test' will have nothing to verify.")

    if not recipe.source.url.startswith(("https://", "http://", "file://")):
        result.errors.append(f"Unsupported source URL scheme: {recipe.source.url}")

    # Duplicate step and check names make failures ambiguous
    for label, items in (("step", [*recipe.steps, *recipe.post_install]), ("check", recipe.checks)):
        names = [item.name for item in items if item.name]
        dupes = {n for n in names if names.count(n) > 1}
        if dupes:
            result.errors.append(f"Duplicate {label} names: {', '.join(sorted(dupes))}")

    for index, step in enumerate([*recipe.steps, *recipe.post_install]):
        if Path(step.cwd).is_absolute():
            result.warnings.append(
                f"Step #{index + 1} ({step.label}) has an absolute cwd: {step.cwd}"
            )

    # Prune patterns are re-resolved on every install; duplicates are noise
    dupes = {p for p in recipe.prune if recipe.prune.count(p) > 1}
    if dupes:
        result.warnings.append(f"Duplicate prune patterns: {', '.join(sorted(dupes))}")

    if recipe.patch is not None and recipe.patch.placeholder and recipe.patch.placeholder not in recipe.patch.text:
        result.warnings.append(
            f"Patch never mentions its placeholder '{recipe.patch.placeholder}'"
        )

    result.valid = len(result.errors) == 0
    return result

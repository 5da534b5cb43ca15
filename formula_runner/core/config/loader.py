"""
Recipe loader — reads recipe YAML into a validated Recipe.

A recipe argument is either a path to a ``.yml`` file or the bare name
of a recipe bundled with the package (``formula_runner/recipes/``).
A patch declared with ``file:`` is read relative to the recipe file
and inlined, so the returned Recipe is self-contained.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from formula_runner.core.errors import RecipeError
from formula_runner.core.models.recipe import Recipe

logger = logging.getLogger(__name__)

BUNDLED_RECIPES_DIR = Path(__file__).resolve().parent.parent.parent / "recipes"
RECIPE_SUFFIXES = (".yml", ".yaml")


def list_bundled_recipes() -> list[str]:
    """Names of the recipes shipped with the package."""
    if not BUNDLED_RECIPES_DIR.is_dir():
        return []
    return sorted(
        p.stem for p in BUNDLED_RECIPES_DIR.iterdir() if p.suffix in RECIPE_SUFFIXES
    )


def find_recipe_file(ref: str | Path, search_dirs: list[Path] | None = None) -> Path | None:
    """Resolve a recipe reference to a file path.

    Args:
        ref: A path to a recipe file, or a bare recipe name.
        search_dirs: Directories to look for ``<name>.yml`` in, before
            the bundled recipes.

    Returns:
        Path to the recipe file, or None if nothing matches.
    """
    candidate = Path(ref).expanduser()
    if candidate.is_file():
        return candidate

    name = str(ref)
    if "/" in name or candidate.suffix in RECIPE_SUFFIXES:
        return None

    for directory in [*(search_dirs or []), BUNDLED_RECIPES_DIR]:
        for suffix in RECIPE_SUFFIXES:
            path = directory / f"{name}{suffix}"
            if path.is_file():
                return path
    return None


def load_recipe(ref: str | Path, search_dirs: list[Path] | None = None) -> Recipe:
    """Load and validate a recipe.

    Raises:
        RecipeError: If the file is missing, unreadable, or invalid.
    """
    path = find_recipe_file(ref, search_dirs)
    if path is None:
        raise RecipeError(f"Recipe not found: {ref}")

    logger.debug("Loading recipe from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise RecipeError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise RecipeError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise RecipeError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # Recipes may wrap everything under a "formula" key or be flat
    if "formula" in data and isinstance(data["formula"], dict):
        data = data["formula"]

    patch = data.get("patch")
    if isinstance(patch, dict) and patch.get("file") and not patch.get("text"):
        patch_path = (path.parent / patch["file"]).resolve()
        try:
            patch["text"] = patch_path.read_text(encoding="utf-8")
        except OSError as e:
            raise RecipeError(f"Cannot read patch file {patch_path}: {e}") from e

    try:
        recipe = Recipe.model_validate(data)
    except ValidationError as e:
        raise RecipeError(f"Invalid recipe {path}: {e}") from e

    logger.info(
        "Loaded recipe '%s' (%d steps, %d checks)",
        recipe.full_name,
        len(recipe.steps),
        len(recipe.checks),
    )
    return recipe

"""
Domain models — Pydantic types for recipes and their execution.

    from formula_runner.core.models import Recipe, Step, Action, Receipt
"""

from formula_runner.core.models.action import Action, Receipt
from formula_runner.core.models.install import InstallReceipt
from formula_runner.core.models.recipe import (
    Check,
    InstallFiles,
    PatchSpec,
    Recipe,
    Source,
    Step,
    Symlink,
)

__all__ = [
    "Action",
    "Check",
    "InstallFiles",
    "InstallReceipt",
    "PatchSpec",
    "Receipt",
    "Recipe",
    "Source",
    "Step",
    "Symlink",
]

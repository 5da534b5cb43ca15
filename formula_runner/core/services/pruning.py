"""
Glob pruner — remove keg paths that match declared patterns.

Used to drop tools whose runtime dependencies the recipe deliberately
leaves out (for TeX Live core: anything needing dvips, tex, latex,
bibtex, makeindex). Patterns are relative to the keg and resolved at
call time; ``**`` recurses, ``name*`` matches by prefix.

A pattern that matches nothing is not an error: it is recorded as a
PruneWarning and logged.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from formula_runner.core.errors import PruneError, PruneWarning

logger = logging.getLogger(__name__)


@dataclass
class PruneResult:
    """Paths removed (keg-relative) and patterns that matched nothing."""

    removed: list[str] = field(default_factory=list)
    warnings: list[PruneWarning] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "removed": self.removed,
            "warnings": [w.to_dict() for w in self.warnings],
        }


def _check_pattern(pattern: str) -> None:
    if not pattern or pattern.startswith("/") or ".." in Path(pattern).parts:
        raise ValueError(f"Prune pattern must stay inside the keg: {pattern!r}")


def _remove(path: Path) -> None:
    """Remove a file, symlink, or directory tree without following links."""
    if path.is_symlink() or not path.is_dir():
        path.unlink()
    else:
        shutil.rmtree(path)


def prune(root: Path, patterns: list[str]) -> PruneResult:
    """Remove every path under ``root`` matching any of ``patterns``.

    Matches are removed shallowest first; anything inside an already
    removed directory is skipped.

    Raises:
        ValueError: If a pattern is absolute or climbs out with ``..``.
        PruneError: If a matched path cannot be removed.
    """
    result = PruneResult()

    for pattern in patterns:
        _check_pattern(pattern)
        matches = sorted(root.glob(pattern), key=lambda p: (len(p.parts), str(p)))
        if not matches:
            warning = PruneWarning(pattern=pattern)
            result.warnings.append(warning)
            logger.info("prune: '%s' %s", pattern, warning.message)
            continue

        for path in matches:
            if path == root or not os.path.lexists(path):
                continue
            relative = str(path.relative_to(root))
            try:
                _remove(path)
            except OSError as e:
                raise PruneError(f"Cannot remove {relative}: {e}") from e
            result.removed.append(relative)
            logger.debug("prune: removed %s", relative)

    logger.info("Pruned %d path(s) with %d pattern(s)", len(result.removed), len(patterns))
    return result

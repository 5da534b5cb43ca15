"""
Keg linker — expose a finished keg under the install root.

Recipes bake the install root (not the keg) into their configuration,
so files the build puts in ``<keg>/share/...`` must also be reachable
as ``<root>/share/...``. Linking mirrors the keg's standard top-level
directories into the root: real directories are created, every file
and symlink becomes a relative symlink back into the keg.

A root path that already exists and does not point into the same
formula's cellar directory is a conflict and stops the install.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from formula_runner.core.errors import LinkError

logger = logging.getLogger(__name__)

LINKED_DIRS = ("bin", "etc", "include", "lib", "sbin", "share")


@dataclass
class LinkResult:
    """Root-relative paths that now point into the keg."""

    linked: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"linked": len(self.linked)}


def _points_into(link: Path, directory: Path) -> bool:
    target = Path(os.path.normpath(link.parent / os.readlink(link)))
    return target.is_relative_to(directory)


def _claim(dest: Path, rack: Path, root: Path) -> None:
    """Clear ``dest`` if it is one of our own links, or fail."""
    if dest.is_symlink() and _points_into(dest, rack):
        dest.unlink()
        return
    raise LinkError(f"Cannot link {dest.relative_to(root)}: {dest} already exists")


def _walk(top: Path):
    """Yield (directory, leaves) pairs without descending into symlinks."""
    for dirpath, dirnames, filenames in os.walk(top):
        current = Path(dirpath)
        leaves = [d for d in dirnames if (current / d).is_symlink()]
        dirnames[:] = sorted(d for d in dirnames if d not in leaves)
        yield current, sorted(leaves + filenames)


def link_keg(prefix: Path, root: Path) -> LinkResult:
    """Symlink every file of the keg's standard directories into ``root``.

    Links left by an earlier install of the same formula are replaced.

    Raises:
        LinkError: On a conflicting path or a filesystem failure.
    """
    result = LinkResult()
    rack = prefix.parent

    try:
        for name in LINKED_DIRS:
            top = prefix / name
            if not top.is_dir() or top.is_symlink():
                continue
            for directory, leaves in _walk(top):
                dest_dir = root / directory.relative_to(prefix)
                if os.path.lexists(dest_dir) and (dest_dir.is_symlink() or not dest_dir.is_dir()):
                    _claim(dest_dir, rack, root)
                dest_dir.mkdir(parents=True, exist_ok=True)

                for leaf in leaves:
                    source = directory / leaf
                    dest = dest_dir / leaf
                    if os.path.lexists(dest):
                        _claim(dest, rack, root)
                    dest.symlink_to(os.path.relpath(source, dest_dir))
                    result.linked.append(str(dest.relative_to(root)))
    except OSError as e:
        raise LinkError(f"Cannot link {prefix} into {root}: {e}") from e

    logger.info("Linked %d path(s) from %s into %s", len(result.linked), prefix, root)
    return result


def unlink_keg(prefix: Path, root: Path) -> int:
    """Remove every link under ``root`` that points into ``prefix``.

    Raises:
        LinkError: If a link cannot be removed.
    """
    removed = 0
    try:
        for name in LINKED_DIRS:
            top = root / name
            if not top.is_dir() or top.is_symlink():
                continue
            for directory, leaves in _walk(top):
                for leaf in leaves:
                    path = directory / leaf
                    if path.is_symlink() and _points_into(path, prefix):
                        path.unlink()
                        removed += 1
    except OSError as e:
        raise LinkError(f"Cannot unlink {prefix} from {root}: {e}") from e

    if removed:
        logger.info("Unlinked %d path(s) of %s", removed, prefix)
    return removed

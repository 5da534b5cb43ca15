"""
Patch applier — apply a unified diff to the staged source tree.

Application is all-or-nothing: every hunk of every file is checked
against the tree first, and files are only written once all of them
match. Each write goes through a temp file and an atomic rename, so a
conflict (or a crash) never leaves a half-patched file behind.

Matching is exact: a hunk's old lines (context and removals) must be
found, whitespace included, at the line offset its header records.
There is no fuzz and no offset search.

Re-running against an already-patched tree is detected and skipped:
if every hunk's new lines are already in place, nothing is written
and the result says ``already_applied``.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from formula_runner.core.errors import PatchConflict, PatchError
from formula_runner.core.models.recipe import PatchSpec

logger = logging.getLogger(__name__)

DEV_NULL = "/dev/null"

_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
_NO_NEWLINE = "\\ No newline at end of file"


# ── Parsed diff ─────────────────────────────────────────────────


@dataclass
class Hunk:
    """One ``@@`` block of a file diff."""

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    old_lines: list[str] = field(default_factory=list)
    new_lines: list[str] = field(default_factory=list)
    old_no_newline: bool = False
    new_no_newline: bool = False

    def old_index(self) -> int:
        """0-based line index where the old lines begin."""
        return self.old_start if self.old_count == 0 else self.old_start - 1

    def new_index(self) -> int:
        """0-based line index where the new lines begin."""
        return self.new_start if self.new_count == 0 else self.new_start - 1


@dataclass
class FilePatch:
    """All hunks that target one file."""

    old_path: str
    new_path: str
    hunks: list[Hunk] = field(default_factory=list)

    @property
    def creates(self) -> bool:
        return self.old_path == DEV_NULL

    @property
    def deletes(self) -> bool:
        return self.new_path == DEV_NULL

    def target(self, strip: int) -> str:
        """Tree-relative path after removing ``strip`` leading components."""
        raw = self.old_path if self.deletes else self.new_path
        parts = raw.split("/")
        if len(parts) <= strip:
            raise PatchError(f"Cannot strip {strip} components from '{raw}'")
        return "/".join(parts[strip:])


@dataclass
class PatchResult:
    """What applying a patch did."""

    status: str = "applied"             # applied, already_applied
    files: list[str] = field(default_factory=list)
    hunks: int = 0

    def to_dict(self) -> dict:
        return {"status": self.status, "files": self.files, "hunks": self.hunks}


def _header_path(line: str) -> str:
    # "--- a/path\t2017-05-14 ..." → "a/path"
    return line[4:].split("\t", 1)[0].strip()


def parse_patch(text: str) -> list[FilePatch]:
    """Parse unified diff text into file patches.

    Raises:
        PatchError: If the text is not a well-formed unified diff.
    """
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()

    patches: list[FilePatch] = []
    current: FilePatch | None = None
    i = 0

    while i < len(lines):
        line = lines[i]

        if line.startswith("--- ") and i + 1 < len(lines) and lines[i + 1].startswith("+++ "):
            current = FilePatch(old_path=_header_path(line), new_path=_header_path(lines[i + 1]))
            patches.append(current)
            i += 2
            continue

        match = _HUNK_HEADER.match(line)
        if not match:
            # diff --git, index, mode lines and free text between files
            i += 1
            continue

        if current is None:
            raise PatchError(f"Hunk without file header at line {i + 1}")

        hunk = Hunk(
            old_start=int(match.group(1)),
            old_count=int(match.group(2) or 1),
            new_start=int(match.group(3)),
            new_count=int(match.group(4) or 1),
        )
        i = _read_hunk_body(lines, i + 1, hunk)
        current.hunks.append(hunk)

    if not patches:
        raise PatchError("Patch contains no file headers")
    for file_patch in patches:
        if not file_patch.hunks:
            raise PatchError(f"No hunks for {file_patch.new_path}")
    return patches


def _read_hunk_body(lines: list[str], i: int, hunk: Hunk) -> int:
    """Consume hunk body lines starting at ``i``; return the next index."""
    old_left, new_left = hunk.old_count, hunk.new_count
    last = ""

    while i < len(lines) and (old_left > 0 or new_left > 0):
        line = lines[i]
        tag, body = (line[:1], line[1:]) if line else (" ", "")

        if line.startswith(_NO_NEWLINE[:2]):
            _mark_no_newline(hunk, last)
        elif tag == " ":
            hunk.old_lines.append(body)
            hunk.new_lines.append(body)
            old_left -= 1
            new_left -= 1
        elif tag == "-":
            hunk.old_lines.append(body)
            old_left -= 1
        elif tag == "+":
            hunk.new_lines.append(body)
            new_left -= 1
        else:
            raise PatchError(f"Unexpected line in hunk at line {i + 1}: {line!r}")
        last = tag
        i += 1

    if old_left != 0 or new_left != 0:
        raise PatchError(
            f"Truncated hunk @@ -{hunk.old_start},{hunk.old_count} "
            f"+{hunk.new_start},{hunk.new_count} @@"
        )

    # A trailing "\ No newline" marker belongs to the last line read
    if i < len(lines) and lines[i].startswith(_NO_NEWLINE[:2]):
        _mark_no_newline(hunk, last)
        i += 1
    return i


def _mark_no_newline(hunk: Hunk, tag: str) -> None:
    if tag in (" ", "-"):
        hunk.old_no_newline = True
    if tag in (" ", "+"):
        hunk.new_no_newline = True


# ── File content ────────────────────────────────────────────────


@dataclass
class _Text:
    lines: list[str]
    trailing_newline: bool

    @classmethod
    def read(cls, path: Path) -> _Text:
        content = path.read_bytes().decode("utf-8", errors="surrogateescape")
        if content == "":
            return cls([], False)
        lines = content.split("\n")
        if lines[-1] == "":
            lines.pop()
            return cls(lines, True)
        return cls(lines, False)

    def render(self) -> bytes:
        content = "\n".join(self.lines)
        if self.lines and self.trailing_newline:
            content += "\n"
        return content.encode("utf-8", errors="surrogateescape")


def _matches(text: _Text, start: int, expected: list[str], no_newline: bool) -> bool:
    end = start + len(expected)
    if start < 0 or end > len(text.lines):
        return False
    if text.lines[start:end] != expected:
        return False
    if no_newline and (end != len(text.lines) or text.trailing_newline):
        return False
    return True


def _forward_problem(file_patch: FilePatch, text: _Text | None) -> tuple[int, str] | None:
    """First hunk that does not apply cleanly, as (index, reason)."""
    if file_patch.creates:
        return (0, "file already exists") if text is not None else None
    if text is None:
        return 0, "file does not exist"

    previous_end = 0
    for index, hunk in enumerate(file_patch.hunks):
        start = hunk.old_index()
        if start < previous_end:
            return index, "hunk overlaps the previous hunk"
        if not _matches(text, start, hunk.old_lines, hunk.old_no_newline):
            return index, f"old lines do not match at line {hunk.old_start}"
        previous_end = start + len(hunk.old_lines)

    if file_patch.deletes and previous_end != len(text.lines):
        return len(file_patch.hunks) - 1, "file has content beyond the deleted lines"
    return None


def _already_applied(file_patch: FilePatch, text: _Text | None) -> bool:
    if file_patch.deletes:
        return text is None
    if text is None:
        return False
    return all(
        _matches(text, hunk.new_index(), hunk.new_lines, hunk.new_no_newline)
        for hunk in file_patch.hunks
    )


def _apply_hunks(file_patch: FilePatch, text: _Text | None) -> _Text:
    if file_patch.creates:
        hunk = file_patch.hunks[0]
        return _Text(list(hunk.new_lines), not hunk.new_no_newline)

    assert text is not None
    lines = list(text.lines)
    trailing = text.trailing_newline
    # Splice from the bottom up so earlier offsets stay valid
    for hunk in reversed(file_patch.hunks):
        start = hunk.old_index()
        end = start + len(hunk.old_lines)
        if end == len(lines):
            trailing = not hunk.new_no_newline
        lines[start:end] = hunk.new_lines
    return _Text(lines, trailing)


# ── Application ─────────────────────────────────────────────────


def _resolve_target(root: Path, relative: str) -> Path:
    target = (root / relative).resolve()
    if not target.is_relative_to(root.resolve()):
        raise PatchError(f"Patch target escapes the source tree: {relative}")
    return target


def apply_patch(
    text: str,
    root: Path,
    strip: int = 1,
    substitutions: dict[str, str] | None = None,
) -> PatchResult:
    """Apply unified diff ``text`` to the tree at ``root``.

    Args:
        text: Unified diff covering one or more files.
        root: Root of the staged source tree.
        strip: Leading path components to drop (as ``patch -p``).
        substitutions: Literal replacements made in the diff text
            before parsing (e.g. the install-prefix placeholder).

    Returns:
        PatchResult with status ``applied`` or ``already_applied``.

    Raises:
        PatchConflict: A hunk does not match; no file was modified.
        PatchError: The diff is malformed or targets a path outside root.
    """
    for placeholder, value in (substitutions or {}).items():
        text = text.replace(placeholder, value)

    file_patches = parse_patch(text)
    seen: set[Path] = set()
    targets: list[tuple[FilePatch, str, Path, _Text | None]] = []
    for file_patch in file_patches:
        relative = file_patch.target(strip)
        path = _resolve_target(root, relative)
        if path in seen:
            raise PatchError(f"Patch has more than one section for {relative}")
        seen.add(path)
        current = _Text.read(path) if path.is_file() else None
        targets.append((file_patch, relative, path, current))

    total_hunks = sum(len(fp.hunks) for fp in file_patches)
    problems = [(rel, _forward_problem(fp, cur)) for fp, rel, _path, cur in targets]

    if all(problem is None for _rel, problem in problems):
        _write_all(targets)
        logger.info("Patched %d file(s), %d hunk(s)", len(targets), total_hunks)
        return PatchResult(
            status="applied",
            files=[rel for _fp, rel, _p, _c in targets],
            hunks=total_hunks,
        )

    if all(_already_applied(fp, cur) for fp, _rel, _path, cur in targets):
        logger.info("Patch already applied to %d file(s), skipping", len(targets))
        return PatchResult(
            status="already_applied",
            files=[rel for _fp, rel, _p, _c in targets],
            hunks=total_hunks,
        )

    relative, (hunk_index, reason) = next(
        (rel, problem) for rel, problem in problems if problem is not None
    )
    raise PatchConflict(relative, hunk_index, reason)


def _write_all(targets: list[tuple[FilePatch, str, Path, _Text | None]]) -> None:
    """Stage every new file content to a temp file, then rename them all."""
    staged: list[tuple[Path, Path]] = []
    deletions: list[Path] = []

    try:
        for file_patch, _relative, path, current in targets:
            if file_patch.deletes:
                deletions.append(path)
                continue
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".patch")
            tmp = Path(tmp_name)
            staged.append((tmp, path))
            with os.fdopen(fd, "wb") as f:
                f.write(_apply_hunks(file_patch, current).render())
            if path.exists():
                shutil.copymode(path, tmp)
    except Exception:
        for tmp, _path in staged:
            tmp.unlink(missing_ok=True)
        raise

    for tmp, path in staged:
        os.replace(tmp, path)
    for path in deletions:
        path.unlink()


def apply_patch_spec(spec: PatchSpec, buildpath: Path, root: Path) -> PatchResult:
    """Apply a recipe's patch, filling its prefix placeholder with ``root``."""
    substitutions = {spec.placeholder: str(root)} if spec.placeholder else None
    return apply_patch(spec.text, buildpath, strip=spec.strip, substitutions=substitutions)

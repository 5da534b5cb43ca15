"""
Source fetcher — download, verify, and stage a recipe's source archive.

Downloads land in the cache as ``<name>--<version><ext>``. A cached
archive whose SHA-256 still matches is reused; one that does not is
discarded and fetched again. Any mismatch after download is fatal and
the bad file is removed.

Staging extracts the archive into a fresh directory. When the archive
holds a single top-level directory (the usual ``project-1.0/``), that
directory becomes the build path.
"""

from __future__ import annotations

import hashlib
import logging
import shutil
import tarfile
import tempfile
import urllib.error
import urllib.request
import zipfile
from dataclasses import dataclass
from pathlib import Path

from formula_runner import __version__
from formula_runner.core.errors import FetchError
from formula_runner.core.models.recipe import Recipe

logger = logging.getLogger(__name__)

_CHUNK = 1024 * 1024
_ARCHIVE_SUFFIXES = (".tar.gz", ".tar.bz2", ".tar.xz", ".tar.zst", ".tgz", ".tbz2", ".txz", ".tar", ".zip")
DEFAULT_TIMEOUT = 60


@dataclass
class StagedSource:
    """An extracted source tree."""

    workdir: Path                   # directory created for the extraction
    buildpath: Path                 # where steps run

    def cleanup(self) -> None:
        shutil.rmtree(self.workdir, ignore_errors=True)


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def cache_path(recipe: Recipe, cache_dir: Path) -> Path:
    """Where the recipe's archive is cached."""
    filename = recipe.source.filename
    ext = next((s for s in _ARCHIVE_SUFFIXES if filename.endswith(s)), Path(filename).suffix)
    return cache_dir / f"{recipe.name}--{recipe.version}{ext}"


def fetch_source(recipe: Recipe, cache_dir: Path, timeout: int = DEFAULT_TIMEOUT) -> Path:
    """Return a verified local copy of the recipe's source archive.

    Raises:
        FetchError: On network or IO failure, or checksum mismatch.
    """
    expected = recipe.source.sha256.lower()
    dest = cache_path(recipe, cache_dir)

    if dest.is_file():
        if sha256_file(dest) == expected:
            logger.info("Using cached %s", dest)
            return dest
        logger.warning("Cached %s has the wrong checksum, fetching again", dest)
        dest.unlink()

    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FetchError(f"Cannot create download cache {dest.parent}: {e}") from e
    partial = dest.with_name(dest.name + ".incomplete")
    url = recipe.source.url

    logger.info("Downloading %s", url)
    request = urllib.request.Request(url, headers={"User-Agent": f"formula-runner/{__version__}"})
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response, open(partial, "wb") as out:
            shutil.copyfileobj(response, out, _CHUNK)
    except (urllib.error.URLError, OSError, ValueError) as e:
        partial.unlink(missing_ok=True)
        raise FetchError(f"Failed to download {url}: {e}") from e

    actual = sha256_file(partial)
    if actual != expected:
        partial.unlink(missing_ok=True)
        raise FetchError(
            f"SHA-256 mismatch for {url}\n"
            f"  expected: {expected}\n"
            f"  actual:   {actual}"
        )

    try:
        partial.replace(dest)
    except OSError as e:
        partial.unlink(missing_ok=True)
        raise FetchError(f"Cannot move download into {dest}: {e}") from e
    logger.info("Verified %s (sha256 %s)", dest.name, actual[:12])
    return dest


def stage(archive: Path, build_root: Path, prefix: str = "") -> StagedSource:
    """Extract ``archive`` into a new directory under ``build_root``.

    Returns:
        StagedSource whose build path is the archive's single top-level
        directory, or the extraction directory itself.

    Raises:
        FetchError: If the archive is corrupt, unsafe, or unsupported.
    """
    try:
        build_root.mkdir(parents=True, exist_ok=True)
        workdir = Path(tempfile.mkdtemp(prefix=prefix or "formula-", dir=build_root))
    except OSError as e:
        raise FetchError(f"Cannot create build directory under {build_root}: {e}") from e

    try:
        if tarfile.is_tarfile(archive):
            with tarfile.open(archive) as tar:
                tar.extractall(workdir, filter="data")
        elif zipfile.is_zipfile(archive):
            with zipfile.ZipFile(archive) as zf:
                _safe_extract_zip(zf, workdir)
        else:
            raise FetchError(f"Unsupported archive type: {archive.name}")
    except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
        shutil.rmtree(workdir, ignore_errors=True)
        raise FetchError(f"Failed to extract {archive.name}: {e}") from e
    except FetchError:
        shutil.rmtree(workdir, ignore_errors=True)
        raise

    entries = list(workdir.iterdir())
    if len(entries) == 1 and entries[0].is_dir() and not entries[0].is_symlink():
        buildpath = entries[0]
    else:
        buildpath = workdir
    logger.info("Staged %s in %s", archive.name, buildpath)
    return StagedSource(workdir=workdir, buildpath=buildpath)


def _safe_extract_zip(zf: zipfile.ZipFile, dest: Path) -> None:
    root = dest.resolve()
    for name in zf.namelist():
        if not (root / name).resolve().is_relative_to(root):
            raise FetchError(f"Path traversal in archive member: {name}")
    zf.extractall(dest)

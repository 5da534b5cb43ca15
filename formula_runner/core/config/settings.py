"""
Settings — where formulae are installed, cached, and built.

Resolved once per process, in precedence order:
    CLI option  >  FORMULA_* env var  >  default under ~/.formula

Nothing downstream reads the environment again: the resolved Settings
and the per-recipe Layout are passed explicitly to every phase.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel

from formula_runner.core.models.recipe import Recipe

DEFAULT_ROOT = Path("~/.formula")

ENV_ROOT = "FORMULA_ROOT"
ENV_CELLAR = "FORMULA_CELLAR"
ENV_CACHE = "FORMULA_CACHE"
ENV_TMPDIR = "FORMULA_TMPDIR"

RECEIPT_FILE = "INSTALL_RECEIPT.json"


class Settings(BaseModel):
    """Resolved directory configuration."""

    root: Path
    cellar: Path
    cache: Path
    tmpdir: Path
    state_dir: Path

    @classmethod
    def resolve(
        cls,
        root: Path | str | None = None,
        cellar: Path | str | None = None,
        environ: dict[str, str] | None = None,
    ) -> Settings:
        """Build settings from explicit overrides, then the environment."""
        env = os.environ if environ is None else environ

        root_path = Path(root or env.get(ENV_ROOT) or DEFAULT_ROOT).expanduser().resolve()
        cellar_path = Path(cellar or env.get(ENV_CELLAR) or root_path / "Cellar")
        cache_path = Path(env.get(ENV_CACHE) or root_path / "cache")
        tmp_path = Path(env.get(ENV_TMPDIR) or root_path / "tmp")

        return cls(
            root=root_path,
            cellar=cellar_path.expanduser().resolve(),
            cache=cache_path.expanduser().resolve(),
            tmpdir=tmp_path.expanduser().resolve(),
            state_dir=root_path / ".state",
        )

    def layout(self, recipe: Recipe) -> Layout:
        return Layout(
            root=self.root,
            prefix=self.cellar / recipe.name / recipe.version,
            name=recipe.name,
            version=recipe.version,
        )


class Layout(BaseModel):
    """The keg of one recipe and its standard subdirectories."""

    root: Path
    prefix: Path
    name: str
    version: str

    @property
    def bin(self) -> Path:
        return self.prefix / "bin"

    @property
    def lib(self) -> Path:
        return self.prefix / "lib"

    @property
    def include(self) -> Path:
        return self.prefix / "include"

    @property
    def share(self) -> Path:
        return self.prefix / "share"

    @property
    def pkgshare(self) -> Path:
        return self.share / self.name

    @property
    def info(self) -> Path:
        return self.share / "info"

    @property
    def man(self) -> Path:
        return self.share / "man"

    @property
    def receipt_path(self) -> Path:
        return self.prefix / RECEIPT_FILE

    def variables(self, buildpath: Path | None = None) -> dict[str, str]:
        """Substitution values for ``{var}`` tokens in recipe fields."""
        values = {
            "root": str(self.root),
            "prefix": str(self.prefix),
            "bin": str(self.bin),
            "lib": str(self.lib),
            "include": str(self.include),
            "share": str(self.share),
            "pkgshare": str(self.pkgshare),
            "info": str(self.info),
            "man": str(self.man),
            "name": self.name,
            "version": self.version,
        }
        if buildpath is not None:
            values["buildpath"] = str(buildpath)
        return values

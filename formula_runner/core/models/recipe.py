"""
Recipe model — the declarative description of one package.

Loaded from a recipe YAML file, a Recipe says where the source lives,
how to patch it, which steps build and install it, what to prune from
the result, how to index it, and how to smoke-test it. Recipes are
frozen: they are authored once and never mutated during a run.
"""

from __future__ import annotations

from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Placeholder the bundled patches use for the install root prefix.
DEFAULT_PREFIX_PLACEHOLDER = "HOMEBREW_PREFIX"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class Source(_Frozen):
    """Where the source archive comes from and what it must hash to."""

    url: str
    sha256: str = Field(pattern=r"^[0-9a-fA-F]{64}$")

    @property
    def filename(self) -> str:
        """Last path component of the URL (query string dropped)."""
        return self.url.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]


class PatchSpec(_Frozen):
    """A unified diff applied to the staged source tree before building."""

    text: str = ""
    file: str = ""                  # recipe-relative path the text came from
    strip: int = Field(default=1, ge=0)
    placeholder: str = DEFAULT_PREFIX_PLACEHOLDER

    @model_validator(mode="after")
    def _has_content(self) -> PatchSpec:
        if not self.text and not self.file:
            raise ValueError("patch needs either 'text' or 'file'")
        return self


class InstallFiles(_Frozen):
    """Copy files matching ``from`` globs (relative to the step cwd) into ``to``."""

    sources: list[str] = Field(alias="from", min_length=1)
    to: str


class Symlink(_Frozen):
    """Create ``link`` pointing at ``target``; both inside the keg."""

    target: str
    link: str
    relative: bool = True


class Step(_Frozen):
    """One unit of work, run strictly after the step before it.

    Exactly one of ``run`` (an external process argv), ``install``
    (a file copy) or ``symlink`` must be given.
    """

    name: str = ""
    cwd: str = "."
    run: list[str] = Field(default_factory=list)
    install: InstallFiles | None = None
    symlink: Symlink | None = None
    env: dict[str, str] = Field(default_factory=dict)
    timeout: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _exactly_one_kind(self) -> Step:
        kinds = [bool(self.run), self.install is not None, self.symlink is not None]
        if sum(kinds) != 1:
            raise ValueError("a step needs exactly one of 'run', 'install' or 'symlink'")
        return self

    @property
    def kind(self) -> str:
        if self.run:
            return "run"
        if self.install is not None:
            return "install"
        return "symlink"

    @property
    def adapter(self) -> str:
        """Which adapter executes this step."""
        return "process" if self.run else "filesystem"

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        if self.run:
            return " ".join(self.run)
        if self.install is not None:
            return f"install {', '.join(self.install.sources)} -> {self.install.to}"
        assert self.symlink is not None
        return f"symlink {self.symlink.link} -> {self.symlink.target}"


class Check(_Frozen):
    """A post-install smoke test.

    The process must exit with ``expect_exit``. When ``expect_output`` is
    set, stdout with trailing whitespace trimmed must equal it exactly.
    """

    name: str = ""
    run: list[str] = Field(min_length=1)
    cwd: str = ""                   # default: the keg
    expect_exit: int = 0
    expect_output: str | None = None

    @property
    def label(self) -> str:
        return self.name or " ".join(self.run)


class Recipe(_Frozen):
    """Root description of one package."""

    name: str = Field(pattern=r"^[a-z0-9][a-z0-9+._-]*$")
    version: str = Field(pattern=r"^[A-Za-z0-9][A-Za-z0-9+._-]*$")
    desc: str = ""
    homepage: str = ""

    source: Source
    patch: PatchSpec | None = None
    steps: list[Step] = Field(default_factory=list)
    prune: list[str] = Field(default_factory=list)
    post_install: list[Step] = Field(default_factory=list)
    checks: list[Check] = Field(default_factory=list)
    link: bool = True               # expose the keg under the install root

    @field_validator("prune")
    @classmethod
    def _prune_inside_keg(cls, patterns: list[str]) -> list[str]:
        for pattern in patterns:
            if not pattern or pattern.startswith("/") or ".." in PurePosixPath(pattern).parts:
                raise ValueError(f"prune pattern must stay inside the keg: {pattern!r}")
        return patterns

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.version}"

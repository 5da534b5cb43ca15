"""
Shared test fixtures and configuration.
"""

import hashlib
import tarfile
import textwrap
from pathlib import Path

import pytest
import yaml

from formula_runner.adapters.mock import MockAdapter
from formula_runner.adapters.registry import AdapterRegistry
from formula_runner.adapters.shell.filesystem import FilesystemAdapter
from formula_runner.core.config.settings import Settings

DEMO_CNF = textwrap.dedent("""\
    # demo configuration
    root = $SELFAUTOPARENT
    local = $SELFAUTOPARENT/local
""")

DEMO_PATCH = textwrap.dedent("""\
    --- a/etc/demo.cnf
    +++ b/etc/demo.cnf
    @@ -1,3 +1,3 @@
     # demo configuration
    -root = $SELFAUTOPARENT
    +root = HOMEBREW_PREFIX/share
     local = $SELFAUTOPARENT/local
""")


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary directory, ignoring the real environment."""
    return Settings.resolve(root=tmp_path / "root", environ={})


@pytest.fixture
def source_archive(tmp_path: Path) -> Path:
    """A demo-1.0.tar.gz with a config file, docs, and a script."""
    tree = tmp_path / "src-tree" / "demo-1.0"
    (tree / "etc").mkdir(parents=True)
    (tree / "etc" / "demo.cnf").write_text(DEMO_CNF)
    (tree / "share" / "doc").mkdir(parents=True)
    (tree / "share" / "doc" / "allneeded.txt").write_text("needs dvips\n")
    (tree / "share" / "doc" / "keep.txt").write_text("keep me\n")
    (tree / "scripts").mkdir()
    (tree / "scripts" / "demo").write_text("#!/bin/sh\necho demo\n")

    archive = tmp_path / "demo-1.0.tar.gz"
    with tarfile.open(archive, "w:gz") as tar:
        tar.add(tree, arcname="demo-1.0")
    return archive


@pytest.fixture
def recipe_data(source_archive: Path) -> dict:
    """A complete recipe exercising every phase, as plain YAML data."""
    return {
        "name": "demo",
        "version": "1.0",
        "desc": "Demo package",
        "source": {
            "url": source_archive.as_uri(),
            "sha256": hashlib.sha256(source_archive.read_bytes()).hexdigest(),
        },
        "patch": {"text": DEMO_PATCH},
        "steps": [
            {"name": "install config", "install": {"from": ["etc/demo.cnf"], "to": "{pkgshare}"}},
            {"name": "install docs", "install": {"from": ["share/doc/*"], "to": "{share}/doc"}},
            {"name": "install script", "install": {"from": ["scripts/demo"], "to": "{pkgshare}/scripts"}},
            {"name": "link script", "symlink": {"target": "{pkgshare}/scripts/demo", "link": "{bin}/demo"}},
            {"name": "build", "run": ["sh", "-c", "echo built > {prefix}/BUILD_LOG"]},
        ],
        "prune": ["**/all*", "**/nothing-here*"],
        "post_install": [
            {"name": "index", "run": ["sh", "-c", "ls {prefix} > {prefix}/ls-R"]},
        ],
        "checks": [
            {"name": "config exists", "run": ["test", "-f", "{pkgshare}/demo.cnf"]},
            {
                "name": "config patched",
                "run": ["grep", "-c", "-F", "{root}/share", "{pkgshare}/demo.cnf"],
                "expect_output": "1",
            },
        ],
    }


@pytest.fixture
def write_recipe(tmp_path: Path):
    """Write recipe data to ``<tmp>/recipes/<name>.yml`` and return the path."""

    def _write(data: dict, filename: str | None = None) -> Path:
        directory = tmp_path / "recipes"
        directory.mkdir(exist_ok=True)
        path = directory / (filename or f"{data['name']}.yml")
        path.write_text(yaml.safe_dump(data, sort_keys=False))
        return path

    return _write


@pytest.fixture
def demo_recipe(write_recipe, recipe_data: dict) -> Path:
    return write_recipe(recipe_data)


@pytest.fixture
def mock_process() -> MockAdapter:
    return MockAdapter(adapter_name="process")


@pytest.fixture
def mock_registry(mock_process: MockAdapter) -> AdapterRegistry:
    """Real file operations, faked processes."""
    registry = AdapterRegistry()
    registry.register(FilesystemAdapter())
    registry.register(mock_process)
    return registry

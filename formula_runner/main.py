"""
Formula Runner — CLI entrypoint.

Usage:
    formula --help
    formula install texlive-core
    formula test texlive-core
    formula recipe check path/to/recipe.yml
"""

from __future__ import annotations

import json
import os
import sys

import click

from formula_runner import __version__
from formula_runner.core.config.settings import Settings
from formula_runner.core.observability.logging_config import (
    ENV_LOG_FILE,
    ENV_LOG_FILE_LEVEL,
    ENV_LOG_LEVEL,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="formula")
@click.option("--verbose", "-v", is_flag=True, help="Show phase-by-phase progress.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--root",
    type=click.Path(file_okay=False),
    default=None,
    help="Install root (default: $FORMULA_ROOT or ~/.formula).",
)
@click.option(
    "--cellar",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory holding kegs (default: <root>/Cellar).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    root: str | None,
    cellar: str | None,
) -> None:
    """Formula Runner — build, install, and test package recipes."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["settings"] = Settings.resolve(root=root, cellar=cellar)

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get(ENV_LOG_LEVEL, "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get(ENV_LOG_FILE),
        log_file_level=os.environ.get(ENV_LOG_FILE_LEVEL),
    )


@cli.command()
@click.argument("recipe")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--force", is_flag=True, help="Reinstall over an existing keg.")
@click.option("--keep-tmp", is_flag=True, help="Keep the build directory afterwards.")
@click.option("--dry-run", is_flag=True, help="Show the resolved steps without running them.")
@click.option("--mock", is_flag=True, help="Use mock adapter (no real execution).")
@click.pass_context
def install(
    ctx: click.Context,
    recipe: str,
    as_json: bool,
    force: bool,
    keep_tmp: bool,
    dry_run: bool,
    mock: bool,
) -> None:
    """Fetch, patch, build, prune, and index a recipe.

    RECIPE is a recipe file or the name of a bundled recipe.

    Examples:

        formula install texlive-core

        formula --root /opt/tex install ./texlive-core.yml --force
    """
    from formula_runner.core.use_cases.install import install_formula

    settings: Settings = ctx.obj["settings"]
    result = install_formula(
        recipe,
        settings,
        force=force,
        keep_tmp=keep_tmp,
        dry_run=dry_run,
        mock_mode=mock,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    if result.error and result.recipe is None:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    assert result.recipe is not None
    assert result.layout is not None
    quiet = ctx.obj.get("quiet", False)

    mode_label = "[dry-run] " if dry_run else "[mock] " if mock else ""
    if not quiet:
        click.secho(f"\n🍺 {mode_label}{result.recipe.full_name}", fg="cyan", bold=True)
        click.echo(f"   Prefix: {result.layout.prefix}")
        click.echo()

    if dry_run:
        for plan in result.plans:
            click.secho(f"   {plan.phase}:", fg="white", bold=True)
            for action in plan.actions:
                click.echo(f"     {action.index + 1}. {action.display}")
                if ctx.obj.get("verbose"):
                    click.echo(f"        cwd: {action.cwd}")
        click.echo()
        return

    if result.patch and not quiet:
        click.secho(f"   ✓ patch ({result.patch.status}, {len(result.patch.files)} files)", fg="green")

    for plan, report in zip(result.plans, result.reports):
        for action, receipt in zip(plan.actions, report.receipts):
            timing = f" ({receipt.duration_ms}ms)" if receipt.duration_ms else ""
            click.secho(f"   ✓ {plan.phase} ", fg="green", nl=False)
            click.echo(f"{action.name}{timing}")

    if result.pruned:
        click.secho(f"   ✓ prune ({len(result.pruned.removed)} removed)", fg="green")
        for warning in result.pruned.warnings:
            click.secho(f"     ⚠️  {warning.pattern}: {warning.message}", fg="yellow")

    if result.linked:
        click.secho(f"   ✓ link ({len(result.linked.linked)} linked into {result.layout.root})", fg="green")

    click.echo()
    if result.error:
        click.secho(f"   ✗ {result.phase} failed", fg="red", bold=True)
        for line in str(result.error).split("\n")[:10]:
            click.echo(f"     │ {line}")
        click.echo()
        sys.exit(1)

    click.secho(f"   Installed in {result.duration_ms / 1000:.1f}s", fg="green", bold=True)
    click.echo()


@cli.command("test")
@click.argument("recipe")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def test_cmd(ctx: click.Context, recipe: str, as_json: bool) -> None:
    """Run the smoke-test checks of an installed recipe."""
    from formula_runner.core.use_cases.verify import verify_formula

    result = verify_formula(recipe, ctx.obj["settings"])

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    if result.recipe is not None and not ctx.obj.get("quiet"):
        click.secho(f"\n🧪 {result.recipe.full_name}", fg="cyan", bold=True)
        click.echo()

    if result.report:
        for outcome in result.report.outcomes:
            click.secho(f"   ✓ {' '.join(outcome.command)}", fg="green")

    if result.error:
        click.secho(f"   ✗ {result.error}", fg="red")
        click.echo()
        sys.exit(1)

    assert result.report is not None
    click.secho(f"\n   {result.report.passed} check(s) passed", fg="green", bold=True)
    click.echo()


@cli.group()
def recipe() -> None:
    """Recipe commands."""


@recipe.command("check")
@click.argument("recipe_ref", metavar="RECIPE")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def recipe_check(recipe_ref: str, as_json: bool) -> None:
    """Validate a recipe file."""
    from formula_runner.core.use_cases.recipe_check import check_recipe

    result = check_recipe(recipe_ref)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.recipe is not None
        click.secho("✅ Recipe is valid", fg="green", bold=True)
        click.echo(f"   Formula: {result.recipe.full_name}")
        click.echo(f"   Steps: {len(result.recipe.steps)} (+{len(result.recipe.post_install)} post-install)")
        click.echo(f"   Checks: {len(result.recipe.checks)}")
    else:
        click.secho("❌ Recipe errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    click.echo()
    if not result.valid:
        sys.exit(1)


@recipe.command("list")
def recipe_list() -> None:
    """List the bundled recipes."""
    from formula_runner.core.config.loader import list_bundled_recipes

    for name in list_bundled_recipes():
        click.echo(name)


@cli.command()
@click.option("-n", "count", default=20, show_default=True, help="Number of entries.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, count: int, as_json: bool) -> None:
    """Show recent install and test runs."""
    from formula_runner.core.persistence.audit import AuditWriter

    settings: Settings = ctx.obj["settings"]
    entries = AuditWriter(state_dir=settings.state_dir).read_recent(count)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No runs recorded yet.")
        return

    for entry in entries:
        color = "green" if entry.status == "ok" else "red"
        marker = "✓" if entry.status == "ok" else "✗"
        click.secho(f"{marker} ", fg=color, nl=False)
        click.echo(
            f"{entry.timestamp[:19]}  {entry.operation:<7}  {entry.formula} {entry.version}"
            f"  [{entry.phase}] {entry.duration_ms}ms"
        )
        if entry.error and ctx.obj.get("verbose"):
            click.echo(f"    │ {entry.error.splitlines()[0]}")


if __name__ == "__main__":
    cli()

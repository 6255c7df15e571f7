"""
CLI config commands — environment checks and effective settings.

Usage:
    python -m src.main check-config [--json]
    python -m src.main config-show
"""

from __future__ import annotations

import json

import click


@click.command("check-config")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def check_config(ctx: click.Context, as_json: bool) -> None:
    """Check that the mirrorlist, backup directory and tools are usable."""
    from ..config.validator import ConfigValidator

    validator = ConfigValidator(ctx.obj["settings"])
    results = validator.validate_all()
    failed_required = [s for s in results.values() if s.required and not s.ok]

    if as_json:
        click.echo(json.dumps({name: s.to_dict() for name, s in results.items()}, indent=2))
        if failed_required:
            ctx.exit(1)
        return

    click.echo("\n📋 Configuration Status\n")

    for name, status in results.items():
        if status.ok:
            click.secho(f"  ✓ {name}", fg="green", nl=False)
        elif status.required:
            click.secho(f"  ✗ {name}", fg="red", nl=False)
        else:
            click.secho(f"  ! {name}", fg="yellow", nl=False)
        click.echo(f" — {status.detail}")

    problems = [s for s in results.values() if not s.ok and s.guidance]
    if problems:
        click.echo("\n📖 Setup Guide:\n")
        for status in problems:
            click.echo(f"  {status.check}:")
            click.echo(f"    → {status.guidance}")

    click.echo()
    if failed_required:
        click.secho(f"{len(failed_required)} required check(s) failed", fg="red", bold=True)
        ctx.exit(1)
    click.secho("Ready to optimize", fg="green", bold=True)


@click.command("config-show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Print the effective settings as JSON."""
    click.echo(json.dumps(ctx.obj["settings"].to_dict(), indent=2))

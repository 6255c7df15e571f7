"""
CLI mirror commands — rank, benchmark, list, restore and show mirrors.

Usage:
    python -m src.main optimize [--country CC | --auto-country] [--manual] [--dry-run]
    python -m src.main benchmark [--count N] [--json]
    python -m src.main backups [--json]
    python -m src.main restore [BACKUP_ID] [--index N] [--yes]
    python -m src.main show [--limit N]
"""

from __future__ import annotations

import json
from dataclasses import replace
from typing import Optional

import click

from ..mirror.errors import MirrorError
from ..validation import PROTOCOLS, ValidationError, validate_country_code


def _format_speed(bytes_per_sec: int) -> str:
    return f"{bytes_per_sec / 1048576:.2f} MB/s"


@click.command("optimize")
@click.option("--country", default=None, help="Two-letter country code to filter mirrors (e.g. US, GB, DE)")
@click.option("--auto-country", is_flag=True, help="Detect the country from your public IP")
@click.option("--protocol", type=click.Choice(PROTOCOLS), default=None, help="Mirror protocol filter")
@click.option("--max", "max_mirrors", type=click.IntRange(min=1), default=None, help="Number of mirrors to keep")
@click.option("--manual", is_flag=True, help="Skip reflector and speed-test the current mirrorlist")
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Parallel speed tests")
@click.option("--dry-run", is_flag=True, help="Rank mirrors but don't write the mirrorlist")
@click.option("--json", "as_json", is_flag=True, help="Output the result as JSON")
@click.pass_context
def optimize(
    ctx: click.Context,
    country: Optional[str],
    auto_country: bool,
    protocol: Optional[str],
    max_mirrors: Optional[int],
    manual: bool,
    workers: Optional[int],
    dry_run: bool,
    as_json: bool,
) -> None:
    """Rank mirrors and replace the mirrorlist with the fastest ones."""
    from ..mirror.geo import detect_country
    from ..mirror.ranker import MirrorRanker

    settings = ctx.obj["settings"]
    if workers:
        settings = replace(settings, workers=workers)

    try:
        country = validate_country_code(country)
    except ValidationError as e:
        raise click.BadParameter(e.message, param_hint="--country")

    if auto_country and not country:
        if not as_json:
            click.echo("Detecting your location...")
        country = detect_country()
        if country and not as_json:
            click.secho(f"Detected country: {country}", fg="green")
        elif not as_json:
            click.secho("Could not detect country automatically; ranking worldwide", fg="yellow")

    def progress(done: int, total: int, url: str, speed: int) -> None:
        if as_json:
            return
        click.echo(f"\rTesting mirror {done}/{total}", nl=(done == total))

    if not as_json:
        click.secho("Starting mirror optimization...", fg="cyan", bold=True)

    with MirrorRanker.from_settings(settings, on_progress=progress) as ranker:
        try:
            result = ranker.optimize(
                country=country,
                protocol=protocol,
                max_results=max_mirrors,
                use_delegate=not manual,
                dry_run=dry_run,
            )
        except MirrorError as e:
            raise click.ClickException(e.message)

    if as_json:
        click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
        return

    click.echo()
    click.echo(f"  Method:   {result.method_used.value}")
    click.echo(f"  Mirrors:  {len(result.mirrors)}")
    if result.backup_path:
        click.echo(f"  Backup:   {result.backup_path}")
    click.echo()
    click.secho("Top mirrors:", fg="cyan")
    for entry in result.mirrors.entries:
        line = f"  • {entry.url}"
        if entry.measured_speed_bytes_per_sec:
            line += f"  ({_format_speed(entry.measured_speed_bytes_per_sec)})"
        click.echo(line)
    click.echo()

    if dry_run:
        click.secho("(Dry run — mirrorlist not changed)", fg="cyan")
    else:
        click.secho("✓ Mirrorlist optimized", fg="green", bold=True)
        click.echo("Run 'pacman -Syy' to refresh the package databases.")


@click.command("benchmark")
@click.option("--count", type=click.IntRange(min=1), default=5, help="How many mirrors from the top of the list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def benchmark(ctx: click.Context, count: int, as_json: bool) -> None:
    """Measure speed and latency of the current top mirrors."""
    from ..mirror.ranker import MirrorRanker

    with MirrorRanker.from_settings(ctx.obj["settings"]) as ranker:
        try:
            entries = ranker.benchmark(count=count)
        except MirrorError as e:
            raise click.ClickException(e.message)

    if as_json:
        click.echo(json.dumps([e.model_dump() for e in entries], indent=2))
        return

    click.secho(f"\nTesting top {len(entries)} mirrors:\n", fg="cyan")
    for i, entry in enumerate(entries, start=1):
        click.echo(f"Mirror {i}: {entry.host}")
        if entry.reachable:
            click.echo("  Speed:   ", nl=False)
            click.secho(_format_speed(entry.speed_bytes_per_sec), fg="green")
        else:
            click.echo("  Speed:   ", nl=False)
            click.secho("Failed to connect", fg="red")
        click.echo("  Latency: ", nl=False)
        if entry.latency_ms is not None:
            click.secho(f"{entry.latency_ms} ms", fg="green")
        else:
            click.secho("N/A", fg="yellow")
        click.echo()


@click.command("backups")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def backups(ctx: click.Context, as_json: bool) -> None:
    """List mirrorlist backups, newest first."""
    from ..mirror.store import MirrorlistStore

    settings = ctx.obj["settings"]
    store = MirrorlistStore.from_settings(settings)
    infos = store.list_backups()

    if as_json:
        click.echo(json.dumps([i.model_dump() for i in infos], indent=2))
        return

    if not infos:
        click.echo("No backups found.")
        return

    click.echo(f"\n📦 Mirrorlist backups ({len(infos)}):\n")
    for index, info in enumerate(infos, start=1):
        click.echo(f"  {index:>2}. {info.backup_id}  ({info.size_bytes / 1024:.1f} KB)  {info.created_at_iso[:19]}")
    click.echo()


@click.command("restore")
@click.argument("backup_id", required=False)
@click.option("--index", type=click.IntRange(min=1), default=None, help="Backup number from 'backups' (1 = newest)")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def restore(ctx: click.Context, backup_id: Optional[str], index: Optional[int], yes: bool) -> None:
    """Restore the mirrorlist from a backup."""
    from ..mirror.store import MirrorlistStore

    settings = ctx.obj["settings"]
    store = MirrorlistStore.from_settings(settings)
    infos = store.list_backups()

    if not infos:
        raise click.ClickException(f"No backups found in {settings.backup_dir}")

    if backup_id and index:
        raise click.UsageError("Give either BACKUP_ID or --index, not both")

    if not backup_id:
        if index is None:
            click.secho("Available backups:", fg="cyan")
            for i, info in enumerate(infos, start=1):
                click.echo(f"  {i}. {info.backup_id}")
            index = click.prompt(
                f"Select backup to restore (1-{len(infos)})",
                type=click.IntRange(1, len(infos)),
            )
        if index > len(infos):
            raise click.BadParameter(f"only {len(infos)} backup(s) exist", param_hint="--index")
        backup_id = infos[index - 1].backup_id

    if not yes:
        click.secho(f"⚠️  This will replace {settings.mirrorlist_path} with backup {backup_id}", fg="yellow")
        click.echo("  The current mirrorlist is backed up first.")
        if not click.confirm("Proceed?"):
            click.echo("Cancelled.")
            return

    try:
        info = store.restore(backup_id)
    except MirrorError as e:
        raise click.ClickException(e.message)

    click.secho(f"✓ Restored backup {info.backup_id}", fg="green", bold=True)
    click.echo("Run 'pacman -Syy' to refresh the package databases.")


@click.command("show")
@click.option("--limit", type=click.IntRange(min=1), default=10, help="How many servers to show")
@click.pass_context
def show(ctx: click.Context, limit: int) -> None:
    """Show the servers in the current mirrorlist."""
    from ..mirror.store import MirrorlistStore

    settings = ctx.obj["settings"]
    store = MirrorlistStore.from_settings(settings)
    try:
        servers = store.servers()
    except MirrorError as e:
        raise click.ClickException(e.message)

    click.secho(f"Current mirrorlist ({len(servers)} servers):", fg="cyan")
    for i, server in enumerate(servers[:limit], start=1):
        click.echo(f"  {i:>3}  {server}")
    if len(servers) > limit:
        click.echo(f"  ... {len(servers) - limit} more")

"""
CLI cache commands — report package cache disk usage.

Usage:
    python -m src.main cache-analyze [--details] [--json]
"""

from __future__ import annotations

import json

import click


@click.command("cache-analyze")
@click.option("--details", is_flag=True, help="Also break down the pacman package cache")
@click.option("--top", type=click.IntRange(min=1), default=5, help="Entries in each detail list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def cache_analyze(ctx: click.Context, details: bool, top: int, as_json: bool) -> None:
    """Show how much disk space the package caches use."""
    from ..cache.analyzer import analyze_cache, analyze_pacman_cache, format_size, render_bar

    settings = ctx.obj["settings"]
    report = analyze_cache(settings.cache)
    pkg_report = analyze_pacman_cache(settings.cache.pacman_dir, top=top) if details else None

    if as_json:
        data = report.to_dict()
        if pkg_report is not None:
            data["pacman"] = pkg_report.to_dict()
        click.echo(json.dumps(data, indent=2))
        return

    click.secho("\n📊 Cache usage\n", fg="cyan", bold=True)
    for loc in report.locations:
        size = format_size(loc.size_bytes)
        if loc.counted:
            bar = render_bar(loc.percentage)
            click.echo(f"  {loc.name:<16} {size:>10}  {bar} {loc.percentage:>3}%")
        else:
            click.echo(f"  {loc.name:<16} {size:>10}  (includes the AUR helper caches)")
    click.echo()
    click.secho(f"  Total: {format_size(report.total_bytes)}", bold=True)

    if pkg_report is None:
        click.echo()
        return

    click.secho("\n📦 Pacman package cache\n", fg="cyan", bold=True)
    if not pkg_report.exists:
        click.secho(f"  {pkg_report.path} not found", fg="yellow")
        click.echo()
        return

    click.echo(f"  Packages:        {pkg_report.total_packages}")
    click.echo(f"  Unique packages: {pkg_report.unique_packages}")
    click.echo(f"  Size:            {format_size(pkg_report.total_bytes)}")

    if pkg_report.most_versions:
        click.echo("\n  Most cached versions:")
        for group in pkg_report.most_versions:
            click.echo(f"    {group.name:<32} {group.versions:>3} version(s)  {format_size(group.size_bytes):>10}")

    if pkg_report.largest:
        click.echo("\n  Largest packages:")
        for pkg in pkg_report.largest:
            click.echo(f"    {format_size(pkg.size_bytes):>10}  {pkg.filename}")

    click.echo()
    click.echo("Clean old versions with 'paccache -rk2'.")

"""
Pacman Mirror Optimizer — CLI Entry Point

Usage:
    python -m src.main optimize [--country CC] [--manual] [--dry-run]
    python -m src.main backups
    python -m src.main restore [BACKUP_ID]
    python -m src.main cache-analyze [--details]
"""

from __future__ import annotations

# Load .env file FIRST, before any other imports that might read env vars
from pathlib import Path
from dotenv import load_dotenv

_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

from typing import Optional

import click

from .config.loader import load_settings
from .logging_config import setup_logging
from .mirror import __version__
from .validation import ConfigurationError
from .cli.mirror import optimize, benchmark, backups, restore, show
from .cli.cache import cache_analyze
from .cli.config import check_config, config_show

# Initialize logging
setup_logging()


@click.group()
@click.version_option(__version__, prog_name="pacman-mirror-optimizer")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML settings file (default: $MIRROR_OPTIMIZER_CONFIG)",
)
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], verbose: bool) -> None:
    """Pacman Mirror Optimizer — rank mirrors and keep the mirrorlist fast."""
    if verbose:
        setup_logging(level="DEBUG")

    ctx.ensure_object(dict)
    try:
        ctx.obj["settings"] = load_settings(config_path)
    except ConfigurationError as e:
        raise click.ClickException(str(e))


cli.add_command(optimize)
cli.add_command(benchmark)
cli.add_command(backups)
cli.add_command(restore)
cli.add_command(show)
cli.add_command(cache_analyze)
cli.add_command(check_config)
cli.add_command(config_show)


if __name__ == "__main__":
    cli()

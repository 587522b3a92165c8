"""Start command."""

import asyncio

import click

from . import cli
from .shared import console


@cli.command()
@click.option("--runtime", "runtime_spec", required=True, envvar="ONEBRIDGE_RUNTIME",
              help="Bot runtime factory as 'module:factory'")
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False),
              help="JSON config file (general + per-account sections)")
@click.option("--self-id", type=int, help="Account id selecting the per-account config section")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Also write logs to this file")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def start(runtime_spec, config_file, self_id, log_file, debug):
    """Run the bridge until Ctrl+C."""
    from onebridge.config import load_settings
    from onebridge.main import run, setup_logging
    from onebridge.runtime import load_runtime

    try:
        settings = load_settings(config_file, self_id=self_id, debug=debug or None)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Invalid configuration: {e}")
    setup_logging(debug=settings.debug, log_file=log_file)

    try:
        runtime = load_runtime(runtime_spec, settings)
    except (ImportError, AttributeError, ValueError, TypeError) as e:
        raise click.ClickException(f"Cannot load runtime '{runtime_spec}': {e}")

    console.print(f"[bold blue]Starting onebridge for {runtime.self_id}...[/bold blue]")
    asyncio.run(run(runtime, settings))

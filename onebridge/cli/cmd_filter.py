"""Filter checking command."""

import sys

import click

from . import cli
from .shared import console, read_json_file


@cli.command(name="filter-check")
@click.argument("filter_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("event_file", type=click.Path(exists=True, dir_okay=False))
def filter_check(filter_file, event_file):
    """Evaluate FILTER_FILE against the event in EVENT_FILE.

    Exits 0 if the event would be forwarded, 1 if it would be dropped.
    """
    from onebridge.filter import matches

    rule = read_json_file(filter_file)
    event = read_json_file(event_file)
    if not isinstance(event, dict):
        raise click.ClickException("Event must be a JSON object")

    if matches(rule, event):
        console.print("[green]✓ forwarded[/green]")
        sys.exit(0)
    console.print("[red]✗ dropped[/red]")
    sys.exit(1)

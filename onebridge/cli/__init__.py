"""onebridge CLI — command line interface."""

import click

from onebridge import __version__
from .shared import console


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="onebridge")
@click.pass_context
def cli(ctx):
    """onebridge — OneBot protocol bridge for chat-bot runtimes"""
    if ctx.invoked_subcommand is None:
        _show_help()


def _show_help():
    """Show all available commands."""
    console.print(f"[bold]onebridge v{__version__}[/bold] — OneBot protocol bridge\n")

    commands = [
        ("start", "Run the bridge around a bot runtime"),
        ("actions", "List the action table"),
        ("filter-check", "Evaluate an event filter against an event"),
    ]
    for name, desc in commands:
        console.print(f"    [bold]onebridge {name:14s}[/bold] {desc}")
    console.print()
    console.print("[dim]Run 'onebridge <command> --help' for details on a specific command.[/dim]")


# Import all command modules (registers commands onto cli group)
from . import cmd_start  # noqa: E402, F401
from . import cmd_actions  # noqa: E402, F401
from . import cmd_filter  # noqa: E402, F401


@cli.command(name="help", hidden=True)
def help_cmd():
    """Show all available commands."""
    _show_help()


def main():
    """CLI entry point. Click reports usage errors and exits."""
    cli(prog_name="onebridge")

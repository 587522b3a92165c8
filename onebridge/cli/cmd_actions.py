"""Action table listing."""

from rich.table import Table

from . import cli
from .shared import console


@cli.command()
def actions():
    """List every action the bridge can route."""
    from onebridge.actions.schema import METHODS

    table = Table(title="Actions")
    table.add_column("Action", style="bold")
    table.add_column("Parameters")
    table.add_column("Boolean", style="dim")
    for name, spec in sorted(METHODS.items()):
        table.add_row(name, ", ".join(spec.params), ", ".join(sorted(spec.bools)))
    console.print(table)
    console.print(
        "[dim]Every action also accepts the _async and _rate_limited suffixes; "
        "send_msg, set_restart and .handle_quick_operation are handled by the bridge.[/dim]"
    )

"""Shared utilities for onebridge CLI commands."""

import json
from pathlib import Path

import click
from rich.console import Console

console = Console()


def read_json_file(path: str):
    """Read a JSON file or fail the command with a readable message."""
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Cannot read {path}: {e}")

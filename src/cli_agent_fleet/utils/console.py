"""Coloured terminal output for the interactive loops."""

from typing import Optional

import click

RULE = "=" * 40


def print_header(title: str) -> None:
    click.echo()
    click.secho(RULE, fg="blue")
    click.secho(title, fg="blue")
    click.secho(RULE, fg="blue")
    click.echo()


def print_banner(title: str) -> None:
    """Boxed banner used above menus."""
    width = max(len(title) + 4, 36)
    click.echo()
    click.secho("╔" + "═" * width + "╗", fg="yellow")
    click.secho("║  " + title.ljust(width - 2) + "║", fg="yellow")
    click.secho("╚" + "═" * width + "╝", fg="yellow")
    click.echo()


def print_success(msg: str) -> None:
    click.secho(f"✓ {msg}", fg="green")


def print_error(msg: str) -> None:
    click.secho(f"✗ {msg}", fg="red")


def print_warning(msg: str) -> None:
    click.secho(f"⚠ {msg}", fg="yellow")


def print_block(title: Optional[str], text: Optional[str], missing: str = "File not found") -> None:
    """Print a document between separator lines, or ``missing`` if absent."""
    if title:
        click.secho(title, fg="blue")
    click.echo("-" * 40)
    click.echo(text if text is not None else missing)
    click.echo("-" * 40)

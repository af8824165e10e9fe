"""CLI error handling helpers."""

import click

from budgetbridge.domain.errors import DomainError


def handle_domain_error(ctx: click.Context, error: DomainError | ValueError) -> None:
    """Render a domain error and exit with failure.

    Errors that carry per-item failures (account or metadata writes) list
    them below the summary line.
    """
    click.echo(f"Error: {error}", err=True)
    for detail in getattr(error, "errors", None) or []:
        click.echo(f"  {detail}", err=True)
    ctx.exit(1)

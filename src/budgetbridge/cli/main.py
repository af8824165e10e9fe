"""Main CLI entry point."""

import asyncio
import logging
from dataclasses import replace

import click
from budgetbridge.config import load_settings
from budgetbridge.database.factories import create_sqlite_database
from budgetbridge.domain.errors import DomainError
from budgetbridge.cli.error_handling import handle_domain_error

# Import and register all commands at module level
from budgetbridge.cli.commands import (
    account,
    import_cmd,
    backup,
)

LOG_LEVELS = [logging.WARNING, logging.INFO, logging.DEBUG]


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides BUDGETBRIDGE_DB_PATH environment variable)",
    envvar="BUDGETBRIDGE_DB_PATH",
)
@click.option(
    "--write-concurrency",
    type=click.IntRange(min=1),
    help="Parallel writes per import phase (overrides BUDGETBRIDGE_WRITE_CONCURRENCY)",
)
@click.option("-v", "--verbose", count=True, help="Log progress (-v) or every write (-vv)")
@click.pass_context
def cli(ctx, db_path: str | None, write_concurrency: int | None, verbose: int):
    """Budgetbridge - Personal finance ledger with a CSV importer.

    Import bank and Firefly III style CSV exports, infer the accounts they
    refer to, preview the changes and write them, or back up and restore
    the whole ledger.
    """
    ctx.ensure_object(dict)
    logging.basicConfig(
        level=LOG_LEVELS[min(verbose, len(LOG_LEVELS) - 1)],
        format="%(levelname)s %(name)s: %(message)s",
    )

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        try:
            settings = load_settings()
        except DomainError as e:
            handle_domain_error(ctx, e)
        if write_concurrency is not None:
            settings = replace(settings, write_concurrency=write_concurrency)
        db = create_sqlite_database(database_path=db_path)
        asyncio.run(db.initialize_schema())
        ctx.call_on_close(lambda: asyncio.run(db.disconnect()))
        ctx.obj["db"] = db
        ctx.obj["settings"] = settings


# Register all commands
account.register_commands(cli)
import_cmd.register_commands(cli)
backup.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()

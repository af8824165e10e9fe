"""CSV import and preview commands."""

import asyncio

import click
from budgetbridge.cli.commands.backup import restore_backup
from budgetbridge.cli.error_handling import handle_domain_error
from budgetbridge.domain.csv_import import CSVImportService, ImportSession, is_backup_archive
from budgetbridge.domain.column_mapping import CANONICAL_FIELDS
from budgetbridge.domain.errors import DomainError
from budgetbridge.domain.import_records import CREATE, NO_CHANGE, UPDATE
from budgetbridge.utils.date_parser import format_date

ACTION_LABELS = {CREATE: "create", UPDATE: "update", NO_CHANGE: "no change"}

map_option = click.option(
    "--map",
    "mappings",
    multiple=True,
    metavar="FIELD=HEADER",
    help=(
        "Map a field to a CSV column, repeatable. An empty HEADER unmaps the "
        f"field. Fields: {', '.join(CANONICAL_FIELDS)}"
    ),
)
currency_option = click.option(
    "--default-currency",
    help="Currency for rows without one (overrides BUDGETBRIDGE_DEFAULT_CURRENCY)",
)


def parse_mappings(mappings: tuple[str, ...]) -> dict[str, str | None]:
    """Turn FIELD=HEADER option values into mapping overrides."""
    overrides: dict[str, str | None] = {}
    for item in mappings:
        name, sep, header = item.partition("=")
        if not sep or not name.strip():
            raise click.BadParameter(f"Invalid mapping '{item}', expected FIELD=HEADER", param_hint="--map")
        overrides[name.strip()] = header.strip() or None
    return overrides


def print_mapping(session: ImportSession) -> None:
    click.echo("\nColumn mapping:")
    for name in CANONICAL_FIELDS:
        header = session.mapping.get(name)
        if header:
            click.echo(f"  {name:24s} <- {header}")


def print_account_preview(session: ImportSession) -> None:
    click.echo("\nAccounts:")
    click.echo("-" * 72)
    if not session.account_preview:
        click.echo("  (none)")
    for entry in session.account_preview:
        click.echo(
            f"  {ACTION_LABELS[entry.action]:9s} | {entry.name:24s} | {entry.category:6s} | "
            f"{entry.balance:>14,.2f} {entry.currency}"
        )


def print_rows(session: ImportSession) -> None:
    click.echo("\nRows:")
    click.echo("-" * 72)
    for row in session.rows:
        amount = "" if row.amount.is_nan() else f"{row.amount:,.2f} {row.currency}"
        line = (
            f"  {row.row_number:4d} | {row.import_status:7s} | {row.kind or '-':15s} | "
            f"{format_date(row.date) if row.date else '':10s} | {amount:>18s} | {row.description}"
        )
        click.echo(line)
        if row.error_message:
            click.echo(f"         {row.error_message}")
    if session.new_categories:
        click.echo(f"\nNew categories: {', '.join(session.new_categories)}")
    if session.new_tags:
        click.echo(f"New tags: {', '.join(session.new_tags)}")
    click.echo(f"\n{session.pending_count} of {len(session.rows)} rows ready to import")


def print_session(session: ImportSession) -> None:
    print_mapping(session)
    print_account_preview(session)
    print_rows(session)


@click.command("preview")
@click.argument("import_file", type=click.Path(exists=True, dir_okay=False))
@map_option
@currency_option
@click.pass_context
def preview_csv(ctx, import_file: str, mappings: tuple[str, ...], default_currency: str | None):
    """Show how a CSV file would be imported, without writing anything."""
    db = ctx.obj["db"]
    service = CSVImportService(db, ctx.obj["settings"])

    try:
        session = asyncio.run(
            service.preview_file(import_file, parse_mappings(mappings), default_currency)
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
    print_session(session)


@click.command("import")
@click.argument("import_file", type=click.Path(exists=True, dir_okay=False))
@map_option
@currency_option
@click.option("--yes", "-y", is_flag=True, help="Import without asking for confirmation")
@click.pass_context
def import_csv(
    ctx, import_file: str, mappings: tuple[str, ...], default_currency: str | None, yes: bool
):
    """Import transactions from a CSV file, or a ZIP containing one.

    A budgetbridge backup archive is restored instead.

    Examples:
        budgetbridge import firefly_export.csv
        budgetbridge import bank.csv --map amount=Valor --default-currency BRL --yes
    """
    db = ctx.obj["db"]
    settings = ctx.obj["settings"]

    if is_backup_archive(import_file):
        click.echo(f"{import_file} is a backup archive; restoring it.")
        ctx.invoke(restore_backup, backup_file=import_file, yes=yes)
        return

    service = CSVImportService(db, settings)
    try:
        session = asyncio.run(
            service.preview_file(import_file, parse_mappings(mappings), default_currency)
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
    print_session(session)

    if session.pending_count == 0:
        click.echo("Error: Nothing to import: no rows are pending", err=True)
        ctx.exit(1)

    if not yes and not click.confirm(f"\nImport {session.pending_count} rows?"):
        click.echo("Import cancelled.")
        return

    try:
        result = asyncio.run(session.run_import())
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo("\nImport complete:")
    click.echo(f"  Imported: {result.succeeded} of {result.total_rows} rows ({result.transfers} transfers)")
    click.echo(f"  Skipped: {result.skipped}")
    click.echo(f"  Failed: {result.failed}")
    if result.accounts_created:
        click.echo(f"  Accounts created: {', '.join(result.accounts_created)}")
    if result.accounts_updated:
        click.echo(f"  Accounts updated: {', '.join(result.accounts_updated)}")
    if result.categories_created:
        click.echo(f"  Categories created: {', '.join(result.categories_created)}")
    if result.tags_created:
        click.echo(f"  Tags created: {', '.join(result.tags_created)}")
    if result.errors:
        click.echo(f"  Errors: {len(result.errors)}")
        for error in result.errors:
            click.echo(f"    {error}", err=True)


def register_commands(cli):
    """Register import commands with main CLI."""
    cli.add_command(preview_csv)
    cli.add_command(import_csv)

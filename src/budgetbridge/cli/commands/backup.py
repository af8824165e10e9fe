"""Backup export and restore commands."""

import asyncio

import click
from budgetbridge.cli.error_handling import handle_domain_error
from budgetbridge.domain.backup import RESTORED_COLLECTIONS, BackupService
from budgetbridge.domain.errors import DomainError


@click.group()
def backup_group():
    """Export or restore a backup archive."""
    pass


@backup_group.command("export")
@click.argument("output_file", type=click.Path(dir_okay=False))
@click.pass_context
def export_backup(ctx, output_file: str):
    """Write categories, tags, accounts and transactions to a ZIP archive."""
    service = BackupService(ctx.obj["db"], ctx.obj["settings"])
    summary = asyncio.run(service.export_to_zip(output_file))
    click.echo(f"Backup written to {summary.path}")
    for name, count in summary.counts.items():
        click.echo(f"  {name}: {count}")


@backup_group.command("restore")
@click.argument("backup_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--yes", "-y", is_flag=True, help="Restore without asking for confirmation")
@click.pass_context
def restore_backup(ctx, backup_file: str, yes: bool):
    """Restore a backup archive.

    Records get new IDs. Accounts that already exist are reused; new
    accounts end with the balance they had when the backup was made.
    """
    service = BackupService(ctx.obj["db"], ctx.obj["settings"])

    if not yes and not click.confirm(f"Restore {backup_file} into this database?"):
        click.echo("Restore cancelled.")
        return

    try:
        result = asyncio.run(service.restore_from_zip(backup_file))
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo("\nRestore complete:")
    for name in RESTORED_COLLECTIONS:
        click.echo(f"  {name}: {result.restored.get(name, 0)}")
    if result.skipped_transactions:
        click.echo(f"  Skipped transactions (account not restored): {result.skipped_transactions}")
    if result.not_restored:
        click.echo(f"  Not restored: {', '.join(result.not_restored)}")
    if result.errors:
        click.echo(f"  Errors: {len(result.errors)}")
        for error in result.errors:
            click.echo(f"    {error}", err=True)
        ctx.exit(1)


def register_commands(cli):
    """Register backup commands with main CLI."""
    cli.add_command(backup_group, name="backup")

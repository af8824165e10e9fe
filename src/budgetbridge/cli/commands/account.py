"""Account management commands."""

import asyncio
from decimal import Decimal

import click
from budgetbridge.cli.error_handling import handle_domain_error
from budgetbridge.domain.account import AccountService
from budgetbridge.domain.entities import ACCOUNT_CATEGORIES, ASSET
from budgetbridge.domain.errors import DomainError
from budgetbridge.utils.amount_parser import parse_amount
from budgetbridge.utils.currency import parse_rate


@click.group()
def account_group():
    """Manage accounts."""
    pass


@account_group.command("create")
@click.argument("name", metavar="ACCOUNT_NAME")
@click.option("--currency", required=True, help="Currency code, e.g. EUR")
@click.option("--balance", default="0", help="Opening balance (default: 0)")
@click.option(
    "--category",
    type=click.Choice(ACCOUNT_CATEGORIES, case_sensitive=False),
    default=ASSET,
    help="Account category (default: asset)",
)
@click.pass_context
def create_account(ctx, name: str, currency: str, balance: str, category: str):
    """Create a new account.

    Examples:
        budgetbridge account create "Checking" --currency EUR
        budgetbridge account create "Binance" --currency USDT --category crypto
        budgetbridge account create "Savings" --currency BRL --balance "1.500,00"
    """
    db = ctx.obj["db"]
    service = AccountService(db)

    amount = parse_amount(balance)
    if amount.is_nan():
        click.echo(f"Error: Invalid balance '{balance}'", err=True)
        ctx.exit(1)

    try:
        account_id = asyncio.run(
            service.create_account(
                name=name, currency=currency, balance=amount, category=category.lower()
            )
        )
        click.echo(f"Created account '{name}' (ID: {account_id})")
    except DomainError as e:
        handle_domain_error(ctx, e)


@account_group.command("list")
@click.option("--in", "target", help="Also show net worth in this currency")
@click.option(
    "--rate",
    "rates",
    multiple=True,
    metavar="CODE=RATE",
    help="Exchange rate against a common base, repeatable (e.g. --rate USD=1 --rate EUR=1.08)",
)
@click.pass_context
def list_accounts(ctx, target: str | None, rates: tuple[str, ...]):
    """List all accounts."""
    db = ctx.obj["db"]
    service = AccountService(db)

    accounts = asyncio.run(service.list_accounts())
    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\nAccounts:")
    click.echo("-" * 72)
    for acc in accounts:
        click.echo(
            f"ID: {acc.id:3d} | {acc.name:24s} | {acc.category:6s} | "
            f"{acc.balance:>16,.2f} {acc.currency}"
        )

    if target is None:
        return

    try:
        rate_table: dict[str, Decimal] = dict(parse_rate(item) for item in rates)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--rate")

    try:
        total = asyncio.run(service.net_worth(target, rate_table))
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo("-" * 72)
    click.echo(f"Net worth: {total:,.2f} {target.upper()}")


def register_commands(cli):
    """Register account commands with main CLI."""
    cli.add_command(account_group, name="account")

"""Mapper functions to convert between domain models and SQLAlchemy models.

This layer isolates the conversion logic, so the import engine never sees
ORM objects and the storage schema can change behind it.
"""

from decimal import Decimal

from budgetbridge.domain import entities as domain
from budgetbridge.database.models import (
    Account as ORMAccount,
    Category as ORMCategory,
    Tag as ORMTag,
    Transaction as ORMTransaction,
)


def name_key(name: str) -> str:
    """Uniqueness key for names compared without regard to case or spacing."""
    return " ".join(name.split()).casefold()


def _money(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def account_to_domain(orm_account: ORMAccount) -> domain.Account:
    """Convert SQLAlchemy Account model to domain Account entity."""
    return domain.Account(
        id=orm_account.id,
        name=orm_account.name,
        currency=orm_account.currency,
        balance=_money(orm_account.balance),
        category=orm_account.category,
        type=orm_account.type,
        provider_name=orm_account.provider_name,
        is_active=orm_account.is_active,
        last_activity=orm_account.last_activity,
        include_in_net_worth=orm_account.include_in_net_worth,
        created_at=orm_account.created_at,
    )


def account_to_orm(account: domain.NewAccount) -> ORMAccount:
    """Build a SQLAlchemy Account model for a new domain account."""
    return ORMAccount(
        name=account.name,
        name_key=name_key(account.name),
        currency=account.currency,
        balance=account.balance,
        category=account.category,
        type=account.type,
        provider_name=account.provider_name,
        is_active=account.is_active,
        include_in_net_worth=account.include_in_net_worth,
    )


def category_to_domain(orm_category: ORMCategory) -> domain.Category:
    """Convert SQLAlchemy Category model to domain Category entity."""
    return domain.Category(
        id=orm_category.id,
        name=orm_category.name,
        created_at=orm_category.created_at,
    )


def tag_to_domain(orm_tag: ORMTag) -> domain.Tag:
    """Convert SQLAlchemy Tag model to domain Tag entity."""
    return domain.Tag(
        id=orm_tag.id,
        name=orm_tag.name,
        created_at=orm_tag.created_at,
    )


def transaction_to_domain(orm_transaction: ORMTransaction) -> domain.Transaction:
    """Convert SQLAlchemy Transaction model to domain Transaction entity."""
    return domain.Transaction(
        id=orm_transaction.id,
        account_id=orm_transaction.account_id,
        date=orm_transaction.date,
        amount=_money(orm_transaction.amount),
        transaction_currency=orm_transaction.transaction_currency,
        description=orm_transaction.description,
        category=orm_transaction.category,
        tags=tuple(orm_transaction.tags or ()),
        original_import_data=orm_transaction.original_import_data,
        created_at=orm_transaction.created_at,
    )


def transaction_to_orm(leg: domain.NewTransaction) -> ORMTransaction:
    """Build a SQLAlchemy Transaction model for one ledger entry."""
    return ORMTransaction(
        account_id=leg.account_id,
        date=leg.date,
        amount=leg.amount,
        transaction_currency=leg.transaction_currency,
        description=leg.description,
        category=leg.category,
        tags=list(leg.tags),
        original_import_data=leg.original_import_data,
    )

"""Generic SQLAlchemy (asyncio) database implementation."""

import logging
from datetime import datetime, UTC
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from budgetbridge.database.base import Database
from budgetbridge.database.models import (
    Account,
    Base,
    Category,
    Tag,
    Transaction,
    create_async_session_factory,
)
from budgetbridge.database.mappers import (
    account_to_domain,
    account_to_orm,
    category_to_domain,
    name_key,
    tag_to_domain,
    transaction_to_domain,
    transaction_to_orm,
)
from budgetbridge.domain.entities import (
    Account as DomainAccount,
    Category as DomainCategory,
    NewAccount,
    NewTransaction,
    Tag as DomainTag,
    Transaction as DomainTransaction,
)
from budgetbridge.domain.errors import (
    ConflictError,
    NotFoundError,
    account_name_exists,
    account_not_found,
    category_exists,
    tag_exists,
)

logger = logging.getLogger(__name__)


class SQLAlchemyDatabase(Database):
    """SQLAlchemy-based implementation of Database interface.

    Every operation opens its own session, so concurrent coroutines never
    share ORM state.
    """

    def __init__(self, database_url: str):
        """Initialize SQLAlchemy database.

        Args:
            database_url: Async SQLAlchemy database URL
                (e.g., 'sqlite+aiosqlite:///path/to.db')
        """
        self.database_url = database_url
        self.engine, self.session_factory = create_async_session_factory(database_url)

    async def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def disconnect(self) -> None:
        """Dispose of the engine's connections."""
        await self.engine.dispose()

    # Account operations
    async def create_account(self, account: NewAccount) -> int:
        """Create a new account. Returns account ID."""
        orm_account = account_to_orm(account)
        try:
            async with self.session_factory() as session, session.begin():
                session.add(orm_account)
        except IntegrityError as e:
            raise ConflictError(account_name_exists(account.name)) from e
        logger.debug("Created account %s (%s)", orm_account.id, account.name)
        return orm_account.id

    async def get_account(self, account_id: int) -> Optional[DomainAccount]:
        """Get account by ID."""
        async with self.session_factory() as session:
            account = await session.get(Account, account_id)
            if account is None:
                return None
            return account_to_domain(account)

    async def list_accounts(self) -> list[DomainAccount]:
        """List all accounts."""
        async with self.session_factory() as session:
            result = await session.scalars(select(Account).order_by(Account.name))
            return [account_to_domain(acc) for acc in result]

    async def update_account(
        self,
        account_id: int,
        currency: Optional[str] = None,
        balance: Optional[Decimal] = None,
        category: Optional[str] = None,
    ) -> None:
        """Update account fields. ``None`` leaves a field untouched."""
        async with self.session_factory() as session, session.begin():
            account = await session.get(Account, account_id)
            if account is None:
                raise NotFoundError(account_not_found(account_id))
            if currency is not None:
                account.currency = currency
            if balance is not None:
                account.balance = balance
            if category is not None:
                account.category = category

    # Category operations
    async def create_category(self, name: str) -> int:
        """Create a category. Returns category ID."""
        category = Category(name=name, name_key=name_key(name))
        try:
            async with self.session_factory() as session, session.begin():
                session.add(category)
        except IntegrityError as e:
            raise ConflictError(category_exists(name)) from e
        return category.id

    async def list_categories(self) -> list[DomainCategory]:
        """List all categories."""
        async with self.session_factory() as session:
            result = await session.scalars(select(Category).order_by(Category.name))
            return [category_to_domain(cat) for cat in result]

    # Tag operations
    async def create_tag(self, name: str) -> int:
        """Create a tag. Returns tag ID."""
        tag = Tag(name=name, name_key=name_key(name))
        try:
            async with self.session_factory() as session, session.begin():
                session.add(tag)
        except IntegrityError as e:
            raise ConflictError(tag_exists(name)) from e
        return tag.id

    async def list_tags(self) -> list[DomainTag]:
        """List all tags."""
        async with self.session_factory() as session:
            result = await session.scalars(select(Tag).order_by(Tag.name))
            return [tag_to_domain(tag) for tag in result]

    # Transaction operations
    async def create_transactions(self, legs: Sequence[NewTransaction]) -> list[int]:
        """Store ledger entries and adjust account balances atomically."""
        rows = [transaction_to_orm(leg) for leg in legs]
        now = datetime.now(UTC)
        async with self.session_factory() as session, session.begin():
            for leg in legs:
                result = await session.execute(
                    update(Account)
                    .where(Account.id == leg.account_id)
                    .values(balance=Account.balance + leg.amount, last_activity=now)
                )
                if result.rowcount == 0:
                    raise NotFoundError(account_not_found(leg.account_id))
            session.add_all(rows)
        return [row.id for row in rows]

    async def get_transaction(self, transaction_id: int) -> Optional[DomainTransaction]:
        """Get transaction by ID."""
        async with self.session_factory() as session:
            txn = await session.get(Transaction, transaction_id)
            if txn is None:
                return None
            return transaction_to_domain(txn)

    async def list_transactions(self, account_id: Optional[int] = None) -> list[DomainTransaction]:
        """List transactions, optionally filtered by account."""
        query = select(Transaction)
        if account_id is not None:
            query = query.where(Transaction.account_id == account_id)
        query = query.order_by(Transaction.date, Transaction.id)
        async with self.session_factory() as session:
            result = await session.scalars(query)
            return [transaction_to_domain(txn) for txn in result]

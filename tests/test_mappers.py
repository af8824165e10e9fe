"""Tests for database mappers."""

from datetime import datetime, date, UTC
from decimal import Decimal

from budgetbridge.database.models import (
    Account as ORMAccount,
    Category as ORMCategory,
    Tag as ORMTag,
    Transaction as ORMTransaction,
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
    Account,
    Category,
    NewAccount,
    NewTransaction,
    Tag,
    Transaction,
)


class TestAccountMapper:
    """Tests for Account mapper."""

    def test_account_to_domain(self):
        """Test converting ORM Account to domain Account."""
        orm_account = ORMAccount(
            id=1,
            name="Binance",
            name_key="binance",
            currency="USDT",
            balance=0.125,
            category="crypto",
            type="wallet",
            provider_name="Imported - Binance",
            is_active=True,
            last_activity=None,
            include_in_net_worth=True,
            created_at=datetime.now(UTC),
        )
        domain_account = account_to_domain(orm_account)

        assert isinstance(domain_account, Account)
        assert domain_account.id == 1
        assert domain_account.name == "Binance"
        assert domain_account.balance == Decimal("0.125")
        assert isinstance(domain_account.balance, Decimal)
        assert domain_account.category == "crypto"
        assert domain_account.provider_name == "Imported - Binance"
        assert domain_account.created_at == orm_account.created_at

    def test_account_to_orm_sets_name_key(self):
        orm_account = account_to_orm(NewAccount(name="Main  Checking", currency="EUR"))

        assert orm_account.name == "Main  Checking"
        assert orm_account.name_key == "main checking"
        assert orm_account.balance == Decimal("0")
        assert orm_account.category == "asset"
        assert orm_account.id is None


class TestNameMappers:
    """Tests for Category and Tag mappers."""

    def test_category_to_domain(self):
        orm_category = ORMCategory(id=3, name="Food", name_key="food", created_at=datetime.now(UTC))
        category = category_to_domain(orm_category)

        assert isinstance(category, Category)
        assert (category.id, category.name) == (3, "Food")

    def test_tag_to_domain(self):
        orm_tag = ORMTag(id=4, name="weekly", name_key="weekly", created_at=datetime.now(UTC))
        tag = tag_to_domain(orm_tag)

        assert isinstance(tag, Tag)
        assert (tag.id, tag.name) == (4, "weekly")

    def test_name_key(self):
        assert name_key("  Eating   Out ") == "eating out"
        assert name_key("STRASSE") == name_key("straße")


class TestTransactionMapper:
    """Tests for Transaction mapper."""

    def test_transaction_to_domain(self):
        """Test converting ORM Transaction to domain Transaction."""
        orm_transaction = ORMTransaction(
            id=9,
            account_id=1,
            date=date(2024, 1, 15),
            amount=Decimal("-42.50"),
            transaction_currency="EUR",
            description="To: Supermarket",
            category="Food",
            tags=["weekly", "food"],
            original_import_data={"row_number": 4, "kind": "withdrawal"},
            created_at=datetime.now(UTC),
        )
        transaction = transaction_to_domain(orm_transaction)

        assert isinstance(transaction, Transaction)
        assert transaction.id == 9
        assert transaction.amount == Decimal("-42.50")
        assert transaction.tags == ("weekly", "food")
        assert transaction.original_import_data["row_number"] == 4

    def test_transaction_to_domain_without_tags(self):
        orm_transaction = ORMTransaction(
            id=1,
            account_id=1,
            date=date(2024, 1, 15),
            amount=None,
            transaction_currency="EUR",
            category="Uncategorized",
            tags=None,
            created_at=datetime.now(UTC),
        )
        transaction = transaction_to_domain(orm_transaction)

        assert transaction.tags == ()
        assert transaction.amount == Decimal("0")
        assert transaction.description is None

    def test_transaction_to_orm(self):
        leg = NewTransaction(
            account_id=2,
            date=date(2024, 2, 1),
            amount=Decimal("110.00"),
            transaction_currency="USD",
            category="Transfer",
            tags=("travel",),
        )
        orm_transaction = transaction_to_orm(leg)

        assert orm_transaction.account_id == 2
        assert orm_transaction.tags == ["travel"]
        assert orm_transaction.category == "Transfer"
        assert orm_transaction.original_import_data is None

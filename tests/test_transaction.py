"""Tests for the transaction service."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest
from budgetbridge.domain.entities import NewTransaction
from budgetbridge.domain.errors import NotFoundError, ValidationError


def test_create_transaction(transaction_service, account_service, sample_account):
    """Test creating a transaction with minimal fields."""
    transaction_id = asyncio.run(
        transaction_service.create_transaction(
            account_id=sample_account.id,
            date=date(2024, 1, 15),
            amount=Decimal("-50.00"),
            currency="eur",
        )
    )

    transaction = asyncio.run(transaction_service.get_transaction(transaction_id))
    assert transaction.account_id == sample_account.id
    assert transaction.amount == Decimal("-50.00")
    assert transaction.transaction_currency == "EUR"
    assert transaction.category == "Uncategorized"
    assert transaction.tags == ()
    assert transaction.description is None

    account = asyncio.run(account_service.get_account(sample_account.id))
    assert account.balance == Decimal("50.00")
    assert account.last_activity is not None


def test_create_transaction_with_all_fields(transaction_service, sample_account):
    transaction_id = asyncio.run(
        transaction_service.create_transaction(
            account_id=sample_account.id,
            date=date(2024, 1, 15),
            amount=Decimal("-42.50"),
            currency="EUR",
            description="To: Supermarket",
            category="Food",
            tags=["weekly", "food"],
            original_import_data={"row_number": 4},
        )
    )

    transaction = asyncio.run(transaction_service.get_transaction(transaction_id))
    assert transaction.description == "To: Supermarket"
    assert transaction.category == "Food"
    assert transaction.tags == ("weekly", "food")
    assert transaction.original_import_data == {"row_number": 4}


def test_create_transaction_unknown_account(transaction_service):
    with pytest.raises(NotFoundError, match="Account 999 not found"):
        asyncio.run(
            transaction_service.create_transaction(
                account_id=999, date=date(2024, 1, 15), amount=Decimal("1"), currency="EUR"
            )
        )


@pytest.mark.parametrize(
    "amount,currency",
    [(Decimal("NaN"), "EUR"), (Decimal("Infinity"), "EUR"), (Decimal("1"), " ")],
)
def test_create_transaction_invalid_values(transaction_service, sample_account, amount, currency):
    with pytest.raises(ValidationError):
        asyncio.run(
            transaction_service.create_transaction(
                account_id=sample_account.id, date=date(2024, 1, 15), amount=amount, currency=currency
            )
        )


def test_record_transfer_legs(transaction_service, account_service, sample_account):
    """Both legs of a transfer are written together."""
    savings = asyncio.run(account_service.create_account("Savings", "EUR"))
    legs = [
        NewTransaction(sample_account.id, date(2024, 2, 1), Decimal("-30"), "EUR", category="Transfer"),
        NewTransaction(savings, date(2024, 2, 1), Decimal("30"), "EUR", category="Transfer"),
    ]

    ids = asyncio.run(transaction_service.record(*legs))

    assert len(ids) == 2
    assert asyncio.run(account_service.get_account(sample_account.id)).balance == Decimal("70")
    assert asyncio.run(account_service.get_account(savings)).balance == Decimal("30")
    assert [t.id for t in asyncio.run(transaction_service.list_transactions(account_id=savings))] == [ids[1]]


def test_record_is_all_or_nothing(transaction_service, account_service, sample_account):
    legs = [
        NewTransaction(sample_account.id, date(2024, 2, 1), Decimal("-30"), "EUR"),
        NewTransaction(999, date(2024, 2, 1), Decimal("30"), "EUR"),
    ]

    with pytest.raises(NotFoundError):
        asyncio.run(transaction_service.record(*legs))

    assert asyncio.run(account_service.get_account(sample_account.id)).balance == Decimal("100")
    assert asyncio.run(transaction_service.list_transactions()) == []


def test_record_nothing(transaction_service):
    with pytest.raises(ValidationError):
        asyncio.run(transaction_service.record())

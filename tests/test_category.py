"""Tests for the category and tag services."""

import asyncio

import pytest
from budgetbridge.domain.category import is_reserved_category
from budgetbridge.domain.errors import ConflictError, ValidationError


def test_category_create(category_service):
    """Test creating a category."""
    category_id = asyncio.run(category_service.create_category("  Eating Out "))

    (category,) = asyncio.run(category_service.list_categories())
    assert category.id == category_id
    assert category.name == "Eating Out"


def test_category_duplicate_ignores_case(category_service):
    """Duplicate category names are rejected regardless of case."""
    asyncio.run(category_service.create_category("Food"))

    with pytest.raises(ConflictError, match="already exists"):
        asyncio.run(category_service.create_category("FOOD"))


def test_category_empty_name(category_service):
    with pytest.raises(ValidationError):
        asyncio.run(category_service.create_category("   "))


def test_get_category_by_name(category_service):
    asyncio.run(category_service.create_category("Income"))

    assert asyncio.run(category_service.get_category_by_name("income")).name == "Income"
    assert asyncio.run(category_service.get_category_by_name("Rent")) is None


def test_categories_listed_by_name(category_service):
    for name in ("Rent", "Food", "Income"):
        asyncio.run(category_service.create_category(name))

    names = [c.name for c in asyncio.run(category_service.list_categories())]
    assert names == ["Food", "Income", "Rent"]


@pytest.mark.parametrize(
    "name,reserved",
    [
        ("Uncategorized", True),
        ("transfer", True),
        ("Opening  Balance", True),
        ("Initial balance", True),
        ("Skipped", True),
        ("Transfers", False),
        ("Food", False),
    ],
)
def test_reserved_categories(name, reserved):
    assert is_reserved_category(name) is reserved


def test_tag_create_and_list(tag_service):
    """Test creating tags."""
    asyncio.run(tag_service.create_tag("weekly"))
    asyncio.run(tag_service.create_tag(" food "))

    assert [t.name for t in asyncio.run(tag_service.list_tags())] == ["food", "weekly"]


def test_tag_duplicate_ignores_case(tag_service):
    asyncio.run(tag_service.create_tag("Work"))

    with pytest.raises(ConflictError, match="Tag 'work' already exists"):
        asyncio.run(tag_service.create_tag("work"))


def test_tag_empty_name(tag_service):
    with pytest.raises(ValidationError):
        asyncio.run(tag_service.create_tag(""))

"""Category domain service."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from budgetbridge.domain.entities import Category
from budgetbridge.domain.errors import ConflictError, ValidationError, category_exists

if TYPE_CHECKING:
    from budgetbridge.database.base import Database

# Categories the importer assigns itself; never created as user categories
RESERVED_CATEGORIES = frozenset(
    {"uncategorized", "transfer", "opening balance", "initial balance", "skipped"}
)


def is_reserved_category(name: str) -> bool:
    """Return True for built-in category labels."""
    return " ".join(name.split()).casefold() in RESERVED_CATEGORIES


class CategoryService:
    """Service for managing categories."""

    def __init__(self, db: Database):
        """Initialize category service.

        Args:
            db: Database instance
        """
        self.db = db

    async def create_category(self, name: str) -> int:
        """Create a category.

        Args:
            name: Category name

        Returns:
            Category ID

        Raises:
            ValidationError: If the name is empty
            ConflictError: If a category with the same name exists (any case)
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Category name cannot be empty")
        if await self.get_category_by_name(name) is not None:
            raise ConflictError(category_exists(name))
        return await self.db.create_category(name)

    async def get_category_by_name(self, name: str) -> Optional[Category]:
        """Get category by name, ignoring case."""
        key = name.strip().casefold()
        for category in await self.db.list_categories():
            if category.name.casefold() == key:
                return category
        return None

    async def list_categories(self) -> list[Category]:
        """List all categories."""
        return await self.db.list_categories()

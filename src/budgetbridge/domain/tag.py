"""Tag domain service."""

from __future__ import annotations

from typing import TYPE_CHECKING

from budgetbridge.domain.entities import Tag
from budgetbridge.domain.errors import ConflictError, ValidationError, tag_exists

if TYPE_CHECKING:
    from budgetbridge.database.base import Database


class TagService:
    """Service for managing tags."""

    def __init__(self, db: Database):
        self.db = db

    async def create_tag(self, name: str) -> int:
        """Create a tag. Raises ConflictError if it exists in any case."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Tag name cannot be empty")
        key = name.casefold()
        if any(tag.name.casefold() == key for tag in await self.db.list_tags()):
            raise ConflictError(tag_exists(name))
        return await self.db.create_tag(name)

    async def list_tags(self) -> list[Tag]:
        return await self.db.list_tags()

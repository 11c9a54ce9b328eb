"""Menu management for staff and menu browsing for customers."""

import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from table_ordering_service.models.menu_models import MenuItem
from table_ordering_service.repositories.ordering_repositories import MenuItemRepository
from table_ordering_service.services.calculations import to_money
from table_ordering_service.services.errors import NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)


def category_key(category: str) -> str:
    """Grouping key for a category label.

    Categories are grouped by exact, case-sensitive match.
    """
    return category


def group_by_category(items: list[MenuItem]) -> dict[str, list[MenuItem]]:
    """Group items by category key, keeping first-seen category order."""
    groups: dict[str, list[MenuItem]] = {}
    for item in items:
        groups.setdefault(category_key(item.category), []).append(item)
    return groups


class MenuService:
    """Service for menu item CRUD and availability."""

    def __init__(self, menu_repository: MenuItemRepository) -> None:
        """Initialize the MenuService.

        Args:
            menu_repository: Repository for menu items
        """
        self.menu_repository = menu_repository

    async def list_items(self, available_only: bool = False) -> list[MenuItem]:
        return self.menu_repository.list_items(available_only=available_only)

    async def get_item(self, item_id: int) -> MenuItem:
        """Get a menu item.

        Raises:
            NotFoundError: If the item does not exist
        """
        item = self.menu_repository.get_item(item_id)
        if item is None:
            raise NotFoundError(f"Menu item {item_id} not found")
        return item

    async def get_orderable_item(self, item_id: int) -> MenuItem:
        """Get a menu item a customer may add to their cart.

        Raises:
            NotFoundError: If the item does not exist or is unavailable
        """
        item = await self.get_item(item_id)
        if not item.available:
            raise NotFoundError(f"{item.name} is not available right now")
        return item

    async def create_item(
        self,
        name: str | None,
        price: Decimal | float | str | None,
        category: str | None,
        available: bool = True,
    ) -> MenuItem:
        """Add a menu item.

        Raises:
            ValidationError: If name, price or category is missing
            InvalidAmountError: If the price is negative or not a number
            PersistenceError: If the insert failed
        """
        if not name or not name.strip() or price in (None, "") or not category or not category.strip():
            raise ValidationError("Name, price and category are required")

        item_id = self.menu_repository.next_item_id()
        if item_id is None:
            raise PersistenceError("Could not add menu item")

        now = datetime.now(UTC)
        item = MenuItem(
            id=item_id,
            name=name.strip(),
            price=to_money(price),
            category=category.strip(),
            available=available,
            created_at=now,
            updated_at=now,
        )

        if not self.menu_repository.save_item(item, is_new=True):
            raise PersistenceError(f"Could not add {item.name}")

        logger.info(f"Added menu item {item.id}: {item.name}")
        return item

    async def update_item(self, item_id: int, changes: dict[str, Any]) -> MenuItem:
        """Edit a menu item. Placed orders keep their own price snapshot.

        Raises:
            NotFoundError: If the item does not exist
            ValidationError: If a required field is blanked
            InvalidAmountError: If the price is negative or not a number
            PersistenceError: If the save failed
        """
        item = await self.get_item(item_id)
        update: dict[str, Any] = {}

        for field in ("name", "category"):
            if field in changes and changes[field] is not None:
                value = str(changes[field]).strip()
                if not value:
                    raise ValidationError(f"{field.capitalize()} cannot be empty")
                update[field] = value

        if changes.get("price") is not None:
            update["price"] = to_money(changes["price"])

        if changes.get("available") is not None:
            update["available"] = bool(changes["available"])

        updated = item.model_copy(update={**update, "updated_at": datetime.now(UTC)})
        if not self.menu_repository.save_item(updated):
            raise PersistenceError(f"Could not update {item.name}")
        return updated

    async def set_availability(self, item_id: int, available: bool) -> MenuItem:
        return await self.update_item(item_id, {"available": available})

    async def delete_item(self, item_id: int) -> None:
        """Delete a menu item. Placed orders are unaffected.

        Raises:
            NotFoundError: If the item does not exist
            PersistenceError: If the delete failed
        """
        item = await self.get_item(item_id)
        if not self.menu_repository.delete_item(item_id):
            raise PersistenceError(f"Could not delete {item.name}")
        logger.info(f"Deleted menu item {item_id}")

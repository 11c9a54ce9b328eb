"""In-memory cart for a customer session."""

from decimal import Decimal

from table_ordering_service.models.menu_models import MenuItem
from table_ordering_service.models.order_models import OrderItem


class Cart:
    """Ordered collection of order lines keyed by menu item id.

    Each line snapshots the menu item's name, price and category when it is
    first added.
    """

    def __init__(self) -> None:
        self._lines: dict[int, OrderItem] = {}

    @property
    def lines(self) -> list[OrderItem]:
        """Lines in the order they were first added."""
        return list(self._lines.values())

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def total_price(self) -> Decimal:
        """Sum of price x quantity over all lines."""
        return sum((line.line_total for line in self._lines.values()), Decimal("0"))

    @property
    def item_count(self) -> int:
        """Sum of quantities over all lines."""
        return sum(line.quantity for line in self._lines.values())

    def __contains__(self, menu_item_id: object) -> bool:
        return menu_item_id in self._lines

    def __len__(self) -> int:
        return len(self._lines)

    def get(self, menu_item_id: int) -> OrderItem | None:
        return self._lines.get(menu_item_id)

    def add(self, item: MenuItem) -> OrderItem:
        """Add one unit of a menu item.

        Increments the existing line for the same id, otherwise appends a new
        line with quantity 1.
        """
        line = self._lines.get(item.id)
        if line is not None:
            line.quantity += 1
            return line

        line = OrderItem(
            id=item.id,
            name=item.name,
            price=item.price,
            category=item.category,
            quantity=1,
        )
        self._lines[item.id] = line
        return line

    def remove(self, menu_item_id: int) -> bool:
        """Delete a line regardless of quantity.

        Returns:
            bool: True if a line was removed
        """
        return self._lines.pop(menu_item_id, None) is not None

    def update_quantity(self, menu_item_id: int, delta: int) -> OrderItem | None:
        """Adjust a line's quantity by a signed delta.

        The line is removed when the new quantity would be zero or less.

        Returns:
            OrderItem | None: The updated line, or None if it is gone
        """
        line = self._lines.get(menu_item_id)
        if line is None:
            return None

        new_quantity = line.quantity + delta
        if new_quantity <= 0:
            del self._lines[menu_item_id]
            return None

        line.quantity = new_quantity
        return line

    def clear(self) -> None:
        self._lines.clear()

    def snapshot(self) -> list[OrderItem]:
        """Deep copies of the current lines."""
        return [line.model_copy() for line in self._lines.values()]

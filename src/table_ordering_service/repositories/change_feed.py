"""In-process change notifications for the ordering tables.

Repositories publish a notification after every successful write, and the
DynamoDB Streams handler publishes one for every stream record, so
subscribers see changes made by this process and by any other.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Flag, auto
from typing import Any

logger = logging.getLogger(__name__)

ORDERS_TABLE = "orders"
MENU_ITEMS_TABLE = "menu_items"
RESTAURANT_TABLES_TABLE = "restaurant_tables"


class ChangeType(Flag):
    """Kinds of change a subscriber can ask for."""

    INSERT = auto()
    UPDATE = auto()
    DELETE = auto()
    ALL = INSERT | UPDATE | DELETE


@dataclass(frozen=True)
class ChangeNotification:
    """A single change to one record.

    Attributes:
        table: Logical table name (orders, menu_items, restaurant_tables)
        change_type: What happened to the record
        key: Primary key of the changed record
    """

    table: str
    change_type: ChangeType
    key: dict[str, Any] = field(default_factory=dict)


ChangeCallback = Callable[[ChangeNotification], None]


class Subscription:
    """Handle returned by ChangeFeed.subscribe."""

    def __init__(
        self, feed: "ChangeFeed", table: str, event_mask: ChangeType, callback: ChangeCallback
    ) -> None:
        self.feed = feed
        self.table = table
        self.event_mask = event_mask
        self.callback = callback
        self.active = True

    def matches(self, notification: ChangeNotification) -> bool:
        return (
            self.active
            and notification.table == self.table
            and bool(notification.change_type & self.event_mask)
        )

    def dispose(self) -> None:
        """Stop receiving notifications. Safe to call more than once."""
        if self.active:
            self.active = False
            self.feed._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.dispose()


class ChangeFeed:
    """Observer registry keyed by table name."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def subscribe(
        self,
        table: str,
        event_mask: ChangeType,
        callback: ChangeCallback,
    ) -> Subscription:
        """Register a callback for changes to a table.

        Args:
            table: Logical table name
            event_mask: Change types to deliver
            callback: Called with each matching notification

        Returns:
            Subscription: Disposable handle
        """
        subscription = Subscription(self, table, event_mask, callback)
        self._subscriptions.append(subscription)
        logger.debug(f"Subscribed to {table} changes ({event_mask})")
        return subscription

    def publish(self, notification: ChangeNotification) -> int:
        """Deliver a notification to every matching subscriber.

        A failing callback is logged and does not stop delivery to the rest.

        Returns:
            int: Number of callbacks invoked successfully
        """
        delivered = 0
        for subscription in list(self._subscriptions):
            if not subscription.matches(notification):
                continue
            try:
                subscription.callback(notification)
                delivered += 1
            except Exception as e:
                logger.error(
                    f"Change subscriber for {notification.table} failed: {e}"
                )  # pragma: no cover
        return delivered

    def subscriber_count(self, table: str | None = None) -> int:
        if table is None:
            return len(self._subscriptions)
        return sum(1 for s in self._subscriptions if s.table == table)

    def close(self) -> None:
        """Dispose every subscription."""
        for subscription in list(self._subscriptions):
            subscription.dispose()

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

"""Locally held snapshot of a table that refreshes on every change."""

import logging
import time
from collections.abc import Callable
from typing import Generic, TypeVar

from table_ordering_service.repositories.change_feed import (
    ChangeFeed,
    ChangeNotification,
    ChangeType,
    Subscription,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LiveCollection(Generic[T]):
    """A collection kept current by subscribe-and-refetch.

    Every matching change notification re-runs the fetch function and replaces
    the snapshot wholesale; deltas are never merged. Writes made by other
    processes never reach this feed, so with max_age_seconds set current()
    also refetches a snapshot older than that.
    """

    def __init__(
        self,
        change_feed: ChangeFeed,
        table: str,
        fetch: Callable[[], list[T]],
        event_mask: ChangeType = ChangeType.ALL,
        max_age_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize and load the first snapshot.

        Args:
            change_feed: Feed to subscribe to
            table: Logical table to watch
            fetch: Returns the authoritative current contents
            event_mask: Change types that trigger a refresh
            max_age_seconds: Age after which current() refetches, None for never
            clock: Monotonic time source in seconds
        """
        self.table = table
        self.fetch = fetch
        self.max_age_seconds = max_age_seconds
        self._clock = clock
        self.refreshed_at = 0.0
        self.items: list[T] = []
        self.refresh_count = 0
        self.refresh()
        self.subscription: Subscription | None = change_feed.subscribe(
            table, event_mask, self._on_change
        )

    def refresh(self) -> list[T]:
        """Fetch and replace the local snapshot."""
        self.items = list(self.fetch())
        self.refresh_count += 1
        self.refreshed_at = self._clock()
        return self.items

    @property
    def is_stale(self) -> bool:
        if self.max_age_seconds is None:
            return False
        return self._clock() - self.refreshed_at >= self.max_age_seconds

    def current(self) -> list[T]:
        """The snapshot, refetched first if it is older than max_age_seconds."""
        if self.is_stale:
            logger.debug(f"Snapshot of {self.table} is stale, refreshing")
            self.refresh()
        return self.items

    def close(self) -> None:
        if self.subscription is not None:
            self.subscription.dispose()
            self.subscription = None

    def _on_change(self, notification: ChangeNotification) -> None:
        logger.debug(f"Refreshing {self.table} after {notification.change_type}")
        self.refresh()

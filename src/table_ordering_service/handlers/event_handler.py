"""DynamoDB Streams handler feeding the in-process change feed."""

import logging
from decimal import Decimal
from typing import Any

from boto3.dynamodb.types import TypeDeserializer
from pydantic import BaseModel, Field, ValidationError

from table_ordering_service.repositories.change_feed import (
    ChangeFeed,
    ChangeNotification,
    ChangeType,
)

logger = logging.getLogger(__name__)

STREAM_EVENT_TYPES: dict[str, ChangeType] = {
    "INSERT": ChangeType.INSERT,
    "MODIFY": ChangeType.UPDATE,
    "REMOVE": ChangeType.DELETE,
}

_deserializer = TypeDeserializer()


class StreamRecord(BaseModel):
    """The parts of a DynamoDB Streams record the change feed needs.

    Attributes:
        event_name: INSERT, MODIFY or REMOVE
        event_source_arn: Stream ARN, which embeds the physical table name
        keys: Primary key of the changed item in DynamoDB JSON
    """

    event_name: str = Field(..., alias="eventName")
    event_source_arn: str = Field(..., alias="eventSourceARN")
    keys: dict[str, Any] = Field(default_factory=dict)


def table_name_from_arn(arn: str) -> str | None:
    """Extract the table name from arn:aws:dynamodb:<region>:<account>:table/<name>/stream/<ts>."""
    _, _, resource = arn.partition(":table/")
    name = resource.split("/", 1)[0]
    return name or None


def parse_stream_record(record: dict[str, Any]) -> StreamRecord | None:
    """Parse a raw stream record.

    Returns:
        StreamRecord if parsing succeeds, None otherwise
    """
    try:
        return StreamRecord(
            eventName=record.get("eventName", ""),
            eventSourceARN=record.get("eventSourceARN", ""),
            keys=record.get("dynamodb", {}).get("Keys", {}),
        )
    except (ValidationError, TypeError, AttributeError) as e:
        logger.error(f"Failed to parse stream record: {e}")  # pragma: no cover
        return None


def deserialize_keys(keys: dict[str, Any]) -> dict[str, Any]:
    """Turn DynamoDB JSON key attributes into plain values."""
    values = {name: _deserializer.deserialize(value) for name, value in keys.items()}
    # Numeric keys arrive as Decimal; the repositories key on int
    return {
        name: int(value) if isinstance(value, Decimal) and value == value.to_integral_value() else value
        for name, value in values.items()
    }


class ChangeEventHandler:
    """Translates DynamoDB Streams records into change notifications.

    Records from the orders, menu items and tables streams are published on
    the change feed under their logical table names, so live collections in
    this process refresh after writes made anywhere.
    """

    def __init__(self, change_feed: ChangeFeed, table_names: dict[str, str]) -> None:
        """Initialize the event handler.

        Args:
            change_feed: Feed to publish notifications on
            table_names: Physical DynamoDB table name -> logical table name
        """
        self.change_feed = change_feed
        self.table_names = table_names

    def to_notification(self, record: StreamRecord) -> ChangeNotification | None:
        """Map a stream record onto the change feed, or None if it is not ours."""
        change_type = STREAM_EVENT_TYPES.get(record.event_name)
        if change_type is None:
            logger.warning(f"Unsupported stream event: {record.event_name}")
            return None

        physical = table_name_from_arn(record.event_source_arn)
        table = self.table_names.get(physical or "")
        if table is None:
            logger.warning(f"Stream record from unknown table: {physical}")
            return None

        return ChangeNotification(
            table=table, change_type=change_type, key=deserialize_keys(record.keys)
        )

    def handle_stream_event(self, event: dict[str, Any], _context: Any = None) -> dict[str, Any]:
        """Lambda handler for DynamoDB Streams batches.

        Args:
            event: Stream event with a Records list
            _context: Lambda context object (unused)

        Returns:
            Dictionary with statusCode and body for Lambda response
        """
        records = event.get("Records", [])
        published = 0
        skipped = 0

        for raw in records:
            record = parse_stream_record(raw)
            notification = self.to_notification(record) if record else None
            if notification is None:
                skipped += 1
                continue
            self.change_feed.publish(notification)
            published += 1

        logger.info(f"Processed {len(records)} stream record(s): {published} published, {skipped} skipped")

        if records and not published:
            return {"statusCode": 400, "body": "No usable stream records"}

        return {"statusCode": 200, "body": f"Published {published} change(s)"}

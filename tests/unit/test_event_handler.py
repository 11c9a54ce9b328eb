"""Unit tests for the DynamoDB Streams event handler."""

from typing import Any

import pytest

from table_ordering_service.handlers.event_handler import (
    ChangeEventHandler,
    deserialize_keys,
    parse_stream_record,
    table_name_from_arn,
)
from table_ordering_service.repositories.change_feed import (
    MENU_ITEMS_TABLE,
    ORDERS_TABLE,
    RESTAURANT_TABLES_TABLE,
    ChangeFeed,
    ChangeNotification,
    ChangeType,
)
from table_ordering_service.services.live_collection import LiveCollection

STREAM_ARN = "arn:aws:dynamodb:us-east-1:123456789012:table/{name}/stream/2024-01-15T20:30:00.000"


def _record(event_name: str, table: str, keys: dict[str, Any]) -> dict[str, Any]:
    return {
        "eventName": event_name,
        "eventSource": "aws:dynamodb",
        "eventSourceARN": STREAM_ARN.format(name=table),
        "dynamodb": {"Keys": keys},
    }


@pytest.fixture
def change_feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def received(change_feed: ChangeFeed) -> list[ChangeNotification]:
    notifications: list[ChangeNotification] = []
    for table in (ORDERS_TABLE, MENU_ITEMS_TABLE, RESTAURANT_TABLES_TABLE):
        change_feed.subscribe(table, ChangeType.ALL, notifications.append)
    return notifications


@pytest.fixture
def handler(change_feed: ChangeFeed) -> ChangeEventHandler:
    return ChangeEventHandler(
        change_feed=change_feed,
        table_names={
            "orders": ORDERS_TABLE,
            "prod-menu-items": MENU_ITEMS_TABLE,
            "prod-tables": RESTAURANT_TABLES_TABLE,
        },
    )


@pytest.mark.unit
class TestParsing:
    """Test suite for stream record parsing."""

    def test_table_name_from_arn(self) -> None:
        assert table_name_from_arn(STREAM_ARN.format(name="prod-orders")) == "prod-orders"

    def test_table_name_from_bad_arn(self) -> None:
        assert table_name_from_arn("not-an-arn") is None

    def test_parse_stream_record(self, mock_stream_event: dict[str, Any]) -> None:
        record = parse_stream_record(mock_stream_event["Records"][0])

        assert record is not None
        assert record.event_name == "INSERT"
        assert record.keys == {"receipt_id": {"S": "NX-7KQ2MZ"}}

    def test_parse_malformed_record(self) -> None:
        assert parse_stream_record({"eventName": "INSERT", "dynamodb": "garbage"}) is None

    def test_deserialize_keys(self) -> None:
        keys = deserialize_keys({"table_number": {"N": "3"}, "receipt_id": {"S": "NX-7KQ2MZ"}})

        assert keys == {"table_number": 3, "receipt_id": "NX-7KQ2MZ"}
        assert isinstance(keys["table_number"], int)


@pytest.mark.unit
class TestChangeEventHandler:
    """Test suite for publishing stream records on the change feed."""

    def test_insert_is_published(
        self,
        handler: ChangeEventHandler,
        received: list[ChangeNotification],
        mock_stream_event: dict[str, Any],
    ) -> None:
        result = handler.handle_stream_event(mock_stream_event)

        assert result == {"statusCode": 200, "body": "Published 1 change(s)"}
        assert received == [
            ChangeNotification(ORDERS_TABLE, ChangeType.INSERT, {"receipt_id": "NX-7KQ2MZ"})
        ]

    def test_physical_names_map_to_logical_tables(
        self, handler: ChangeEventHandler, received: list[ChangeNotification]
    ) -> None:
        event = {
            "Records": [
                _record("MODIFY", "prod-tables", {"table_number": {"N": "3"}}),
                _record("REMOVE", "prod-menu-items", {"id": {"N": "4"}}),
            ]
        }

        handler.handle_stream_event(event)

        assert received == [
            ChangeNotification(RESTAURANT_TABLES_TABLE, ChangeType.UPDATE, {"table_number": 3}),
            ChangeNotification(MENU_ITEMS_TABLE, ChangeType.DELETE, {"id": 4}),
        ]

    def test_unknown_table_is_skipped(
        self, handler: ChangeEventHandler, received: list[ChangeNotification]
    ) -> None:
        event = {
            "Records": [
                _record("INSERT", "other-table", {"id": {"N": "1"}}),
                _record("INSERT", "orders", {"receipt_id": {"S": "NX-AAAAAA"}}),
            ]
        }

        result = handler.handle_stream_event(event)

        assert result["statusCode"] == 200
        assert len(received) == 1

    def test_batch_without_usable_records(
        self, handler: ChangeEventHandler, received: list[ChangeNotification]
    ) -> None:
        event = {"Records": [_record("UNKNOWN", "orders", {"receipt_id": {"S": "NX-AAAAAA"}})]}

        result = handler.handle_stream_event(event)

        assert result == {"statusCode": 400, "body": "No usable stream records"}
        assert received == []

    def test_empty_batch(self, handler: ChangeEventHandler) -> None:
        assert handler.handle_stream_event({"Records": []}) == {
            "statusCode": 200,
            "body": "Published 0 change(s)",
        }

    def test_stream_change_refreshes_live_collection(
        self, handler: ChangeEventHandler, change_feed: ChangeFeed, mock_stream_event: dict[str, Any]
    ) -> None:
        snapshots = [["NX-OLD001"], ["NX-OLD001", "NX-7KQ2MZ"]]
        live = LiveCollection(change_feed, ORDERS_TABLE, lambda: snapshots.pop(0))

        handler.handle_stream_event(mock_stream_event)

        assert live.items == ["NX-OLD001", "NX-7KQ2MZ"]
        assert live.refresh_count == 2

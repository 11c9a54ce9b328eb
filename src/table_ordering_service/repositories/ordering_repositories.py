"""DynamoDB repository classes for orders, menu items and tables.

These repositories provide CRUD operations against the three ordering tables.
Expected failures are reported with simple return values (None/False/[])
rather than exceptions; the service layer decides what to tell the user.
Every successful write is published on the change feed.
"""

import logging
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from botocore.exceptions import ClientError
from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource, Table

from table_ordering_service.models.menu_models import MenuItem, RestaurantTable
from table_ordering_service.models.order_models import Order
from table_ordering_service.repositories.change_feed import (
    MENU_ITEMS_TABLE,
    ORDERS_TABLE,
    RESTAURANT_TABLES_TABLE,
    ChangeFeed,
    ChangeNotification,
    ChangeType,
)

logger = logging.getLogger(__name__)


def scan_all(table: Table, **kwargs: Any) -> list[dict[str, Any]]:
    """Scan a table following pagination.

    Args:
        table: DynamoDB table resource
        **kwargs: Extra arguments passed to every scan call

    Returns:
        list: All items returned by the scan
    """
    items: list[dict[str, Any]] = []
    response = table.scan(**kwargs)
    items.extend(response.get("Items", []))

    while "LastEvaluatedKey" in response:
        response = table.scan(ExclusiveStartKey=response["LastEvaluatedKey"], **kwargs)
        items.extend(response.get("Items", []))

    return items


def build_update(fields: dict[str, Any]) -> dict[str, Any]:
    """Build update_item keyword arguments that SET the given fields.

    Attribute names are always aliased so reserved words such as "status"
    are safe. Enums are stored by value and datetimes as ISO-8601.
    """
    names: dict[str, str] = {}
    values: dict[str, Any] = {}
    assignments: list[str] = []

    for index, (name, value) in enumerate(fields.items()):
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = value.isoformat()
        names[f"#f{index}"] = name
        values[f":v{index}"] = value
        assignments.append(f"#f{index} = :v{index}")

    return {
        "UpdateExpression": "SET " + ", ".join(assignments),
        "ExpressionAttributeNames": names,
        "ExpressionAttributeValues": values,
    }


def next_identifier(table: Table, attribute: str) -> int:
    """Return max(attribute) + 1 over the table, or 1 when empty.

    Raises:
        ClientError: If the scan fails
    """
    items = scan_all(
        table,
        ProjectionExpression="#a",
        ExpressionAttributeNames={"#a": attribute},
    )
    existing = [int(item[attribute]) for item in items if attribute in item]
    return max(existing, default=0) + 1


class OrderRepository:
    """Repository for order CRUD operations.

    Manages order records in DynamoDB with receipt_id as partition key.
    """

    def __init__(
        self,
        dynamodb_resource: DynamoDBServiceResource,
        table_name: str,
        change_feed: ChangeFeed | None = None,
    ) -> None:
        """Initialize repository.

        Args:
            dynamodb_resource: Boto3 DynamoDB resource
            table_name: Name of the DynamoDB table
            change_feed: Feed to publish successful writes on
        """
        self.dynamodb = dynamodb_resource
        self.table_name = table_name
        self.table: Table = dynamodb_resource.Table(table_name)
        self.change_feed = change_feed

    def get_order(self, receipt_id: str) -> Order | None:
        """Retrieve an order by receipt code.

        Args:
            receipt_id: Receipt code (e.g. NX-7KQ2MZ)

        Returns:
            Order if found, None otherwise
        """
        try:
            response = self.table.get_item(Key={"receipt_id": receipt_id})

            if "Item" not in response:
                return None

            return Order.from_dynamodb_item(response["Item"])

        except ClientError as e:
            logger.error(f"Failed to get order {receipt_id}: {e}")  # pragma: no cover
            return None

    def receipt_exists(self, receipt_id: str) -> bool:
        """Check whether a receipt code is already used.

        Lookup failures count as "exists" so a new code is tried instead.
        """
        try:
            response = self.table.get_item(
                Key={"receipt_id": receipt_id}, ProjectionExpression="receipt_id"
            )
            return "Item" in response

        except ClientError as e:
            logger.error(f"Failed to check receipt code {receipt_id}: {e}")  # pragma: no cover
            return True

    def list_orders(self) -> list[Order]:
        """List all orders, newest first.

        Returns:
            list: List of Order objects (empty list if none found)
        """
        try:
            orders = [Order.from_dynamodb_item(item) for item in scan_all(self.table)]
            return sorted(orders, key=lambda o: o.created_at, reverse=True)

        except ClientError as e:
            logger.error(f"Failed to list orders: {e}")  # pragma: no cover
            return []

    def next_order_id(self) -> int | None:
        """Allocate the next numeric order id.

        Returns:
            int if the scan succeeded, None otherwise
        """
        try:
            return next_identifier(self.table, "id")

        except ClientError as e:
            logger.error(f"Failed to allocate order id: {e}")  # pragma: no cover
            return None

    def create_order(self, order: Order) -> bool:
        """Insert a new order. Fails if the receipt code is already taken.

        Args:
            order: Order to insert

        Returns:
            bool: True if insert succeeded, False otherwise
        """
        try:
            self.table.put_item(
                Item=order.to_dynamodb_item(),
                ConditionExpression="attribute_not_exists(receipt_id)",
            )

        except ClientError as e:
            logger.error(f"Failed to create order {order.receipt_id}: {e}")  # pragma: no cover
            return False

        self._publish(ChangeType.INSERT, order.receipt_id)
        return True

    def update_order(self, receipt_id: str, fields: dict[str, Any]) -> bool:
        """Set fields on an existing order and bump updated_at.

        Args:
            receipt_id: Receipt code of the order
            fields: Attribute names mapped to new values

        Returns:
            bool: True if update succeeded, False otherwise
        """
        values = {**fields, "updated_at": datetime.now(UTC)}
        try:
            self.table.update_item(
                Key={"receipt_id": receipt_id},
                ConditionExpression="attribute_exists(receipt_id)",
                **build_update(values),
            )

        except ClientError as e:
            logger.error(f"Failed to update order {receipt_id}: {e}")  # pragma: no cover
            return False

        self._publish(ChangeType.UPDATE, receipt_id)
        return True

    def _publish(self, change_type: ChangeType, receipt_id: str) -> None:
        if self.change_feed is not None:
            self.change_feed.publish(
                ChangeNotification(ORDERS_TABLE, change_type, {"receipt_id": receipt_id})
            )


class MenuItemRepository:
    """Repository for menu item CRUD operations.

    Manages menu item records in DynamoDB with id as partition key.
    """

    def __init__(
        self,
        dynamodb_resource: DynamoDBServiceResource,
        table_name: str,
        change_feed: ChangeFeed | None = None,
    ) -> None:
        """Initialize repository.

        Args:
            dynamodb_resource: Boto3 DynamoDB resource
            table_name: Name of the DynamoDB table
            change_feed: Feed to publish successful writes on
        """
        self.dynamodb = dynamodb_resource
        self.table_name = table_name
        self.table: Table = dynamodb_resource.Table(table_name)
        self.change_feed = change_feed

    def get_item(self, item_id: int) -> MenuItem | None:
        """Retrieve a menu item by id.

        Returns:
            MenuItem if found, None otherwise
        """
        try:
            response = self.table.get_item(Key={"id": item_id})

            if "Item" not in response:
                return None

            return MenuItem.from_dynamodb_item(response["Item"])

        except ClientError as e:
            logger.error(f"Failed to get menu item {item_id}: {e}")  # pragma: no cover
            return None

    def list_items(self, available_only: bool = False) -> list[MenuItem]:
        """List menu items ordered by category, then name.

        Args:
            available_only: Only return items customers may order

        Returns:
            list: List of MenuItem objects (empty list if none found)
        """
        kwargs: dict[str, Any] = {}
        if available_only:
            kwargs = {
                "FilterExpression": "available = :available",
                "ExpressionAttributeValues": {":available": True},
            }

        try:
            items = [MenuItem.from_dynamodb_item(item) for item in scan_all(self.table, **kwargs)]
            return sorted(items, key=lambda i: (i.category, i.name, i.id))

        except ClientError as e:
            logger.error(f"Failed to list menu items: {e}")  # pragma: no cover
            return []

    def next_item_id(self) -> int | None:
        """Allocate the next numeric menu item id."""
        try:
            return next_identifier(self.table, "id")

        except ClientError as e:
            logger.error(f"Failed to allocate menu item id: {e}")  # pragma: no cover
            return None

    def save_item(self, item: MenuItem, is_new: bool = False) -> bool:
        """Insert or replace a menu item.

        Args:
            item: MenuItem to save
            is_new: Whether this is an insert (affects the change notification)

        Returns:
            bool: True if save succeeded, False otherwise
        """
        try:
            self.table.put_item(Item=item.to_dynamodb_item())

        except ClientError as e:
            logger.error(f"Failed to save menu item {item.id}: {e}")  # pragma: no cover
            return False

        self._publish(ChangeType.INSERT if is_new else ChangeType.UPDATE, item.id)
        return True

    def delete_item(self, item_id: int) -> bool:
        """Delete a menu item.

        Returns:
            bool: True if delete succeeded, False otherwise
        """
        try:
            self.table.delete_item(Key={"id": item_id})

        except ClientError as e:
            logger.error(f"Failed to delete menu item {item_id}: {e}")  # pragma: no cover
            return False

        self._publish(ChangeType.DELETE, item_id)
        return True

    def _publish(self, change_type: ChangeType, item_id: int) -> None:
        if self.change_feed is not None:
            self.change_feed.publish(ChangeNotification(MENU_ITEMS_TABLE, change_type, {"id": item_id}))


class TableRepository:
    """Repository for restaurant table CRUD operations.

    Manages table records in DynamoDB with table_number as partition key.
    """

    def __init__(
        self,
        dynamodb_resource: DynamoDBServiceResource,
        table_name: str,
        change_feed: ChangeFeed | None = None,
    ) -> None:
        """Initialize repository.

        Args:
            dynamodb_resource: Boto3 DynamoDB resource
            table_name: Name of the DynamoDB table
            change_feed: Feed to publish successful writes on
        """
        self.dynamodb = dynamodb_resource
        self.table_name = table_name
        self.table: Table = dynamodb_resource.Table(table_name)
        self.change_feed = change_feed

    def get_table(self, table_number: int) -> RestaurantTable | None:
        """Retrieve a table by its number.

        Returns:
            RestaurantTable if found, None otherwise
        """
        try:
            response = self.table.get_item(Key={"table_number": table_number})

            if "Item" not in response:
                return None

            return RestaurantTable.from_dynamodb_item(response["Item"])

        except ClientError as e:
            logger.error(f"Failed to get table {table_number}: {e}")  # pragma: no cover
            return None

    def list_tables(self) -> list[RestaurantTable]:
        """List all tables ordered by table number.

        Returns:
            list: List of RestaurantTable objects (empty list if none found)
        """
        try:
            tables = [RestaurantTable.from_dynamodb_item(item) for item in scan_all(self.table)]
            return sorted(tables, key=lambda t: t.table_number)

        except ClientError as e:
            logger.error(f"Failed to list tables: {e}")  # pragma: no cover
            return []

    def create_table(self, table: RestaurantTable) -> bool:
        """Insert a new table. Fails if the number is already taken.

        Returns:
            bool: True if insert succeeded, False otherwise
        """
        try:
            self.table.put_item(
                Item=table.to_dynamodb_item(),
                ConditionExpression="attribute_not_exists(table_number)",
            )

        except ClientError as e:
            logger.error(f"Failed to create table {table.table_number}: {e}")  # pragma: no cover
            return False

        self._publish(ChangeType.INSERT, table.table_number)
        return True

    def update_table(self, table_number: int, fields: dict[str, Any]) -> bool:
        """Set fields on an existing table and bump updated_at.

        Returns:
            bool: True if update succeeded, False otherwise
        """
        values = {**fields, "updated_at": datetime.now(UTC)}
        try:
            self.table.update_item(
                Key={"table_number": table_number},
                ConditionExpression="attribute_exists(table_number)",
                **build_update(values),
            )

        except ClientError as e:
            logger.error(f"Failed to update table {table_number}: {e}")  # pragma: no cover
            return False

        self._publish(ChangeType.UPDATE, table_number)
        return True

    def delete_table(self, table_number: int) -> bool:
        """Delete a table.

        Returns:
            bool: True if delete succeeded, False otherwise
        """
        try:
            self.table.delete_item(Key={"table_number": table_number})

        except ClientError as e:
            logger.error(f"Failed to delete table {table_number}: {e}")  # pragma: no cover
            return False

        self._publish(ChangeType.DELETE, table_number)
        return True

    def _publish(self, change_type: ChangeType, table_number: int) -> None:
        if self.change_feed is not None:
            self.change_feed.publish(
                ChangeNotification(
                    RESTAURANT_TABLES_TABLE, change_type, {"table_number": table_number}
                )
            )

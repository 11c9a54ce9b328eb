"""Shared pytest fixtures and configuration for all tests."""

import os

# Must be set before main is imported so no DynamoDB resource is created.
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import UTC, datetime  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Any  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402

from table_ordering_service.models.menu_models import (  # noqa: E402
    MenuItem,
    RestaurantTable,
    TableStatusEnum,
)
from table_ordering_service.models.order_models import (  # noqa: E402
    Order,
    OrderItem,
    OrderStatusEnum,
    PaymentStatusEnum,
    PaymentTypeEnum,
)


@pytest.fixture
def mojito() -> MenuItem:
    """Fixture providing the standard test cocktail."""
    return MenuItem(id=1, name="Mojito", price=Decimal("9.50"), category="Cocktails")


@pytest.fixture
def mock_menu_items(mojito: MenuItem) -> list[MenuItem]:
    """Fixture providing sample menu items for testing."""
    return [
        mojito,
        MenuItem(id=2, name="Nachos", price=Decimal("7.25"), category="Snacks"),
        MenuItem(id=3, name="IPA", price=Decimal("6.00"), category="Beer"),
        MenuItem(id=4, name="Old Fashioned", price=Decimal("11.00"), category="Cocktails", available=False),
    ]


@pytest.fixture
def mock_order() -> Order:
    """Fixture providing a pending, unpaid order at table 3."""
    now = datetime(2024, 1, 15, 20, 30, tzinfo=UTC)
    return Order(
        id=7,
        receipt_id="NX-7KQ2MZ",
        table_number=3,
        items=[
            OrderItem(id=1, name="Mojito", price=Decimal("9.50"), category="Cocktails", quantity=2)
        ],
        subtotal=Decimal("19.00"),
        tip_amount=Decimal("0.00"),
        total=Decimal("19.00"),
        status=OrderStatusEnum.PENDING,
        payment_status=PaymentStatusEnum.UNPAID,
        payment_type=PaymentTypeEnum.DIRECT_CASH,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def mock_order_item(mock_order: Order) -> dict[str, Any]:
    """Fixture providing mock_order as a DynamoDB item."""
    return mock_order.to_dynamodb_item()


@pytest.fixture
def mock_table() -> RestaurantTable:
    """Fixture providing an available table 3."""
    return RestaurantTable(id=3, table_number=3, seats=4, status=TableStatusEnum.AVAILABLE)


@pytest.fixture
def mock_dynamodb() -> MagicMock:
    """Create a mock DynamoDB resource."""
    return MagicMock()


@pytest.fixture
def mock_stream_event() -> dict[str, Any]:
    """Fixture providing a DynamoDB Streams batch with one new order."""
    return {
        "Records": [
            {
                "eventID": "1",
                "eventName": "INSERT",
                "eventSource": "aws:dynamodb",
                "awsRegion": "us-east-1",
                "eventSourceARN": (
                    "arn:aws:dynamodb:us-east-1:123456789012:table/orders/stream/2024-01-15T20:30:00.000"
                ),
                "dynamodb": {
                    "Keys": {"receipt_id": {"S": "NX-7KQ2MZ"}},
                    "StreamViewType": "KEYS_ONLY",
                },
            }
        ]
    }

"""Menu and dining-table models.

These models represent the staff-managed inventory: menu items offered to
customers and the physical tables customers order from.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MenuItem(BaseModel):
    """Menu item model."""

    model_config = ConfigDict(json_encoders={Decimal: str})

    id: int = Field(..., description="Unique identifier for the menu item")
    name: str = Field(..., description="Item name", min_length=1)
    price: Decimal = Field(..., description="Item price", ge=0)
    category: str = Field(..., description="Free-text category label", min_length=1)
    available: bool = Field(default=True, description="Whether customers can see the item")
    created_at: datetime | None = Field(None, description="Creation timestamp")
    updated_at: datetime | None = Field(None, description="Last update timestamp")

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Convert to DynamoDB item format.

        Returns:
            dict: DynamoDB-compatible representation
        """
        item: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "category": self.category,
            "available": self.available,
        }

        if self.created_at is not None:
            item["created_at"] = self.created_at.isoformat()

        if self.updated_at is not None:
            item["updated_at"] = self.updated_at.isoformat()

        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "MenuItem":
        """Create MenuItem from DynamoDB item.

        Args:
            item: DynamoDB item dictionary

        Returns:
            MenuItem: Parsed model instance
        """
        data: dict[str, Any] = {
            "id": int(item["id"]),
            "name": item["name"],
            "price": Decimal(str(item["price"])),
            "category": item["category"],
            "available": item.get("available", True),
        }

        if "created_at" in item:
            data["created_at"] = datetime.fromisoformat(item["created_at"])

        if "updated_at" in item:
            data["updated_at"] = datetime.fromisoformat(item["updated_at"])

        return cls(**data)


class TableStatusEnum(str, Enum):
    """Enumeration of table occupancy states."""

    AVAILABLE = "available"
    BOOKED = "booked"
    OCCUPIED = "occupied"


class RestaurantTable(BaseModel):
    """A dining table customers order from.

    Stored in DynamoDB with table_number as partition key. A table links to at
    most one active order through current_order_id (a receipt code).
    """

    id: int = Field(..., description="Unique identifier for the table")
    table_number: int = Field(..., description="Customer-facing table number", gt=0)
    seats: int | None = Field(None, description="Number of seats", ge=1)
    status: TableStatusEnum = Field(
        default=TableStatusEnum.AVAILABLE, description="Current occupancy status"
    )
    current_order_id: str | None = Field(None, description="Receipt code of the active order")
    updated_at: datetime | None = Field(None, description="Last update timestamp")

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Convert to DynamoDB item format.

        Returns:
            dict: DynamoDB-compatible representation
        """
        item: dict[str, Any] = {
            "id": self.id,
            "table_number": self.table_number,
            "status": self.status.value,
            "current_order_id": self.current_order_id,
        }

        if self.seats is not None:
            item["seats"] = self.seats

        if self.updated_at is not None:
            item["updated_at"] = self.updated_at.isoformat()

        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "RestaurantTable":
        """Create RestaurantTable from DynamoDB item.

        Args:
            item: DynamoDB item dictionary

        Returns:
            RestaurantTable: Parsed model instance
        """
        data: dict[str, Any] = {
            "id": int(item["id"]),
            "table_number": int(item["table_number"]),
            "status": TableStatusEnum(item.get("status", TableStatusEnum.AVAILABLE.value)),
            "current_order_id": item.get("current_order_id"),
        }

        if item.get("seats") is not None:
            data["seats"] = int(item["seats"])

        if "updated_at" in item:
            data["updated_at"] = datetime.fromisoformat(item["updated_at"])

        return cls(**data)

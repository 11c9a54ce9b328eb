"""Order models.

These models represent placed orders, their line items and the enumerated
lifecycle and payment states stored in DynamoDB.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OrderStatusEnum(str, Enum):
    """Enumeration of order lifecycle states."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    SERVED = "served"
    PAID = "paid"
    CANCELLED = "cancelled"


class PaymentMethodEnum(str, Enum):
    """How an order was settled."""

    CASH = "cash"
    CARD = "card"
    ONLINE = "online"


class PaymentStatusEnum(str, Enum):
    """Whether an order has been settled."""

    UNPAID = "unpaid"
    PAID = "paid"


class PaymentTypeEnum(str, Enum):
    """Which channel the customer chose to pay through."""

    DIRECT_CASH = "direct_cash"
    CHATBOT_PAYMENT = "chatbot_payment"


class OrderItem(BaseModel):
    """A cart or order line.

    Name, price and category are a snapshot taken when the item was added, so
    later menu edits never change placed orders.
    """

    model_config = ConfigDict(json_encoders={Decimal: str})

    id: int = Field(..., description="Menu item identifier")
    name: str = Field(..., description="Item name at time of selection")
    price: Decimal = Field(..., description="Unit price at time of selection", ge=0)
    category: str = Field(..., description="Category at time of selection")
    quantity: int = Field(default=1, description="Number of units", ge=1)

    @property
    def line_total(self) -> Decimal:
        """Price multiplied by quantity."""
        return self.price * self.quantity

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Convert to a nested DynamoDB map."""
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "category": self.category,
            "quantity": self.quantity,
        }

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "OrderItem":
        """Create OrderItem from a nested DynamoDB map."""
        return cls(
            id=int(item["id"]),
            name=item["name"],
            price=Decimal(str(item["price"])),
            category=item.get("category", ""),
            quantity=int(item.get("quantity", 1)),
        )


class Order(BaseModel):
    """A placed order.

    Created once in pending/unpaid state by the customer flow; afterwards only
    status, payment and feedback fields change. Stored in DynamoDB with
    receipt_id as partition key.
    """

    model_config = ConfigDict(json_encoders={Decimal: str})

    id: int = Field(..., description="Internal numeric identifier")
    receipt_id: str = Field(..., description="Customer-facing receipt code")
    table_number: int = Field(..., description="Table the order was placed from", gt=0)
    items: list[OrderItem] = Field(default_factory=list, description="Ordered lines")
    subtotal: Decimal = Field(..., description="Sum of line totals", ge=0)
    tip_amount: Decimal = Field(default=Decimal("0.00"), description="Gratuity", ge=0)
    total: Decimal = Field(..., description="Subtotal plus tip", ge=0)
    status: OrderStatusEnum = Field(default=OrderStatusEnum.PENDING)
    payment_method: PaymentMethodEnum | None = Field(None)
    payment_status: PaymentStatusEnum = Field(default=PaymentStatusEnum.UNPAID)
    payment_type: PaymentTypeEnum | None = Field(None)
    transaction_id: str | None = Field(None)
    customer_note: str | None = Field(None, description="Free-text feedback from the customer")
    rating: int | None = Field(None, description="Customer rating from 1 to 5")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    @field_validator("rating")
    @classmethod
    def validate_rating(cls, v: int | None) -> int | None:
        """Validate that rating is between 1 and 5."""
        if v is not None and not 1 <= v <= 5:
            raise ValueError("rating must be between 1 and 5")
        return v

    @property
    def is_active(self) -> bool:
        """Whether the order still occupies its table."""
        return self.status not in (OrderStatusEnum.PAID, OrderStatusEnum.CANCELLED)

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Convert to DynamoDB item format.

        Returns:
            dict: DynamoDB-compatible representation
        """
        item: dict[str, Any] = {
            "id": self.id,
            "receipt_id": self.receipt_id,
            "table_number": self.table_number,
            "items": [line.to_dynamodb_item() for line in self.items],
            "subtotal": self.subtotal,
            "tip_amount": self.tip_amount,
            "total": self.total,
            "status": self.status.value,
            "payment_status": self.payment_status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

        if self.payment_method is not None:
            item["payment_method"] = self.payment_method.value

        if self.payment_type is not None:
            item["payment_type"] = self.payment_type.value

        if self.transaction_id is not None:
            item["transaction_id"] = self.transaction_id

        if self.customer_note is not None:
            item["customer_note"] = self.customer_note

        if self.rating is not None:
            item["rating"] = self.rating

        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "Order":
        """Create Order from DynamoDB item.

        Args:
            item: DynamoDB item dictionary

        Returns:
            Order: Parsed model instance
        """
        data: dict[str, Any] = {
            "id": int(item["id"]),
            "receipt_id": item["receipt_id"],
            "table_number": int(item["table_number"]),
            "items": [OrderItem.from_dynamodb_item(line) for line in item.get("items", [])],
            "subtotal": Decimal(str(item["subtotal"])),
            "tip_amount": Decimal(str(item.get("tip_amount", "0.00"))),
            "total": Decimal(str(item["total"])),
            "status": OrderStatusEnum(item["status"]),
            "payment_status": PaymentStatusEnum(item.get("payment_status", "unpaid")),
            "created_at": datetime.fromisoformat(item["created_at"]),
            "updated_at": datetime.fromisoformat(item["updated_at"]),
        }

        if item.get("payment_method"):
            data["payment_method"] = PaymentMethodEnum(item["payment_method"])

        if item.get("payment_type"):
            data["payment_type"] = PaymentTypeEnum(item["payment_type"])

        if item.get("transaction_id"):
            data["transaction_id"] = item["transaction_id"]

        if item.get("customer_note") is not None:
            data["customer_note"] = item["customer_note"]

        if item.get("rating") is not None:
            data["rating"] = int(item["rating"])

        return cls(**data)

"""Staff-side order lifecycle: confirmation, status updates and payment."""

import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from table_ordering_service.models.menu_models import TableStatusEnum
from table_ordering_service.models.order_models import (
    Order,
    OrderStatusEnum,
    PaymentMethodEnum,
    PaymentStatusEnum,
)
from table_ordering_service.observability import traced
from table_ordering_service.observability.metrics import record_status_transition
from table_ordering_service.repositories.ordering_repositories import (
    OrderRepository,
    TableRepository,
)
from table_ordering_service.services.errors import NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)

KITCHEN_SEQUENCE: tuple[OrderStatusEnum, ...] = (
    OrderStatusEnum.PENDING,
    OrderStatusEnum.CONFIRMED,
    OrderStatusEnum.PREPARING,
    OrderStatusEnum.SERVED,
)


def is_intended_transition(current: OrderStatusEnum, target: OrderStatusEnum) -> bool:
    """Whether a status change follows the usual order lifecycle.

    pending -> confirmed -> preparing -> served moves one step at a time;
    paid is reachable from any non-cancelled status and cancelled from any
    non-paid status. Nothing enforces this; it only drives a warning.
    """
    if target == OrderStatusEnum.PAID:
        return current != OrderStatusEnum.CANCELLED
    if target == OrderStatusEnum.CANCELLED:
        return current != OrderStatusEnum.PAID
    if current in KITCHEN_SEQUENCE and target in KITCHEN_SEQUENCE:
        return KITCHEN_SEQUENCE.index(target) == KITCHEN_SEQUENCE.index(current) + 1
    return False


class DashboardStats(BaseModel):
    """Headline numbers for the admin dashboard."""

    total_orders: int
    revenue: Decimal
    pending_orders: int
    active_tables: int


class OrderAdminService:
    """Service for the admin order dashboard.

    Owns every order status and payment change after placement, together
    with the table occupancy those changes imply.
    """

    def __init__(self, order_repository: OrderRepository, table_repository: TableRepository) -> None:
        """Initialize the OrderAdminService.

        Args:
            order_repository: Repository for orders
            table_repository: Repository for tables linked to orders
        """
        self.order_repository = order_repository
        self.table_repository = table_repository

    async def list_orders(self) -> list[Order]:
        """All orders, newest first."""
        return self.order_repository.list_orders()

    async def find_by_receipt(self, receipt_id: str) -> Order:
        """Look up an order by receipt code, ignoring case and surrounding spaces.

        Raises:
            ValidationError: If no code was entered
            NotFoundError: If no order has that code
        """
        code = (receipt_id or "").strip()
        if not code:
            raise ValidationError("Please enter an Order ID")

        order = self.order_repository.get_order(code.upper())
        if order is None:
            raise NotFoundError(f"No order found with ID: {code}")
        return order

    @traced("update_order_status")
    async def update_status(self, receipt_id: str, status: OrderStatusEnum) -> Order:
        """Set any status on an order.

        Out-of-sequence changes are allowed and logged. Each status carries
        the same side effects as its dedicated action: confirmed books the
        table, paid records the payment and frees the table, cancelled frees
        the table.

        Raises:
            NotFoundError: If the order does not exist
            PersistenceError: If an update failed
        """
        order = await self.find_by_receipt(receipt_id)

        if not is_intended_transition(order.status, status):
            logger.warning(
                f"Order {order.receipt_id} moved out of sequence: "
                f"{order.status.value} -> {status.value}"
            )

        if status == OrderStatusEnum.CONFIRMED:
            return self._confirm(order)
        if status == OrderStatusEnum.PAID:
            return self._record_payment(order)
        if status == OrderStatusEnum.CANCELLED:
            return self._cancel(order)
        return self._update(order, {"status": status})

    @traced("confirm_order")
    async def confirm_order(self, receipt_id: str) -> Order:
        """Confirm an order and book its table.

        Raises:
            NotFoundError: If the order does not exist
            PersistenceError: If either update failed
        """
        order = await self.find_by_receipt(receipt_id)
        return self._confirm(order)

    @traced("record_payment")
    async def record_payment(
        self,
        receipt_id: str,
        payment_method: PaymentMethodEnum | None = None,
        transaction_id: str | None = None,
    ) -> Order:
        """Mark an order paid and release its table.

        The method defaults to the one already on the order (card for
        pay-now orders), otherwise cash.

        Raises:
            ValidationError: If the order was cancelled
            NotFoundError: If the order does not exist
            PersistenceError: If an update failed
        """
        order = await self.find_by_receipt(receipt_id)
        if order.status == OrderStatusEnum.CANCELLED:
            raise ValidationError(f"Order {order.receipt_id} was cancelled")
        return self._record_payment(order, payment_method, transaction_id)

    @traced("cancel_order")
    async def cancel_order(self, receipt_id: str) -> Order:
        """Cancel an unpaid order and release its table.

        Raises:
            ValidationError: If the order is already paid
            NotFoundError: If the order does not exist
            PersistenceError: If an update failed
        """
        order = await self.find_by_receipt(receipt_id)
        if order.payment_status == PaymentStatusEnum.PAID or order.status == OrderStatusEnum.PAID:
            raise ValidationError(f"Order {order.receipt_id} is already paid")
        return self._cancel(order)

    async def dashboard_stats(self) -> DashboardStats:
        """Compute order counts, paid revenue and tables with active orders."""
        orders = self.order_repository.list_orders()
        revenue = sum(
            (o.total for o in orders if o.payment_status == PaymentStatusEnum.PAID),
            Decimal("0.00"),
        )
        return DashboardStats(
            total_orders=len(orders),
            revenue=revenue,
            pending_orders=sum(1 for o in orders if o.status == OrderStatusEnum.PENDING),
            active_tables=len({o.table_number for o in orders if o.is_active}),
        )

    def _confirm(self, order: Order) -> Order:
        updated = self._update(order, {"status": OrderStatusEnum.CONFIRMED})

        table = self.table_repository.get_table(order.table_number)
        if table is None:
            logger.warning(f"Order {order.receipt_id} references unknown table {order.table_number}")
            return updated

        previous = table.current_order_id
        if previous not in (None, order.receipt_id):
            linked = self.order_repository.get_order(previous)
            if linked is not None and linked.is_active:
                logger.warning(
                    f"Table {table.table_number} is still held by active order {previous}; "
                    f"relinking to {order.receipt_id}"
                )

        if not self.table_repository.update_table(
            order.table_number,
            {"status": TableStatusEnum.BOOKED, "current_order_id": order.receipt_id},
        ):
            raise PersistenceError(f"Could not book table {order.table_number}")

        return updated

    def _record_payment(
        self,
        order: Order,
        payment_method: PaymentMethodEnum | None = None,
        transaction_id: str | None = None,
    ) -> Order:
        method = payment_method or order.payment_method or PaymentMethodEnum.CASH
        fields: dict[str, Any] = {
            "status": OrderStatusEnum.PAID,
            "payment_status": PaymentStatusEnum.PAID,
            "payment_method": method,
        }
        if transaction_id:
            fields["transaction_id"] = transaction_id

        updated = self._update(order, fields)
        self._release_table_for(updated)
        return updated

    def _cancel(self, order: Order) -> Order:
        updated = self._update(order, {"status": OrderStatusEnum.CANCELLED})
        self._release_table_for(updated)
        return updated

    def _update(self, order: Order, fields: dict[str, Any]) -> Order:
        if not self.order_repository.update_order(order.receipt_id, fields):
            raise PersistenceError(f"Could not update order {order.receipt_id}")

        if "status" in fields and fields["status"] != order.status:
            record_status_transition(order.status.value, fields["status"].value)

        logger.info(f"Order {order.receipt_id} updated: {sorted(fields)}")
        return order.model_copy(update={**fields, "updated_at": datetime.now(UTC)})

    def _release_table_for(self, order: Order) -> None:
        """Free the order's table if it is still linked to this order."""
        table = self.table_repository.get_table(order.table_number)
        if table is None:
            return
        if table.current_order_id not in (None, order.receipt_id):
            logger.info(
                f"Table {table.table_number} now belongs to {table.current_order_id}, "
                f"not releasing for {order.receipt_id}"
            )
            return
        if table.status == TableStatusEnum.AVAILABLE and table.current_order_id is None:
            return

        if not self.table_repository.update_table(
            table.table_number,
            {"status": TableStatusEnum.AVAILABLE, "current_order_id": None},
        ):
            raise PersistenceError(f"Could not release table {table.table_number}")

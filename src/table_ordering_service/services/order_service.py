"""Order submission and customer feedback."""

import logging
import uuid
from datetime import UTC, datetime
from decimal import Decimal

from table_ordering_service.models.order_models import (
    Order,
    OrderItem,
    OrderStatusEnum,
    PaymentMethodEnum,
    PaymentStatusEnum,
    PaymentTypeEnum,
)
from table_ordering_service.observability import traced
from table_ordering_service.observability.metrics import record_order_placed
from table_ordering_service.repositories.ordering_repositories import OrderRepository
from table_ordering_service.services.calculations import to_money
from table_ordering_service.services.conversation import ConversationFlow, PaymentChoice
from table_ordering_service.services.errors import (
    EmptyCartError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from table_ordering_service.services.receipt_codes import generate_unique_receipt_id
from table_ordering_service.services.staff_notifier import StaffNotifier

logger = logging.getLogger(__name__)


def generate_transaction_id() -> str:
    """Synthetic transaction id for the simulated pay-now path."""
    return f"TXN-{uuid.uuid4().hex[:12].upper()}"


def build_order(
    order_id: int,
    receipt_id: str,
    table_number: int,
    items: list[OrderItem],
    tip_amount: Decimal,
    payment_choice: PaymentChoice,
    now: datetime | None = None,
) -> Order:
    """Assemble a new pending order from cart lines and a payment choice.

    pay_later leaves the order unpaid with no payment method (settled in cash
    at the counter later); pay_now marks it paid by card with a synthetic
    transaction id.

    Raises:
        EmptyCartError: If there are no lines
    """
    if not items:
        raise EmptyCartError("Your cart is empty! Add some items first.")

    timestamp = now or datetime.now(UTC)
    subtotal = to_money(sum((line.line_total for line in items), Decimal("0")))
    tip = to_money(tip_amount)

    order = Order(
        id=order_id,
        receipt_id=receipt_id,
        table_number=table_number,
        items=[line.model_copy() for line in items],
        subtotal=subtotal,
        tip_amount=tip,
        total=to_money(subtotal + tip),
        status=OrderStatusEnum.PENDING,
        payment_status=PaymentStatusEnum.UNPAID,
        payment_type=PaymentTypeEnum.DIRECT_CASH,
        created_at=timestamp,
        updated_at=timestamp,
    )

    if payment_choice == PaymentChoice.PAY_NOW:
        order.payment_method = PaymentMethodEnum.CARD
        order.payment_status = PaymentStatusEnum.PAID
        order.payment_type = PaymentTypeEnum.CHATBOT_PAYMENT
        order.transaction_id = generate_transaction_id()

    return order


class OrderService:
    """Places orders from customer sessions and records feedback.

    This is the only place that creates orders. Staff notification is a
    separate best-effort step (notify_staff) run after the reply is sent.
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        notifier: StaffNotifier | None = None,
        receipt_attempts: int = 5,
    ) -> None:
        """Initialize the OrderService.

        Args:
            order_repository: Repository for storing orders
            notifier: Staff notifier for new orders
            receipt_attempts: Receipt code candidates to try before failing
        """
        self.order_repository = order_repository
        self.notifier = notifier
        self.receipt_attempts = receipt_attempts

    @traced("submit_order")
    async def submit_order(self, flow: ConversationFlow, payment_choice: PaymentChoice) -> Order:
        """Place the session's cart as an order.

        The flow is checked and moved to done with no await in between, so two
        concurrent submissions for one session store at most one order. On
        success the receipt is built from the in-memory order; staff are not
        notified here. On a storage failure the flow stays at the payment
        step with an error message so the customer can try again.

        Args:
            flow: The customer's conversation
            payment_choice: pay_later or pay_now

        Returns:
            Order: The stored order

        Raises:
            IllegalTransitionError: If the flow is not waiting for payment
            EmptyCartError: If the cart is empty
            PersistenceError: If the order could not be stored
        """
        flow.begin_payment(payment_choice)

        order_id = self.order_repository.next_order_id()
        if order_id is None:
            flow.fail_order("Could not place order")
            raise PersistenceError("Could not place order")

        try:
            receipt_id = generate_unique_receipt_id(
                self.order_repository.receipt_exists, self.receipt_attempts
            )
        except RuntimeError as e:
            flow.fail_order("Could not place order")
            raise PersistenceError(str(e)) from e

        order = build_order(
            order_id=order_id,
            receipt_id=receipt_id,
            table_number=flow.table_number,
            items=flow.cart.snapshot(),
            tip_amount=flow.tip_amount,
            payment_choice=payment_choice,
        )

        if not self.order_repository.create_order(order):
            logger.error(f"Failed to store order for table {flow.table_number}")
            flow.fail_order("Could not place order")
            raise PersistenceError("Could not place order")

        flow.complete_order(order)
        logger.info(
            f"Order {order.receipt_id} placed for table {order.table_number}: "
            f"{order.total} ({payment_choice.value})"
        )
        record_order_placed(payment_choice.value, order.total)
        return order

    async def get_order(self, receipt_id: str) -> Order:
        """Get an order by receipt code.

        Raises:
            NotFoundError: If no such order exists
        """
        order = self.order_repository.get_order(receipt_id)
        if order is None:
            raise NotFoundError(f"No order found with ID: {receipt_id}")
        return order

    async def submit_feedback(
        self, receipt_id: str, rating: int, customer_note: str | None = None
    ) -> Order:
        """Store a 1-5 star rating and optional note on a placed order.

        Raises:
            ValidationError: If the rating is out of range
            NotFoundError: If no such order exists
            PersistenceError: If the update failed
        """
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5")

        order = await self.get_order(receipt_id)
        note = customer_note.strip() if customer_note else None

        fields: dict[str, object] = {"rating": rating}
        if note:
            fields["customer_note"] = note

        if not self.order_repository.update_order(receipt_id, fields):
            raise PersistenceError("Could not save your feedback")

        return order.model_copy(
            update={**fields, "updated_at": datetime.now(UTC)}
        )

    async def notify_staff(self, order: Order) -> None:
        """Tell staff about a new order; failures are logged and dropped."""
        if self.notifier is None:
            return
        try:
            await self.notifier.notify_order_placed(order)
        except Exception as e:
            logger.warning(f"Staff notification for {order.receipt_id} failed: {e}")

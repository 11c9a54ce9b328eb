"""Best-effort staff notification for newly placed orders."""

import logging

import httpx

from table_ordering_service.models.order_models import Order
from table_ordering_service.observability.metrics import record_notification_failure
from table_ordering_service.services.calculations import format_currency

logger = logging.getLogger(__name__)


def format_order_summary(order: Order) -> str:
    """Render a short plain-text summary of an order for staff."""
    lines = [
        f"New order {order.receipt_id}",
        f"Table: {order.table_number}",
        "",
    ]
    lines.extend(
        f"{line.quantity}x {line.name} - {format_currency(line.line_total)}" for line in order.items
    )
    lines.append("")
    lines.append(f"Subtotal: {format_currency(order.subtotal)}")
    if order.tip_amount > 0:
        lines.append(f"Tip: {format_currency(order.tip_amount)}")
    lines.append(f"Total: {format_currency(order.total)}")
    lines.append(f"Payment: {order.payment_status.value}")
    return "\n".join(lines)


class StaffNotifier:
    """Posts order summaries to a staff chat webhook.

    Delivery is fire-and-forget: failures are logged and never raised.
    """

    def __init__(self, webhook_url: str | None, timeout_seconds: float = 5.0) -> None:
        """Initialize the notifier.

        Args:
            webhook_url: Incoming-webhook URL; None disables notifications
            timeout_seconds: Request timeout
        """
        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def notify_order_placed(self, order: Order) -> bool:
        """Send an order summary to staff.

        Returns:
            bool: True if the webhook accepted the message
        """
        if not self.webhook_url:
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    self.webhook_url, json={"text": format_order_summary(order)}
                )
                response.raise_for_status()
                return True

        except (httpx.HTTPStatusError, httpx.RequestError) as e:
            logger.warning(f"Failed to notify staff about order {order.receipt_id}: {e}")
            record_notification_failure(type(e).__name__)
            return False

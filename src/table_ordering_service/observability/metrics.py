"""Custom metrics for the table ordering service."""

from decimal import Decimal

from opentelemetry import metrics

meter = metrics.get_meter("ordering-svc")

orders_placed_counter = meter.create_counter(
    name="orders_placed_total",
    description="Total number of orders placed by payment choice",
    unit="1",
)

order_value_histogram = meter.create_histogram(
    name="order_value_dollars",
    description="Order totals at placement time",
    unit="USD",
)

order_status_counter = meter.create_counter(
    name="order_status_transitions_total",
    description="Order status changes made from the admin surface",
    unit="1",
)

notification_failure_counter = meter.create_counter(
    name="staff_notification_failure_total",
    description="Staff notifications that could not be delivered",
    unit="1",
)

assistant_latency_histogram = meter.create_histogram(
    name="assistant_reply_duration_seconds",
    description="Response time of the conversation assistant",
    unit="s",
)


def record_order_placed(payment_choice: str, total: Decimal) -> None:
    """Record a newly placed order.

    Args:
        payment_choice: "pay_later" or "pay_now"
        total: Order total
    """
    orders_placed_counter.add(1, {"payment_choice": payment_choice})
    order_value_histogram.record(float(total), {"payment_choice": payment_choice})


def record_status_transition(from_status: str, to_status: str) -> None:
    order_status_counter.add(1, {"from": from_status, "to": to_status})


def record_notification_failure(error_type: str) -> None:
    notification_failure_counter.add(1, {"error_type": error_type})


def record_assistant_latency(duration_seconds: float) -> None:
    assistant_latency_histogram.record(duration_seconds)

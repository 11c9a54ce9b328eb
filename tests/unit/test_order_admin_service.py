"""Unit tests for OrderAdminService."""

import logging
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from table_ordering_service.models.menu_models import RestaurantTable, TableStatusEnum
from table_ordering_service.models.order_models import (
    Order,
    OrderStatusEnum,
    PaymentMethodEnum,
    PaymentStatusEnum,
)
from table_ordering_service.services.errors import (
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from table_ordering_service.services.order_admin_service import (
    OrderAdminService,
    is_intended_transition,
)


@pytest.fixture
def order_repository(mock_order: Order) -> MagicMock:
    repository = MagicMock()
    repository.get_order.return_value = mock_order
    repository.update_order.return_value = True
    return repository


@pytest.fixture
def booked_table() -> RestaurantTable:
    return RestaurantTable(
        id=3,
        table_number=3,
        seats=4,
        status=TableStatusEnum.BOOKED,
        current_order_id="NX-7KQ2MZ",
    )


@pytest.fixture
def table_repository(booked_table: RestaurantTable) -> MagicMock:
    repository = MagicMock()
    repository.get_table.return_value = booked_table
    repository.update_table.return_value = True
    return repository


@pytest.fixture
def admin_service(order_repository: MagicMock, table_repository: MagicMock) -> OrderAdminService:
    return OrderAdminService(order_repository=order_repository, table_repository=table_repository)


@pytest.mark.unit
class TestIntendedTransitions:
    """Test suite for the order lifecycle check."""

    @pytest.mark.parametrize(
        "current, target, expected",
        [
            (OrderStatusEnum.PENDING, OrderStatusEnum.CONFIRMED, True),
            (OrderStatusEnum.CONFIRMED, OrderStatusEnum.PREPARING, True),
            (OrderStatusEnum.PREPARING, OrderStatusEnum.SERVED, True),
            (OrderStatusEnum.PENDING, OrderStatusEnum.SERVED, False),
            (OrderStatusEnum.SERVED, OrderStatusEnum.PENDING, False),
            (OrderStatusEnum.PENDING, OrderStatusEnum.PAID, True),
            (OrderStatusEnum.CANCELLED, OrderStatusEnum.PAID, False),
            (OrderStatusEnum.SERVED, OrderStatusEnum.CANCELLED, True),
            (OrderStatusEnum.PAID, OrderStatusEnum.CANCELLED, False),
            (OrderStatusEnum.PAID, OrderStatusEnum.PREPARING, False),
        ],
    )
    def test_is_intended_transition(
        self, current: OrderStatusEnum, target: OrderStatusEnum, expected: bool
    ) -> None:
        assert is_intended_transition(current, target) is expected


@pytest.mark.unit
class TestLookup:
    """Test suite for order lookup."""

    @pytest.mark.asyncio
    async def test_find_by_receipt_normalizes_code(
        self, admin_service: OrderAdminService, order_repository: MagicMock
    ) -> None:
        order = await admin_service.find_by_receipt("  nx-7kq2mz ")

        assert order.receipt_id == "NX-7KQ2MZ"
        order_repository.get_order.assert_called_once_with("NX-7KQ2MZ")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["", "   "])
    async def test_find_by_receipt_requires_code(
        self, admin_service: OrderAdminService, code: str
    ) -> None:
        with pytest.raises(ValidationError, match="Please enter an Order ID"):
            await admin_service.find_by_receipt(code)

    @pytest.mark.asyncio
    async def test_find_by_receipt_not_found(
        self, admin_service: OrderAdminService, order_repository: MagicMock
    ) -> None:
        order_repository.get_order.return_value = None

        with pytest.raises(NotFoundError, match="No order found with ID: NX-ZZZZZZ"):
            await admin_service.find_by_receipt("NX-ZZZZZZ")


@pytest.mark.unit
class TestConfirmOrder:
    """Test suite for order confirmation."""

    @pytest.mark.asyncio
    async def test_confirm_books_table(
        self,
        admin_service: OrderAdminService,
        order_repository: MagicMock,
        table_repository: MagicMock,
        mock_table: RestaurantTable,
    ) -> None:
        table_repository.get_table.return_value = mock_table

        order = await admin_service.confirm_order("NX-7KQ2MZ")

        assert order.status == OrderStatusEnum.CONFIRMED
        order_repository.update_order.assert_called_once_with(
            "NX-7KQ2MZ", {"status": OrderStatusEnum.CONFIRMED}
        )
        table_repository.update_table.assert_called_once_with(
            3, {"status": TableStatusEnum.BOOKED, "current_order_id": "NX-7KQ2MZ"}
        )

    @pytest.mark.asyncio
    async def test_confirm_with_unknown_table(
        self, admin_service: OrderAdminService, table_repository: MagicMock
    ) -> None:
        table_repository.get_table.return_value = None

        order = await admin_service.confirm_order("NX-7KQ2MZ")

        assert order.status == OrderStatusEnum.CONFIRMED
        table_repository.update_table.assert_not_called()

    @pytest.mark.asyncio
    async def test_confirm_order_update_failure(
        self, admin_service: OrderAdminService, order_repository: MagicMock
    ) -> None:
        order_repository.update_order.return_value = False

        with pytest.raises(PersistenceError):
            await admin_service.confirm_order("NX-7KQ2MZ")

    @pytest.mark.asyncio
    async def test_confirm_table_update_failure(
        self, admin_service: OrderAdminService, table_repository: MagicMock
    ) -> None:
        table_repository.update_table.return_value = False

        with pytest.raises(PersistenceError, match="Could not book table 3"):
            await admin_service.confirm_order("NX-7KQ2MZ")

    @pytest.mark.asyncio
    async def test_confirm_relinks_table_held_by_active_order(
        self,
        admin_service: OrderAdminService,
        order_repository: MagicMock,
        table_repository: MagicMock,
        booked_table: RestaurantTable,
        mock_order: Order,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        other = mock_order.model_copy(
            update={"receipt_id": "NX-OTHER1", "status": OrderStatusEnum.PREPARING}
        )
        orders = {"NX-7KQ2MZ": mock_order, "NX-OTHER1": other}
        order_repository.get_order.side_effect = orders.get
        table_repository.get_table.return_value = booked_table.model_copy(
            update={"current_order_id": "NX-OTHER1"}
        )

        with caplog.at_level(logging.WARNING):
            await admin_service.confirm_order("NX-7KQ2MZ")

        assert "Table 3 is still held by active order NX-OTHER1" in caplog.text
        table_repository.update_table.assert_called_once_with(
            3, {"status": TableStatusEnum.BOOKED, "current_order_id": "NX-7KQ2MZ"}
        )

    @pytest.mark.asyncio
    async def test_confirm_over_finished_order_is_quiet(
        self,
        admin_service: OrderAdminService,
        order_repository: MagicMock,
        table_repository: MagicMock,
        booked_table: RestaurantTable,
        mock_order: Order,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        paid = mock_order.model_copy(
            update={"receipt_id": "NX-PAID01", "status": OrderStatusEnum.PAID}
        )
        orders = {"NX-7KQ2MZ": mock_order, "NX-PAID01": paid}
        order_repository.get_order.side_effect = orders.get
        table_repository.get_table.return_value = booked_table.model_copy(
            update={"current_order_id": "NX-PAID01"}
        )

        with caplog.at_level(logging.WARNING):
            await admin_service.confirm_order("NX-7KQ2MZ")

        assert "still held" not in caplog.text
        table_repository.update_table.assert_called_once()


@pytest.mark.unit
class TestPayment:
    """Test suite for recording payments."""

    @pytest.mark.asyncio
    async def test_payment_defaults_to_cash_and_releases_table(
        self,
        admin_service: OrderAdminService,
        order_repository: MagicMock,
        table_repository: MagicMock,
    ) -> None:
        order = await admin_service.record_payment("NX-7KQ2MZ")

        assert order.status == OrderStatusEnum.PAID
        assert order.payment_status == PaymentStatusEnum.PAID
        assert order.payment_method == PaymentMethodEnum.CASH
        order_repository.update_order.assert_called_once_with(
            "NX-7KQ2MZ",
            {
                "status": OrderStatusEnum.PAID,
                "payment_status": PaymentStatusEnum.PAID,
                "payment_method": PaymentMethodEnum.CASH,
            },
        )
        table_repository.update_table.assert_called_once_with(
            3, {"status": TableStatusEnum.AVAILABLE, "current_order_id": None}
        )

    @pytest.mark.asyncio
    async def test_payment_keeps_existing_method(
        self,
        admin_service: OrderAdminService,
        order_repository: MagicMock,
        mock_order: Order,
    ) -> None:
        order_repository.get_order.return_value = mock_order.model_copy(
            update={"payment_method": PaymentMethodEnum.CARD}
        )

        order = await admin_service.record_payment("NX-7KQ2MZ")

        assert order.payment_method == PaymentMethodEnum.CARD

    @pytest.mark.asyncio
    async def test_payment_with_explicit_method_and_transaction(
        self, admin_service: OrderAdminService, order_repository: MagicMock
    ) -> None:
        order = await admin_service.record_payment(
            "NX-7KQ2MZ", PaymentMethodEnum.ONLINE, "TXN-ABC123"
        )

        assert order.payment_method == PaymentMethodEnum.ONLINE
        assert order.transaction_id == "TXN-ABC123"
        fields = order_repository.update_order.call_args.args[1]
        assert fields["transaction_id"] == "TXN-ABC123"

    @pytest.mark.asyncio
    async def test_cancelled_order_cannot_be_paid(
        self,
        admin_service: OrderAdminService,
        order_repository: MagicMock,
        mock_order: Order,
    ) -> None:
        order_repository.get_order.return_value = mock_order.model_copy(
            update={"status": OrderStatusEnum.CANCELLED}
        )

        with pytest.raises(ValidationError, match="cancelled"):
            await admin_service.record_payment("NX-7KQ2MZ")

        order_repository.update_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_table_linked_to_another_order_is_kept(
        self,
        admin_service: OrderAdminService,
        table_repository: MagicMock,
        booked_table: RestaurantTable,
    ) -> None:
        table_repository.get_table.return_value = booked_table.model_copy(
            update={"current_order_id": "NX-NEWONE"}
        )

        await admin_service.record_payment("NX-7KQ2MZ")

        table_repository.update_table.assert_not_called()

    @pytest.mark.asyncio
    async def test_available_table_is_left_alone(
        self,
        admin_service: OrderAdminService,
        table_repository: MagicMock,
        mock_table: RestaurantTable,
    ) -> None:
        table_repository.get_table.return_value = mock_table

        await admin_service.record_payment("NX-7KQ2MZ")

        table_repository.update_table.assert_not_called()

    @pytest.mark.asyncio
    async def test_release_failure(
        self, admin_service: OrderAdminService, table_repository: MagicMock
    ) -> None:
        table_repository.update_table.return_value = False

        with pytest.raises(PersistenceError, match="Could not release table 3"):
            await admin_service.record_payment("NX-7KQ2MZ")


@pytest.mark.unit
class TestStatusAndCancel:
    """Test suite for status changes and cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_releases_table(
        self, admin_service: OrderAdminService, table_repository: MagicMock
    ) -> None:
        order = await admin_service.cancel_order("NX-7KQ2MZ")

        assert order.status == OrderStatusEnum.CANCELLED
        table_repository.update_table.assert_called_once()

    @pytest.mark.asyncio
    async def test_paid_order_cannot_be_cancelled(
        self,
        admin_service: OrderAdminService,
        order_repository: MagicMock,
        mock_order: Order,
    ) -> None:
        order_repository.get_order.return_value = mock_order.model_copy(
            update={"payment_status": PaymentStatusEnum.PAID}
        )

        with pytest.raises(ValidationError, match="already paid"):
            await admin_service.cancel_order("NX-7KQ2MZ")

    @pytest.mark.asyncio
    async def test_update_status_in_sequence(
        self,
        admin_service: OrderAdminService,
        table_repository: MagicMock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING):
            order = await admin_service.update_status("NX-7KQ2MZ", OrderStatusEnum.CONFIRMED)

        assert order.status == OrderStatusEnum.CONFIRMED
        assert "out of sequence" not in caplog.text
        table_repository.update_table.assert_called_once_with(
            3, {"status": TableStatusEnum.BOOKED, "current_order_id": "NX-7KQ2MZ"}
        )

    @pytest.mark.asyncio
    async def test_update_status_out_of_sequence_is_allowed(
        self,
        admin_service: OrderAdminService,
        order_repository: MagicMock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING):
            order = await admin_service.update_status("NX-7KQ2MZ", OrderStatusEnum.SERVED)

        assert order.status == OrderStatusEnum.SERVED
        assert "out of sequence: pending -> served" in caplog.text
        order_repository.update_order.assert_called_once_with(
            "NX-7KQ2MZ", {"status": OrderStatusEnum.SERVED}
        )

    @pytest.mark.asyncio
    async def test_update_status_to_paid_releases_table(
        self,
        admin_service: OrderAdminService,
        order_repository: MagicMock,
        table_repository: MagicMock,
    ) -> None:
        order = await admin_service.update_status("NX-7KQ2MZ", OrderStatusEnum.PAID)

        assert order.payment_status == PaymentStatusEnum.PAID
        assert order.payment_method == PaymentMethodEnum.CASH
        order_repository.update_order.assert_called_once_with(
            "NX-7KQ2MZ",
            {
                "status": OrderStatusEnum.PAID,
                "payment_status": PaymentStatusEnum.PAID,
                "payment_method": PaymentMethodEnum.CASH,
            },
        )
        table_repository.update_table.assert_called_once_with(
            3, {"status": TableStatusEnum.AVAILABLE, "current_order_id": None}
        )

    @pytest.mark.asyncio
    async def test_update_status_to_cancelled_releases_table(
        self, admin_service: OrderAdminService, table_repository: MagicMock
    ) -> None:
        order = await admin_service.update_status("NX-7KQ2MZ", OrderStatusEnum.CANCELLED)

        assert order.status == OrderStatusEnum.CANCELLED
        table_repository.update_table.assert_called_once_with(
            3, {"status": TableStatusEnum.AVAILABLE, "current_order_id": None}
        )

    @pytest.mark.asyncio
    async def test_update_status_kitchen_step_leaves_table(
        self, admin_service: OrderAdminService, table_repository: MagicMock
    ) -> None:
        await admin_service.update_status("NX-7KQ2MZ", OrderStatusEnum.PREPARING)

        table_repository.update_table.assert_not_called()


@pytest.mark.unit
class TestDashboardStats:
    """Test suite for dashboard numbers."""

    @pytest.mark.asyncio
    async def test_dashboard_stats(
        self,
        admin_service: OrderAdminService,
        order_repository: MagicMock,
        mock_order: Order,
    ) -> None:
        paid = mock_order.model_copy(
            update={
                "receipt_id": "NX-PAID01",
                "table_number": 5,
                "total": Decimal("21.85"),
                "status": OrderStatusEnum.PAID,
                "payment_status": PaymentStatusEnum.PAID,
            }
        )
        cancelled = mock_order.model_copy(
            update={"receipt_id": "NX-CANC01", "table_number": 4, "status": OrderStatusEnum.CANCELLED}
        )
        second_at_table_3 = mock_order.model_copy(
            update={"receipt_id": "NX-PREP01", "status": OrderStatusEnum.PREPARING}
        )
        order_repository.list_orders.return_value = [mock_order, paid, cancelled, second_at_table_3]

        stats = await admin_service.dashboard_stats()

        assert stats.total_orders == 4
        assert stats.revenue == Decimal("21.85")
        assert stats.pending_orders == 1
        assert stats.active_tables == 1

    @pytest.mark.asyncio
    async def test_dashboard_stats_empty(
        self, admin_service: OrderAdminService, order_repository: MagicMock
    ) -> None:
        order_repository.list_orders.return_value = []

        stats = await admin_service.dashboard_stats()

        assert stats.total_orders == 0
        assert stats.revenue == Decimal("0.00")

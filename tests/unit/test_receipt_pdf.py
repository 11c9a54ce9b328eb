"""Unit tests for the printable receipt."""

from decimal import Decimal
from unittest.mock import patch

import pytest
from reportlab.pdfgen import canvas

from table_ordering_service.models.order_models import (
    Order,
    OrderItem,
    PaymentMethodEnum,
    PaymentStatusEnum,
)
from table_ordering_service.services.receipt_pdf import build_receipt_pdf, receipt_lines


@pytest.mark.unit
class TestReceiptLines:
    """Test suite for the bill text."""

    def test_unpaid_order(self, mock_order: Order) -> None:
        lines = receipt_lines(mock_order)

        assert lines[:3] == ["Receipt: NX-7KQ2MZ", "Table: 3", "Placed: 2024-01-15 20:30"]
        assert "2 x Mojito @ $9.50 = $19.00" in lines
        assert "Tax (3%): $0.57" in lines
        assert "Total: $19.57" in lines
        assert not any(line.startswith("Tip:") for line in lines)
        assert lines[-1] == "Please pay at the counter"

    def test_paid_order_with_tip(self, mock_order: Order) -> None:
        order = mock_order.model_copy(
            update={
                "tip_amount": Decimal("2.85"),
                "total": Decimal("21.85"),
                "payment_status": PaymentStatusEnum.PAID,
                "payment_method": PaymentMethodEnum.CARD,
            }
        )

        lines = receipt_lines(order)

        assert "Tip: $2.85" in lines
        assert "Total: $22.51" in lines
        assert lines[-1] == "Paid (card)"


@pytest.mark.unit
class TestBuildReceiptPdf:
    """Test suite for PDF rendering."""

    def test_renders_pdf(self, mock_order: Order) -> None:
        content = build_receipt_pdf(mock_order)

        assert content.startswith(b"%PDF")
        assert content.rstrip().endswith(b"%%EOF")

    def test_long_order_spans_pages(self, mock_order: Order) -> None:
        items = [
            OrderItem(id=i, name=f"Item {i}", price=Decimal("1.00"), category="Snacks")
            for i in range(1, 80)
        ]
        order = mock_order.model_copy(update={"items": items})

        with patch.object(
            canvas.Canvas, "showPage", autospec=True, side_effect=canvas.Canvas.showPage
        ) as show_page:
            content = build_receipt_pdf(order)

        assert show_page.call_count >= 2
        assert content.startswith(b"%PDF")

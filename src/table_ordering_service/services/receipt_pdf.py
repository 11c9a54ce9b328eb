"""Printable PDF bill for a placed order."""

import io

from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from table_ordering_service.models.order_models import Order, PaymentStatusEnum
from table_ordering_service.services.calculations import apply_tax, format_currency

LINE_HEIGHT = 14
MARGIN = 48


def receipt_lines(order: Order) -> list[str]:
    """Bill text for an order, tax included, one entry per printed line."""
    breakdown = apply_tax(order.subtotal, order.tip_amount)
    lines = [
        f"Receipt: {order.receipt_id}",
        f"Table: {order.table_number}",
        f"Placed: {order.created_at.strftime('%Y-%m-%d %H:%M')}",
        "",
    ]
    lines.extend(
        f"{line.quantity} x {line.name} @ {format_currency(line.price)} = "
        f"{format_currency(line.line_total)}"
        for line in order.items
    )
    lines.append("")
    lines.append(f"Subtotal: {format_currency(breakdown.subtotal)}")
    if breakdown.tip_amount > 0:
        lines.append(f"Tip: {format_currency(breakdown.tip_amount)}")
    lines.append(f"Tax (3%): {format_currency(breakdown.tax_amount)}")
    lines.append(f"Total: {format_currency(breakdown.total)}")
    lines.append("")
    if order.payment_status == PaymentStatusEnum.PAID:
        method = order.payment_method.value if order.payment_method else "paid"
        lines.append(f"Paid ({method})")
    else:
        lines.append("Please pay at the counter")
    return lines


def build_receipt_pdf(order: Order, title: str = "Table Order Receipt") -> bytes:
    """Render an order's bill as a single-column PDF."""
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=letter)
    pdf.setTitle(f"{title} {order.receipt_id}")
    _, height = letter

    y = height - MARGIN
    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawString(MARGIN, y, title)
    y -= 22

    pdf.setFont("Helvetica", 10)
    for text in receipt_lines(order):
        if text.startswith("Total:"):
            pdf.setFont("Helvetica-Bold", 12)
        pdf.drawString(MARGIN, y, text[:110])
        pdf.setFont("Helvetica", 10)
        y -= LINE_HEIGHT
        if y < 90:
            pdf.showPage()
            pdf.setFont("Helvetica", 10)
            y = height - MARGIN

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()

from decimal import Decimal
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from tableside.domain.money import line_total, to_amount
from tableside.infrastructure.db.models import Order

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"


class DocumentRenderer:
    """Receipts and invoices as HTML, rendered from the order state alone."""

    def __init__(self, venue_name: str, tax_rate: Decimal = Decimal("0")):
        self.venue_name = venue_name
        self.tax_rate = Decimal(tax_rate)
        self._env = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=select_autoescape(["html"]),
        )

    def render_receipt(self, order: Order) -> bytes:
        return self._render("receipt.html", order)

    def render_invoice(self, order: Order) -> bytes:
        subtotal = to_amount(order.total_amount)
        tax = to_amount(subtotal * self.tax_rate)
        return self._render(
            "invoice.html",
            order,
            tax_rate_percent=to_amount(self.tax_rate * 100),
            tax=tax,
            grand_total=to_amount(subtotal + tax),
        )

    def _render(self, template_name: str, order: Order, **extra) -> bytes:
        lines = [
            {
                "name": item.menu_item_name,
                "quantity": item.quantity,
                "unit_price": to_amount(item.unit_price),
                "total": line_total(item.unit_price, item.quantity),
                "notes": item.special_instructions,
            }
            for item in order.items
        ]
        html = self._env.get_template(template_name).render(
            venue_name=self.venue_name,
            order=order,
            lines=lines,
            subtotal=to_amount(order.total_amount),
            **extra,
        )
        return html.encode("utf-8")

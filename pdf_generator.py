"""
Invoice and cart-summary PDFs.

Both renderers write into a shared output directory and return
``{"success", "file_path", "file_name", "file_size"}``. A missing logo or an
unreadable product image is logged and left out of the document; anything
else propagates to the caller.
"""

import logging
import os
import re
import time
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from reportlab.lib.pagesizes import LETTER
from reportlab.pdfgen import canvas

logger = logging.getLogger(__name__)

MARGIN = 50
FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"


def sanitize_name(name: Optional[str]) -> str:
    """Strip non-alphanumerics, turn whitespace runs into underscores and lowercase."""
    cleaned = re.sub(r"[^a-zA-Z0-9\s]", "", name or "")
    return re.sub(r"\s+", "_", cleaned).lower()


def invoice_file_name(customer_name: str, invoice_number: str) -> str:
    return f"invoice_{sanitize_name(customer_name)}_{invoice_number}.pdf"


def order_customer_name(order: Dict[str, Any]) -> str:
    user = order.get("user") or {}
    return (order.get("shipping_info") or {}).get("name") or user.get("name") or "customer"


def _money(value: float) -> str:
    return f"{value:.2f}"


def _format_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y")
    return datetime.now().strftime("%d/%m/%Y")


class _Page:
    """Top-down cursor over a reportlab canvas, breaking pages as needed."""

    def __init__(self, path: str):
        self.canvas = canvas.Canvas(path, pagesize=LETTER)
        self.width, self.height = LETTER
        self.y = self.height - MARGIN

    def ensure(self, needed: float) -> None:
        if self.y - needed < MARGIN:
            self.canvas.showPage()
            self.y = self.height - MARGIN

    def text(self, value: str, size: int = 10, align: str = "left", bold: bool = False) -> None:
        self.ensure(size + 4)
        font = FONT_BOLD if bold else FONT
        self.canvas.setFont(font, size)
        if align == "right":
            self.canvas.drawRightString(self.width - MARGIN, self.y - size, value)
        elif align == "center":
            self.canvas.drawCentredString(self.width / 2, self.y - size, value)
        else:
            self.canvas.drawString(MARGIN, self.y - size, value)
        self.y -= size + 4

    def row(self, cells: Iterable[tuple], size: int = 10, height: float = 20) -> None:
        self.ensure(height)
        self.canvas.setFont(FONT, size)
        for x, value in cells:
            self.canvas.drawString(x, self.y - size, str(value))
        self.y -= height

    def rule(self) -> None:
        self.ensure(8)
        self.canvas.line(MARGIN, self.y - 4, self.width - MARGIN, self.y - 4)
        self.y -= 8

    def gap(self, amount: float = 12) -> None:
        self.y -= amount

    def image(self, path: str, x: float, width: float, height: float) -> bool:
        try:
            self.canvas.drawImage(path, x, self.y - height, width=width, height=height,
                                  preserveAspectRatio=True, mask="auto")
        except Exception as e:
            logger.warning("Image loading error for %s: %s", path, e)
            return False
        return True

    def save(self) -> None:
        self.canvas.save()


class PDFGenerator:
    def __init__(self, output_dir: str, logo_path: Optional[str] = None, store_name: str = "",
                 store_address: Optional[List[str]] = None, currency: str = "Rs.",
                 uploads_dir: Optional[str] = None):
        self.output_dir = output_dir
        self.logo_path = logo_path
        self.store_name = store_name
        self.store_address = store_address or []
        self.currency = currency
        self.uploads_dir = uploads_dir

    @classmethod
    def from_settings(cls, settings) -> "PDFGenerator":
        return cls(
            output_dir=settings.pdf_dir,
            logo_path=settings.logo_path,
            store_name=settings.store_name,
            store_address=settings.store_address,
            currency=settings.currency,
            uploads_dir=settings.uploads_dir,
        )

    def _path(self, file_name: str) -> str:
        os.makedirs(self.output_dir, exist_ok=True)
        return os.path.join(self.output_dir, file_name)

    def _result(self, file_path: str, file_name: str) -> Dict[str, Any]:
        try:
            size = os.path.getsize(file_path)
        except OSError:
            size = 0
        return {"success": True, "file_path": file_path, "file_name": file_name, "file_size": size}

    def _draw_logo(self, page: _Page, width: float, height: float) -> None:
        if not self.logo_path:
            return
        if not os.path.exists(self.logo_path):
            logger.info("Logo not found at %s, skipping", self.logo_path)
            return
        if page.image(self.logo_path, MARGIN, width, height):
            page.gap(height + 6)

    def _local_image(self, url: str) -> Optional[str]:
        """Map a disk-storage image URL back to its file; remote images are skipped."""
        if not url or not self.uploads_dir or "/uploads/products/" not in url:
            return None
        path = os.path.join(self.uploads_dir, "products", os.path.basename(url))
        return path if os.path.exists(path) else None

    def generate_invoice(self, order: Dict[str, Any]) -> Dict[str, Any]:
        shipping = order.get("shipping_info") or {}
        customer_name = order_customer_name(order)
        file_name = invoice_file_name(customer_name, order["invoice_number"])
        file_path = self._path(file_name)

        page = _Page(file_path)
        self._draw_logo(page, 120, 60)

        page.text("Order Invoice", size=20, align="right", bold=True)
        page.gap()
        page.text(self.store_name, size=12, align="right")
        for line in self.store_address:
            page.text(line, align="right")
        page.gap()

        page.text("Invoice Details", size=14, bold=True)
        page.text(f"Invoice Number: {order['invoice_number']}")
        page.text(f"Date: {_format_date(order.get('created_at'))}")
        page.gap()

        page.text("Customer Information", size=14, bold=True)
        page.text(f"Name: {shipping.get('name') or (order.get('user') or {}).get('name') or 'N/A'}")
        page.text(f"Phone: {shipping.get('phone_no') or 'N/A'}")
        page.text(f"Address: {shipping.get('address') or 'N/A'}")
        page.gap()
        if order.get("notes"):
            for i, line in enumerate(str(order["notes"]).splitlines()):
                page.text(f"Notes: {line}" if i == 0 else line)
            page.gap()

        page.text("Order Items", size=14, bold=True)
        page.gap(6)
        page.row([(50, "Product"), (200, "Category"), (380, "Quantity"), (450, "Price"), (520, "Total")])
        page.rule()

        for item in order.get("order_items", []):
            page.ensure(40)
            local = self._local_image(item.get("image", ""))
            if local:
                page.image(local, 50, 30, 30)
            page.row([
                (90, item["name"]),
                (200, item.get("category") or "N/A"),
                (380, item["quantity"]),
                (450, _money(item["price"])),
                (520, _money(item["price"] * item["quantity"])),
            ], height=40)

        page.rule()
        page.gap(6)
        page.text(f"Total: {self.currency} {_money(order['total_price'])}", size=14, align="right", bold=True)
        page.gap(24)
        page.text("Thank you for your business!", size=12, align="center")
        page.text("GST is applicable additionally", size=12, align="center")
        page.save()

        logger.info("Invoice %s written to %s", order["invoice_number"], file_path)
        return self._result(file_path, file_name)

    def generate_cart_pdf(self, cart: Dict[str, Any], user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        user = user or {}
        file_name = f"cart_{sanitize_name(user.get('name') or 'customer')}_{int(time.time() * 1000)}.pdf"
        file_path = self._path(file_name)

        page = _Page(file_path)
        self._draw_logo(page, 80, 80)

        page.text("CART SUMMARY", size=20, align="center", bold=True)
        page.gap()
        page.text(self.store_name, size=12, align="center")
        for line in self.store_address:
            page.text(line, align="center")
        page.gap()

        page.text("Cart Details", size=14, bold=True)
        page.text(f"Date: {datetime.now().strftime('%d/%m/%Y')}")
        page.text(f"Customer: {user.get('name') or 'Guest'}")
        page.text(f"Email: {user.get('email') or 'N/A'}")
        page.gap()

        page.text("Cart Items", size=14, bold=True)
        page.gap(6)
        page.row([(50, "Product"), (200, "Category"), (300, "Quantity"), (380, "Price"), (450, "Total")])
        page.rule()

        items = cart.get("items", [])
        total_amount = 0.0
        for item in items:
            item_total = item["price"] * item["quantity"]
            total_amount += item_total
            product = item.get("product") or {}
            page.row([
                (50, product.get("name") or item.get("name") or "Product"),
                (200, item.get("category") or "N/A"),
                (300, item["quantity"]),
                (380, f"{self.currency} {_money(item['price'])}"),
                (450, f"{self.currency} {_money(item_total)}"),
            ])

        page.rule()
        page.gap(6)
        page.text(f"Total Items: {cart.get('total_items') or len(items)}", size=12, align="right")
        page.text(f"Total Amount: {self.currency} {_money(total_amount)}", size=14, align="right", bold=True)
        page.gap()
        page.text("This is your current cart summary", align="center")
        page.text("Generated on: " + datetime.now().strftime("%d/%m/%Y %H:%M:%S"), size=8, align="center")
        page.save()

        logger.info("Cart summary for %s written to %s", user.get("email") or "guest", file_path)
        return self._result(file_path, file_name)

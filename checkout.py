"""
Checkout: turn a user's cart into an order.

The steps run in a fixed order and are not wrapped in a transaction. Once the
order document is inserted the checkout has succeeded; stock is adjusted and
the cart cleared unconditionally, while the invoice PDF, the cart-summary
email and the order confirmation are best-effort and only logged on failure.

Two checkouts racing on the same product can both decrement its stock, so
stock may go negative. Nothing here guards against that.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from carts import clear_items, find_cart, populate_cart
from database import collection, create_document, find_by_id, serialize, to_object_id, utcnow
from errors import EmptyCartError, ValidationError
from schemas import Order, OrderItem, PaymentInfo, ShippingInfo

logger = logging.getLogger(__name__)


@dataclass
class CheckoutResult:
    order: Dict[str, Any]
    pdf_generated: bool = False
    notifications_sent: bool = False
    cart_summary_sent: bool = False
    notification: Dict[str, Any] = field(default_factory=dict)


def generate_invoice_number(now: Optional[datetime] = None) -> str:
    """``INV-YYYYMMDD-NNN`` where NNN counts the orders already placed that day, plus one."""
    now = now or utcnow()
    day = datetime(now.year, now.month, now.day)
    todays_orders = collection("order").count_documents({
        "created_at": {"$gte": day, "$lt": day + timedelta(days=1)},
    })
    return f"INV-{day:%Y%m%d}-{todays_orders + 1:03d}"


def materialize_items(cart: Dict[str, Any]) -> List[OrderItem]:
    """Copy each populated cart line so the order no longer depends on the product."""
    items = []
    for line in cart["items"]:
        product = line.get("product")
        if product is None:
            raise ValidationError(f"Product with ID {line['product_id']} not found")
        items.append(OrderItem(
            product_id=line["product_id"],
            name=product["name"],
            quantity=line["quantity"],
            price=line["price"],
            image=product.get("image") or "",
            category=line.get("category") or "N/A",
        ))
    return items


def purchaser(user_id: str) -> Optional[Dict[str, Any]]:
    user = find_by_id("user", user_id)
    if not user:
        return None
    return {"id": str(user["_id"]), "name": user.get("name"), "email": user.get("email")}


def load_order(order_id: str) -> Optional[Dict[str, Any]]:
    order = serialize(find_by_id("order", order_id))
    if order:
        order["user"] = purchaser(order["user_id"])
    return order


def set_pdf_path(order: Dict[str, Any], pdf_path: str) -> None:
    collection("order").update_one(
        {"_id": to_object_id(order["id"])},
        {"$set": {"pdf_path": pdf_path, "updated_at": utcnow()}},
    )
    order["pdf_path"] = pdf_path


def _remove_temp_pdf(file_path: Optional[str]) -> None:
    if not file_path:
        return
    try:
        os.remove(file_path)
    except OSError as e:
        logger.error("Error cleaning up PDF file %s: %s", file_path, e)


def checkout(user: Dict[str, Any], shipping_info: Optional[ShippingInfo], payment_info: Optional[PaymentInfo],
             notes: Optional[str], pdfs, notifier) -> CheckoutResult:
    if shipping_info is None or payment_info is None:
        raise ValidationError("Shipping info and payment info are required")

    cart = find_cart(user["id"])
    if not cart or not cart.get("items"):
        raise EmptyCartError()
    cart = populate_cart(cart)

    # Priced from the cart's snapshot prices; no tax or shipping is added
    items_price = cart["total_amount"]
    total_price = items_price
    order_items = materialize_items(cart)

    now = utcnow()
    order_id = create_document("order", {
        **Order(
            user_id=user["id"],
            order_items=order_items,
            shipping_info=shipping_info,
            payment_info=payment_info,
            paid_at=now,
            items_price=items_price,
            total_price=total_price,
            invoice_number=generate_invoice_number(now),
            notes=notes,
        ).model_dump(),
        "created_at": now,
    })
    logger.info("Order %s placed by user %s", order_id, user["id"])

    for item in order_items:
        collection("product").update_one(
            {"_id": to_object_id(item.product_id)},
            {"$inc": {"stock": -item.quantity}},
        )

    clear_items(user["id"])

    order = load_order(order_id)
    result = CheckoutResult(order=order)

    pdf_path = None
    try:
        invoice = pdfs.generate_invoice(order)
        if invoice and invoice.get("file_path"):
            pdf_path = invoice["file_path"]
            set_pdf_path(order, pdf_path)
        result.pdf_generated = bool(invoice and invoice.get("success"))
    except Exception:
        logger.exception("PDF generation failed for order %s", order_id)

    contact = order["user"] or {"name": user.get("name", ""), "email": user.get("email", "")}
    summary = {
        "items": [item.model_dump() for item in order_items],
        "total_items": sum(item.quantity for item in order_items),
    }
    try:
        cart_pdf = pdfs.generate_cart_pdf(summary, contact)
        sent = notifier.send_cart_summary(contact.get("email"), contact, summary, cart_pdf.get("file_path"))
        result.cart_summary_sent = bool(sent.get("success"))
    except Exception:
        logger.exception("Cart summary failed for order %s", order_id)
    else:
        _remove_temp_pdf(cart_pdf.get("file_path"))

    try:
        result.notification = notifier.send_order_confirmation(order, pdf_path)
        result.notifications_sent = bool(result.notification.get("success"))
    except Exception:
        logger.exception("Order confirmation failed for order %s", order_id)

    return result

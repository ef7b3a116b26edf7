import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from auth import ensure_owner_or_admin, get_current_user
from carts import empty_cart, find_cart, populate_cart, save_items
from database import find_by_id, serialize
from dependencies import get_notifier, get_pdfs
from errors import EmptyCartError, InsufficientStockError, NotFoundError, ValidationError
from notifications import NotificationService
from pdf_generator import PDFGenerator
from schemas import CartItem

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cart", tags=["Cart"])


class CartItemIn(BaseModel):
    product: str
    quantity: int = 1


class SaveCartRequest(BaseModel):
    items: Optional[List[CartItemIn]] = None


class AddItemRequest(BaseModel):
    product_id: Optional[str] = None
    quantity: int = 1


class CartPdfRequest(BaseModel):
    email: Optional[str] = None


def _snapshot(product: Dict[str, Any], quantity: int) -> Dict[str, Any]:
    return CartItem(
        product_id=str(product["_id"]),
        quantity=quantity,
        price=product["price"],
        category=product.get("category") or "N/A",
    ).model_dump()


@router.post("")
def save_cart(payload: SaveCartRequest, current: Dict[str, Any] = Depends(get_current_user)):
    """Replace the caller's cart, re-pricing every line from the live product."""
    if not payload.items:
        raise ValidationError("Cart items are required and must be an array")

    # No stock check here, only add-item enforces stock
    items = []
    for item in payload.items:
        product = find_by_id("product", item.product)
        if not product:
            raise ValidationError(f"Product with ID {item.product} not found")
        if item.quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        items.append(_snapshot(product, item.quantity))

    cart = save_items(current["id"], items)
    return {"success": True, "message": "Cart saved successfully", "cart": populate_cart(cart)}


@router.post("/add-item")
def add_item(payload: AddItemRequest, current: Dict[str, Any] = Depends(get_current_user)):
    if not payload.product_id:
        raise ValidationError("Product ID is required")
    if payload.quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    product = find_by_id("product", payload.product_id)
    if not product:
        raise NotFoundError("Product")
    if product.get("stock", 0) < payload.quantity:
        raise InsufficientStockError(product.get("stock", 0))

    cart = find_cart(current["id"])
    items = list(cart.get("items", [])) if cart else []
    for item in items:
        if item["product_id"] == payload.product_id:
            item["quantity"] += payload.quantity
            break
    else:
        items.append(_snapshot(product, payload.quantity))

    cart = save_items(current["id"], items)
    return {"success": True, "message": "Item added to cart successfully", "cart": populate_cart(cart)}


@router.delete("/remove-item/{product_id}")
def remove_item(product_id: str, current: Dict[str, Any] = Depends(get_current_user)):
    cart = find_cart(current["id"])
    if not cart:
        raise NotFoundError("Cart")
    items = [item for item in cart.get("items", []) if item["product_id"] != product_id]
    cart = save_items(current["id"], items)
    return {"success": True, "message": "Item removed from cart successfully", "cart": populate_cart(cart)}


@router.post("/generate-pdf/{user_id}")
def email_cart_pdf(
    user_id: str,
    payload: CartPdfRequest,
    current: Dict[str, Any] = Depends(get_current_user),
    pdfs: PDFGenerator = Depends(get_pdfs),
    notifier: NotificationService = Depends(get_notifier),
):
    ensure_owner_or_admin(current, user_id, "You can only access your own cart")
    if not payload.email:
        raise ValidationError("Email is required for PDF delivery")
    user = serialize(find_by_id("user", user_id))
    if not user:
        raise NotFoundError("User")
    cart = find_cart(user_id)
    if not cart or not cart.get("items"):
        raise EmptyCartError("Cart is empty. Cannot generate PDF.")

    cart = populate_cart(cart)
    pdf = pdfs.generate_cart_pdf(cart, user)
    result = notifier.send_cart_summary(payload.email, user, cart, pdf["file_path"])
    try:
        os.remove(pdf["file_path"])
    except OSError as e:
        logger.error("Error cleaning up PDF file %s: %s", pdf["file_path"], e)

    return {
        "success": True,
        "message": "Cart PDF generated and sent via email successfully",
        "pdf_generated": True,
        "email_sent": result["success"],
        "cart": {"total_items": cart["total_items"], "total_amount": cart["total_amount"]},
    }


@router.get("/{user_id}")
def get_cart(user_id: str, current: Dict[str, Any] = Depends(get_current_user)):
    ensure_owner_or_admin(current, user_id, "You can only access your own cart")
    cart = find_cart(user_id)
    if not cart:
        return {"success": True, "message": "Cart is empty", "cart": empty_cart(user_id)}
    return {"success": True, "cart": populate_cart(cart)}


@router.delete("/{user_id}")
def clear_cart(user_id: str, current: Dict[str, Any] = Depends(get_current_user)):
    ensure_owner_or_admin(current, user_id, "You can only clear your own cart")
    cart = find_cart(user_id)
    if not cart:
        raise NotFoundError("Cart")
    cart = save_items(user_id, [])
    return {"success": True, "message": "Cart cleared successfully", "cart": populate_cart(cart)}

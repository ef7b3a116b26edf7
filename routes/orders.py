import logging
import os
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from pydantic import BaseModel

from auth import ensure_owner_or_admin, get_current_user, require_admin
from checkout import checkout as run_checkout
from checkout import load_order, purchaser, set_pdf_path
from database import collection, find_by_id, get_documents, serialize, to_object_id, utcnow
from dependencies import get_notifier, get_pdfs
from errors import InternalError, NotFoundError, ValidationError
from notifications import NotificationService
from pdf_generator import PDFGenerator, invoice_file_name, order_customer_name
from schemas import ORDER_STATUSES, PaymentInfo, ShippingInfo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])


class CheckoutRequest(BaseModel):
    shipping_info: Optional[ShippingInfo] = None
    payment_info: Optional[PaymentInfo] = None
    notes: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    order_status: Optional[str] = None
    notes: Optional[str] = None


# Helpers

def _get_order_or_404(order_id: str) -> Dict[str, Any]:
    order = load_order(order_id)
    if not order:
        raise NotFoundError("Order")
    return order


def _with_purchasers(orders: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    user_ids = {o["user_id"] for o in orders if ObjectId.is_valid(o["user_id"])}
    users = {
        str(u["_id"]): {"id": str(u["_id"]), "name": u.get("name"), "email": u.get("email")}
        for u in collection("user").find({"_id": {"$in": [ObjectId(uid) for uid in user_ids]}})
    }
    result = []
    for order in orders:
        data = serialize(order)
        data["user"] = users.get(order["user_id"])
        result.append(data)
    return result


def _reset_to_pending(orders: List[Dict[str, Any]], audit: str) -> int:
    """Put orders back to Pending, drop delivered_at and append a timestamped audit note."""
    now = utcnow()
    stamp = f"[{audit} on {now:%Y-%m-%d %H:%M:%S} UTC]"
    for order in orders:
        notes = f"{order['notes']}\n{stamp}" if order.get("notes") else stamp
        collection("order").update_one(
            {"_id": order["_id"]},
            {"$set": {"order_status": "Pending", "notes": notes, "delivered_at": None, "updated_at": now}},
        )
    return len(orders)


# Checkout

@router.post("/checkout", status_code=201)
def checkout(
    payload: CheckoutRequest,
    current: Dict[str, Any] = Depends(get_current_user),
    pdfs: PDFGenerator = Depends(get_pdfs),
    notifier: NotificationService = Depends(get_notifier),
):
    result = run_checkout(current, payload.shipping_info, payload.payment_info, payload.notes, pdfs, notifier)
    return {
        "success": True,
        "message": "Order placed successfully",
        "order": result.order,
        "invoice_number": result.order["invoice_number"],
        "pdf_generated": result.pdf_generated,
        "notifications_sent": result.notifications_sent,
        "cart_summary_sent": result.cart_summary_sent,
        "notification": result.notification,
    }


# Retrieval

@router.get("")
def list_orders(current: Dict[str, Any] = Depends(require_admin)):
    orders = _with_purchasers(get_documents("order", newest_first=True))
    return {"success": True, "count": len(orders), "orders": orders}


@router.get("/user/{user_id}")
def list_user_orders(user_id: str, current: Dict[str, Any] = Depends(get_current_user)):
    ensure_owner_or_admin(current, user_id, "You can only access your own orders")
    orders = [serialize(o) for o in get_documents("order", {"user_id": user_id}, newest_first=True)]
    return {"success": True, "count": len(orders), "orders": orders}


@router.get("/{order_id}")
def get_order(order_id: str, current: Dict[str, Any] = Depends(get_current_user)):
    order = _get_order_or_404(order_id)
    ensure_owner_or_admin(current, order["user_id"], "You can only access your own orders")
    return {"success": True, "order": order}


# Status management

@router.put("/{order_id}/status")
def update_status(
    order_id: str,
    payload: StatusUpdateRequest,
    current: Dict[str, Any] = Depends(require_admin),
    notifier: NotificationService = Depends(get_notifier),
):
    if not payload.order_status:
        raise ValidationError("Order status is required")
    if payload.order_status not in ORDER_STATUSES:
        raise ValidationError("Invalid order status")
    order = _get_order_or_404(order_id)

    # Any status may follow any other; only Delivered has a side effect
    now = utcnow()
    updates: Dict[str, Any] = {"order_status": payload.order_status, "updated_at": now}
    if payload.notes:
        updates["notes"] = payload.notes
    if payload.order_status == "Delivered":
        updates["delivered_at"] = now
    collection("order").update_one({"_id": to_object_id(order["id"])}, {"$set": updates})
    order = load_order(order_id)
    logger.info("Order %s moved to %s by %s", order["invoice_number"], payload.order_status, current["email"])

    sms_sent = False
    try:
        message = (
            f"Order Status Update\n\nOrder ID: {order['invoice_number']}\n"
            f"New Status: {payload.order_status}\n\nThank you for your patience!"
        )
        sms_sent = notifier.send_sms_notification(order["shipping_info"].get("phone_no"), message)["success"]
    except Exception:
        logger.exception("Status update notification failed for order %s", order_id)

    return {"success": True, "message": "Order status updated successfully", "order": order, "sms_sent": sms_sent}


@router.delete("/clear-all")
def clear_all_orders(current: Dict[str, Any] = Depends(require_admin)):
    orders = list(collection("order").find({}))
    if not orders:
        raise NotFoundError("Order", "No orders found in the system")
    cleared = _reset_to_pending(orders, "All system orders cleared by admin")
    return {
        "success": True,
        "message": f"Cleared status for all {cleared} order(s) in the system",
        "cleared_orders": cleared,
    }


@router.delete("/user/{user_id}/clear-all")
def clear_user_orders(user_id: str, current: Dict[str, Any] = Depends(require_admin)):
    user = purchaser(user_id)
    if not user:
        raise NotFoundError("User")
    orders = list(collection("order").find({"user_id": user_id}))
    if not orders:
        raise NotFoundError("Order", "No orders found for this user")
    cleared = _reset_to_pending(orders, "All statuses cleared by admin")
    return {
        "success": True,
        "message": f"Cleared status for {cleared} order(s) for user {user['email']}",
        "cleared_orders": cleared,
        "user": user,
    }


@router.delete("/{order_id}/clear-status")
def clear_status(order_id: str, current: Dict[str, Any] = Depends(require_admin)):
    order = find_by_id("order", order_id)
    if not order:
        raise NotFoundError("Order")
    _reset_to_pending([order], "Status cleared by admin")
    return {"success": True, "message": "Order status cleared and reset to pending", "order": load_order(order_id)}


# Invoice

@router.get("/{order_id}/pdf")
def get_invoice_pdf(
    order_id: str,
    current: Dict[str, Any] = Depends(get_current_user),
    pdfs: PDFGenerator = Depends(get_pdfs),
):
    order = _get_order_or_404(order_id)
    ensure_owner_or_admin(current, order["user_id"], "Access denied")

    pdf_path = order.get("pdf_path")
    if not pdf_path or not os.path.exists(pdf_path):
        try:
            result = pdfs.generate_invoice(order)
        except Exception as e:
            logger.exception("Invoice regeneration failed for order %s", order_id)
            raise InternalError("Failed to generate PDF") from e
        if not result.get("success"):
            raise InternalError("Failed to generate PDF")
        pdf_path = result["file_path"]
        set_pdf_path(order, pdf_path)

    return FileResponse(
        pdf_path,
        media_type="application/pdf",
        filename=invoice_file_name(order_customer_name(order), order["invoice_number"]),
    )

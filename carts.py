"""Cart documents: lookup, product population and derived totals."""

from typing import Any, Dict, List, Optional

from bson import ObjectId

from database import collection, serialize, utcnow
from schemas import Cart


def image_url(product: Optional[Dict[str, Any]]) -> str:
    if not product:
        return ""
    return (product.get("image") or {}).get("url") or ""


def cart_totals(items: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "total_amount": round(sum(item["price"] * item["quantity"] for item in items), 2),
        "total_items": sum(item["quantity"] for item in items),
    }


def empty_cart(user_id: str) -> Dict[str, Any]:
    return {"user_id": user_id, "items": [], "total_amount": 0, "total_items": 0}


def find_cart(user_id: str) -> Optional[Dict[str, Any]]:
    return collection("cart").find_one({"user_id": user_id})


def products_by_id(product_ids: List[str]) -> Dict[str, Dict[str, Any]]:
    oids = [ObjectId(pid) for pid in product_ids if ObjectId.is_valid(pid)]
    if not oids:
        return {}
    return {str(p["_id"]): p for p in collection("product").find({"_id": {"$in": oids}})}


def populate_cart(cart: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize a cart with each line's current product details and the derived totals.

    Lines whose product has since been deleted keep ``product: None``.
    """
    data = serialize(cart)
    products = products_by_id([item["product_id"] for item in data.get("items", [])])
    items = []
    for item in data.get("items", []):
        product = products.get(item["product_id"])
        line = dict(item)
        line["product"] = None if product is None else {
            "id": str(product["_id"]),
            "name": product["name"],
            "price": product["price"],
            "image": image_url(product),
            "stock": product.get("stock", 0),
        }
        items.append(line)
    data["items"] = items
    data.update(cart_totals(items))
    return data


def save_items(user_id: str, items: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Replace the user's cart items, creating the cart if needed."""
    items = Cart(user_id=user_id, items=items).model_dump()["items"]
    now = utcnow()
    collection("cart").update_one(
        {"user_id": user_id},
        {"$set": {"items": items, "updated_at": now}, "$setOnInsert": {"user_id": user_id, "created_at": now}},
        upsert=True,
    )
    return find_cart(user_id)


def clear_items(user_id: str) -> None:
    collection("cart").update_one({"user_id": user_id}, {"$set": {"items": [], "updated_at": utcnow()}})

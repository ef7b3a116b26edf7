import logging
import math
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile

from auth import require_admin
from database import collection, create_document, find_by_id, get_documents, serialize, utcnow
from dependencies import get_images
from errors import NotFoundError, ValidationError
from schemas import Product
from uploads import ImageStore, get_base_url, has_file, read_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["Products"])


def _get_product_or_404(product_id: str) -> Dict[str, Any]:
    product = find_by_id("product", product_id)
    if not product:
        raise NotFoundError("Product")
    return product


def _parse_price(value: Optional[str]) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        price = float(value)
    except ValueError:
        raise ValidationError("Price must be a number")
    # float() also parses "inf" and "nan"
    if not math.isfinite(price):
        raise ValidationError("Price must be a number")
    if price < 0:
        raise ValidationError("Price cannot be negative")
    return price


def _parse_stock(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        stock = int(value)
    except ValueError:
        raise ValidationError("Stock must be a whole number")
    if stock < 0:
        raise ValidationError("Stock cannot be negative")
    return stock


def _store_image(request: Request, images: ImageStore, image: Optional[UploadFile]) -> Optional[dict]:
    if not has_file(image):
        return None
    stored = images.store(read_upload(image), get_base_url(request))
    logger.info("Stored product image %s via %s", stored.public_id, stored.storage)
    return stored.model_dump()


# Public endpoints

@router.get("")
def list_products():
    products = [serialize(p) for p in get_documents("product", newest_first=True)]
    return {"success": True, "count": len(products), "products": products}


@router.get("/categories/list")
def list_categories():
    categories = sorted(c for c in collection("product").distinct("category") if c)
    return {"success": True, "categories": categories}


@router.get("/images/{image_id}")
def get_product_image(image_id: str, images: ImageStore = Depends(get_images)):
    image = images.blobs.load(image_id)
    return Response(content=image.data, media_type=image.content_type,
                    headers={"Cache-Control": "public, max-age=31536000"})


@router.get("/{product_id}")
def get_product(product_id: str):
    return {"success": True, "product": serialize(_get_product_or_404(product_id))}


# Admin endpoints

@router.post("", status_code=201)
def create_product(
    request: Request,
    name: str = Form(...),
    price: str = Form(...),
    description: str = Form(""),
    category: str = Form(""),
    stock: str = Form("0"),
    image: Optional[UploadFile] = File(None),
    current: Dict[str, Any] = Depends(require_admin),
    images: ImageStore = Depends(get_images),
):
    if not name.strip():
        raise ValidationError("Product name is required")
    parsed_price = _parse_price(price)
    if parsed_price is None:
        raise ValidationError("Product price is required")
    product = Product(
        name=name.strip(),
        description=description,
        price=parsed_price,
        category=category.strip(),
        stock=_parse_stock(stock) or 0,
        user_id=current["id"],
    )
    doc = product.model_dump()
    doc["image"] = _store_image(request, images, image)
    pid = create_document("product", doc)
    logger.info("Product %s created by %s", pid, current["email"])
    return {"success": True, "message": "Product created successfully", "product": serialize(find_by_id("product", pid))}


@router.post("/upload-image/{product_id}")
def upload_product_image(
    product_id: str,
    request: Request,
    image: Optional[UploadFile] = File(None),
    current: Dict[str, Any] = Depends(require_admin),
    images: ImageStore = Depends(get_images),
):
    product = _get_product_or_404(product_id)
    if not has_file(image):
        raise ValidationError("No image uploaded")
    stored = _store_image(request, images, image)
    images.delete(product.get("image"))
    collection("product").update_one({"_id": product["_id"]}, {"$set": {"image": stored, "updated_at": utcnow()}})
    return {"success": True, "message": "Image uploaded successfully", "product": serialize(find_by_id("product", product_id))}


@router.put("/{product_id}")
def update_product(
    product_id: str,
    request: Request,
    name: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    stock: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    current: Dict[str, Any] = Depends(require_admin),
    images: ImageStore = Depends(get_images),
):
    product = _get_product_or_404(product_id)

    updates: Dict[str, Any] = {}
    if name is not None:
        if not name.strip():
            raise ValidationError("Product name is required")
        updates["name"] = name.strip()
    if description is not None:
        updates["description"] = description
    if category is not None:
        updates["category"] = category.strip()
    parsed_price = _parse_price(price)
    if parsed_price is not None:
        updates["price"] = parsed_price
    parsed_stock = _parse_stock(stock)
    if parsed_stock is not None:
        updates["stock"] = parsed_stock

    stored = _store_image(request, images, image)
    if stored:
        images.delete(product.get("image"))
        updates["image"] = stored

    if updates:
        updates["updated_at"] = utcnow()
        collection("product").update_one({"_id": product["_id"]}, {"$set": updates})
    return {"success": True, "message": "Product updated successfully", "product": serialize(find_by_id("product", product_id))}


@router.delete("/category/{name}")
def delete_category(name: str, current: Dict[str, Any] = Depends(require_admin),
                    images: ImageStore = Depends(get_images)):
    for product in collection("product").find({"category": name}):
        images.delete(product.get("image"))
    result = collection("product").delete_many({"category": name})
    logger.info("Category %r deleted by %s (%d products)", name, current["email"], result.deleted_count)
    return {
        "success": True,
        "message": f"Category '{name}' deleted with {result.deleted_count} product(s) removed",
        "deleted_count": result.deleted_count,
    }


@router.delete("/{product_id}")
def delete_product(product_id: str, current: Dict[str, Any] = Depends(require_admin),
                   images: ImageStore = Depends(get_images)):
    product = _get_product_or_404(product_id)
    images.delete(product.get("image"))
    collection("product").delete_one({"_id": product["_id"]})
    logger.info("Product %s deleted by %s", product_id, current["email"])
    return {"success": True, "message": "Product deleted successfully"}

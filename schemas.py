"""
Database Schemas for the Storefront

Each Pydantic model represents a collection in MongoDB. The collection name is the
lowercase of the class name (e.g., User -> "user").
References between documents are stored as string ids.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

ORDER_STATUSES = ("Pending", "Processing", "Shipped", "Delivered", "Cancelled")
OrderStatus = Literal["Pending", "Processing", "Shipped", "Delivered", "Cancelled"]

DEFAULT_AVATAR_URL = "https://via.placeholder.com/150x150?text=User"


class Avatar(BaseModel):
    public_id: str = "default_avatar"
    url: str = DEFAULT_AVATAR_URL


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address (unique)")
    password_hash: str = Field(..., description="Hashed password, never returned")
    role: Literal["user", "admin"] = Field("user", description="user or admin")
    avatar: Avatar = Field(default_factory=Avatar)


class ProductImage(BaseModel):
    url: str
    public_id: Optional[str] = None
    storage: str = Field("disk", description="Backend that holds the asset: disk, mongodb or cloudinary")


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    name: str = Field(..., description="Product name")
    description: str = Field("", description="Product description")
    price: float = Field(..., ge=0, description="Unit price")
    category: str = Field("", description="Free-text category")
    stock: int = Field(0, ge=0, description="Units on hand")
    image: Optional[ProductImage] = None
    user_id: Optional[str] = Field(None, description="Admin who created the product")


class CartItem(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    price: float = Field(..., ge=0, description="Unit price when the item was added")
    category: str = "N/A"


class Cart(BaseModel):
    """
    Shopping cart collection schema
    Collection name: "cart"
    """
    user_id: str
    items: List[CartItem] = Field(default_factory=list)


class OrderItem(BaseModel):
    product_id: str
    name: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    image: str = ""
    category: str = "N/A"


class ShippingInfo(BaseModel):
    name: str
    address: str
    phone_no: str
    email: Optional[EmailStr] = Field(None, description="Confirmation email recipient; account email when unset")


class PaymentInfo(BaseModel):
    id: str = ""
    status: str


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    user_id: str
    order_items: List[OrderItem]
    shipping_info: ShippingInfo
    payment_info: PaymentInfo
    paid_at: datetime
    items_price: float = 0.0
    total_price: float = 0.0
    order_status: OrderStatus = "Pending"
    delivered_at: Optional[datetime] = None
    invoice_number: str
    notes: Optional[str] = None
    pdf_path: Optional[str] = None

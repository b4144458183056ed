"""
Database Schemas

MongoDB collection schemas for the TechFarm store, defined as Pydantic models.
These schemas are used for data validation in the application.

Each top-level model represents a collection. The collection name is the
class name in snake case:
- User -> "user" collection
- Product -> "product" collection
- ServiceRequest -> "service_request" collection
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

Role = Literal["admin", "user"]
ProductCategory = Literal["hardware", "electrical", "agri-tech"]
OrderStatus = Literal["pending", "in-progress", "ready-for-pickup", "cancelled"]
ServiceStatus = Literal["pending", "assigned", "in-progress", "completed", "cancelled"]
PaymentMethod = Literal["cod", "online", "card", "upi"]
PaymentStatus = Literal["pending", "completed", "failed", "refunded"]
EquipmentCategory = Literal["Electrical", "Hardware", "Agri-Tech", "Solar", "Automation", "Other"]


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password_hash: str = Field(..., description="Password hash (server-side)")
    role: Role = Field("user", description="Role: user | admin")
    is_active: bool = Field(True, description="Whether user is active")


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    name: str = Field(..., min_length=1, description="Product name")
    description: str = Field(..., description="Product description")
    price: float = Field(..., ge=0, description="Price in rupees")
    category: ProductCategory = Field(..., description="hardware | electrical | agri-tech")
    stock: int = Field(0, ge=0, description="Units in stock")
    image: str = Field("default-product.jpg", description="Image URL or file name")
    low_stock_alert: int = Field(10, ge=0, description="Stock level that counts as low")


class CartItem(BaseModel):
    product_id: str = Field(..., description="Product ObjectId as string")
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Product price when added")


class Cart(BaseModel):
    """
    Carts collection schema, one per user
    Collection name: "cart"
    """
    user_id: str
    items: List[CartItem] = Field(default_factory=list)
    subtotal: float = 0
    tax: float = 0
    shipping_cost: float = 0
    total_amount: float = 0


class OrderItem(BaseModel):
    product_id: str = Field(..., description="Product ObjectId as string")
    name: Optional[str] = Field(None, description="Snapshot of product name")
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Price at purchase")
    subtotal: float = Field(..., ge=0)


class StatusEntry(BaseModel):
    status: str
    timestamp: datetime
    note: str = ""


class Payment(BaseModel):
    method: PaymentMethod = "cod"
    status: PaymentStatus = "pending"
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None


class ShippingAddress(BaseModel):
    name: str
    phone: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str = "India"


class Tracking(BaseModel):
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    user_id: str = Field(..., description="User ObjectId as string")
    order_number: str = Field(..., description="ORD + YYMMDD + 4 random digits")
    items: List[OrderItem]
    subtotal: float = Field(..., ge=0)
    tax: float = Field(0, ge=0)
    shipping_cost: float = Field(0, ge=0)
    total_amount: float = Field(..., ge=0)
    status: OrderStatus = "pending"
    status_history: List[StatusEntry] = Field(default_factory=list)
    payment: Payment = Field(default_factory=Payment)
    shipping_address: ShippingAddress
    tracking: Tracking = Field(default_factory=Tracking)
    notes: Optional[str] = None


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class ServiceRequest(BaseModel):
    """
    Service requests collection schema
    Collection name: "service_request"
    """
    user_id: str
    service_type: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    preferred_date: datetime
    preferred_time: str
    contact_number: str
    status: ServiceStatus = "pending"
    status_history: List[StatusEntry] = Field(default_factory=list)
    technician: Optional[str] = Field(None, description="Technician user id")
    scheduled_date: Optional[datetime] = None
    address: Optional[Address] = None


class ServiceType(BaseModel):
    """
    Service types collection schema
    Collection name: "service_type"
    """
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    base_price: float = Field(..., ge=0)
    estimated_duration: float = Field(..., ge=0.5, description="Hours")
    is_active: bool = True


class EquipmentType(BaseModel):
    """
    Equipment types collection schema
    Collection name: "equipment_type"
    """
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: EquipmentCategory = "Other"
    is_active: bool = True

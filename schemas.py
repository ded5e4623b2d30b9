"""
Database Schemas for the Storefront

Each Pydantic model represents a collection in MongoDB.
Collection name is the lowercase class name:
- Product -> "product"
- Category -> "category"
- Order -> "order"
- User -> "user"
- PasswordReset -> "passwordreset"
- StoreConfig -> "storeconfig"
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    PREPARING = "PREPARING"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class ShippingMethod(str, Enum):
    PICKUP = "PICKUP"
    VIA_CARGO = "VIA_CARGO"
    CORREO_ARGENTINO = "CORREO_ARGENTINO"


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    name: str = Field(..., min_length=3, max_length=200, description="Product name")
    description: str = Field(..., max_length=2000, description="Product description")
    price: float = Field(..., ge=0, description="Catalog price")
    images: List[str] = Field(..., min_length=1, description="Image URLs, at least one")
    category: str = Field(..., min_length=1, description="Free-text category label")
    stock: int = Field(0, ge=0, description="Units available")
    is_active: bool = Field(True)
    featured: bool = Field(False)
    is_on_sale: bool = Field(False)
    specifications: Dict[str, str] = Field(default_factory=dict)


class Category(BaseModel):
    """
    Categories collection schema
    Collection name: "category"
    """
    name: str = Field(..., min_length=2, max_length=50)
    slug: str = Field(..., description="URL slug derived from the name")
    description: Optional[str] = Field(None, max_length=500)
    is_active: bool = Field(True)


class OrderItem(BaseModel):
    """Snapshot of a product at checkout time, detached from later catalog edits."""
    product_id: str
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    image: str = ""


class ShippingAddress(BaseModel):
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    province: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    notes: Optional[str] = None


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    user_id: str
    items: List[OrderItem] = Field(..., min_length=1)
    shipping_method: ShippingMethod
    shipping_address: Optional[ShippingAddress] = None
    total_amount: float = Field(..., ge=0)
    shipping_cost: float = Field(0, ge=0)
    order_status: OrderStatus = OrderStatus.PENDING_PAYMENT
    payment_proof: Optional[str] = None
    admin_notes: Optional[str] = None


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    email: EmailStr = Field(..., description="Unique login email")
    password_hash: str = Field(..., description="BCrypt password hash")
    first_name: str
    last_name: str
    phone: Optional[str] = None
    is_admin: bool = Field(False)
    is_active: bool = Field(True)


class PasswordReset(BaseModel):
    """
    Password reset tokens
    Collection name: "passwordreset"
    """
    user_id: str
    token_hash: str = Field(..., description="sha256 hex of the emailed token")
    expires_at: datetime


class BankDetails(BaseModel):
    cbu: str = "0000000000000000000000"
    alias: str = "alias.tienda"
    account_holder: str = "Titular de la Cuenta"
    bank_name: str = "Banco Ejemplo"


class ShippingCosts(BaseModel):
    VIA_CARGO: float = Field(0, ge=0)
    CORREO_ARGENTINO: float = Field(0, ge=0)


class StoreConfig(BaseModel):
    """
    Store settings, a single document
    Collection name: "storeconfig"
    """
    bank_details: BankDetails = Field(default_factory=BankDetails)
    whatsapp_number: str = "5491123456789"
    instagram_url: Optional[str] = None
    store_name: str = "Storefront"
    store_address: Optional[str] = None
    pickup_instructions: str = "Coordinate pickup at the store, Monday to Friday 10 to 18hs."
    shipping_instructions: str = "Shipping cost depends on distance. Shipped by Via Cargo or Correo Argentino."
    home_main_text: str = "Set the main text from the admin panel"
    home_secondary_text: str = "Set the secondary text from the admin panel"
    privacy_policy: str = "Set the privacy policy from the admin panel"
    terms_of_service: str = "Set the terms of service from the admin panel"
    footer_brand_name: str = "Storefront"
    footer_tagline: str = "Privacy is what sets us apart."
    copyright_text: str = "© 2025 Storefront. All rights reserved."
    shipping_costs: ShippingCosts = Field(default_factory=ShippingCosts)

"""Request bodies accepted by the API, one model per operation."""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from schemas import BankDetails, OrderStatus, ShippingAddress, ShippingCosts, ShippingMethod

PASSWORD_MIN = 6
PASSWORD_MAX_BYTES = 72  # bcrypt refuses longer input


def _password_fits_bcrypt(value: str) -> str:
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"password must be at most {PASSWORD_MAX_BYTES} bytes long")
    return value


# Auth
class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=PASSWORD_MIN)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = None

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _password_fits_bcrypt(value)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=PASSWORD_MIN)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _password_fits_bcrypt(value)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=PASSWORD_MIN)

    @field_validator("new_password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _password_fits_bcrypt(value)


# Products
class ProductIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=3, max_length=200)
    description: str = Field(..., max_length=2000)
    price: float = Field(..., ge=0)
    images: List[str] = Field(..., min_length=1)
    category: str = Field(..., min_length=2, max_length=50)
    stock: int = Field(0, ge=0)
    is_active: bool = True
    featured: bool = False
    is_on_sale: bool = False
    specifications: Dict[str, str] = Field(default_factory=dict)


class ProductUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    price: Optional[float] = Field(None, ge=0)
    images: Optional[List[str]] = Field(None, min_length=1)
    category: Optional[str] = Field(None, min_length=2, max_length=50)
    stock: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    featured: Optional[bool] = None
    is_on_sale: Optional[bool] = None
    specifications: Optional[Dict[str, str]] = None


# Categories
class CategoryIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    description: Optional[str] = Field(None, max_length=500)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None


# Orders
class OrderItemIn(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)


class CreateOrderRequest(BaseModel):
    items: List[OrderItemIn] = Field(..., min_length=1)
    shipping_method: ShippingMethod
    shipping_address: Optional[ShippingAddress] = None
    shipping_cost: float = Field(0, ge=0)

    @model_validator(mode="after")
    def address_required_for_delivery(self):
        if self.shipping_method != ShippingMethod.PICKUP and self.shipping_address is None:
            raise ValueError("shipping_address is required unless shipping_method is PICKUP")
        return self


class UpdateOrderStatusRequest(BaseModel):
    order_status: OrderStatus
    admin_notes: Optional[str] = None
    shipping_cost: Optional[float] = Field(None, ge=0)


class PaymentProofRequest(BaseModel):
    payment_proof: str = Field(..., min_length=1)


# Users (admin)
class UserUpdateRequest(BaseModel):
    is_admin: Optional[bool] = None
    is_active: Optional[bool] = None


# Store config
class StoreConfigIn(BaseModel):
    bank_details: BankDetails
    whatsapp_number: str = Field(..., min_length=1)
    instagram_url: Optional[str] = None
    store_name: str = Field(..., min_length=1)
    store_address: Optional[str] = None
    pickup_instructions: Optional[str] = None
    shipping_instructions: Optional[str] = None
    home_main_text: Optional[str] = None
    home_secondary_text: Optional[str] = None
    privacy_policy: Optional[str] = None
    terms_of_service: Optional[str] = None
    footer_brand_name: Optional[str] = None
    footer_tagline: Optional[str] = None
    copyright_text: Optional[str] = None
    shipping_costs: ShippingCosts = Field(default_factory=ShippingCosts)

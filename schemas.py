"""
Schemas for the shoe store API

Request bodies are validated with these models before they reach the
services. Stored documents follow the same field names; the MongoDB
collection name is the lowercase, snake_case form of the class name.
"""
from enum import Enum
from typing import Annotated, Dict, List, Optional, Union

from pydantic import BaseModel, EmailStr, Field, StringConstraints, field_validator

NonBlank = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Stripped = Annotated[str, StringConstraints(strip_whitespace=True)]


class OrderStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"


class PaymentStatus(str, Enum):
    pending = "pending"
    paid = "paid"
    failed = "failed"


class PaymentMethod(str, Enum):
    cod = "cod"
    razorpay = "razorpay"


# Catalog

class ProductVariant(BaseModel):
    size: int = Field(..., gt=0, description="Numeric shoe size")
    stock: int = Field(0, ge=0)


class ProductCreate(BaseModel):
    name: NonBlank
    sku: NonBlank
    price: int = Field(..., gt=0, description="Price in major currency units")
    discount_price: Optional[int] = Field(None, gt=0, description="Strike-through reference price")
    description: NonBlank
    long_description: Optional[str] = None
    material: NonBlank
    sole: Optional[str] = None
    quality: Optional[str] = None
    color: Optional[str] = None
    color_code: Optional[str] = None
    category: Optional[str] = None
    images: List[str] = []
    is_active: bool = True
    is_featured: bool = False
    is_on_sale: bool = False
    variants: List[ProductVariant] = []


class ProductUpdate(BaseModel):
    name: Optional[NonBlank] = None
    price: Optional[int] = Field(None, gt=0)
    discount_price: Optional[int] = Field(None, gt=0)
    description: Optional[str] = None
    long_description: Optional[str] = None
    material: Optional[str] = None
    sole: Optional[str] = None
    quality: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    is_out_of_stock: Optional[bool] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    is_on_sale: Optional[bool] = None
    images: Optional[List[str]] = None
    color: Optional[str] = None
    color_code: Optional[str] = None
    category: Optional[str] = None
    sizes: Optional[List[int]] = None
    variants: Optional[List[ProductVariant]] = None


# Checkout

class CustomerIn(BaseModel):
    name: NonBlank
    email: EmailStr
    phone: NonBlank

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class AddressIn(BaseModel):
    full_name: Optional[Stripped] = None
    phone: Optional[Stripped] = None
    address_line1: NonBlank
    address_line2: Optional[Stripped] = None
    city: NonBlank
    state: NonBlank
    pincode: NonBlank = Field(..., description="Postal code")
    country: Optional[Stripped] = None


class CartItem(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    size: Optional[int] = None


class CheckoutRequest(BaseModel):
    customer: CustomerIn
    address: AddressIn
    items: List[CartItem] = Field(..., min_length=1)


class PaymentVerifyRequest(BaseModel):
    razorpay_order_id: NonBlank
    razorpay_payment_id: NonBlank
    razorpay_signature: NonBlank
    order_id: NonBlank


class PaymentHandle(BaseModel):
    order_id: str
    razorpay_order_id: str
    amount: int
    currency: str
    key_id: str


# Back office

class OrderUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    tracking_number: Optional[str] = None
    courier_name: Optional[str] = None
    admin_note: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class AdminOut(BaseModel):
    id: str
    email: EmailStr
    role: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    admin: AdminOut


SettingsUpdate = Dict[str, Union[bool, str, int]]

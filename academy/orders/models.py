from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from enum import Enum

# ==================== ENUMS ====================

class PaymentMethod(str, Enum):
    RAZORPAY = "razorpay"
    CARD = "card"
    PAYPAL = "paypal"
    STRIPE = "stripe"

class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"

class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

# ==================== REQUEST MODELS ====================

class LineItemIn(BaseModel):
    course_id: str
    title: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    thumbnail: Optional[str] = None

class BillingInfo(BaseModel):
    first_name: str
    last_name: str = ""
    email: str
    phone_number: str = ""
    country: str = ""
    state: str = ""
    city: str = ""
    zip_code: str = ""

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()

class Pricing(BaseModel):
    subtotal: float = Field(0, ge=0)
    discount: float = Field(0, ge=0)
    total: float = Field(0, ge=0)
    currency: str = "INR"

class OrderCreate(BaseModel):
    user_id: Optional[str] = None  # defaults to the caller
    courses: List[LineItemIn] = Field(..., min_length=1)
    billing_info: BillingInfo
    payment_method: PaymentMethod = PaymentMethod.RAZORPAY
    pricing: Pricing = Pricing()

class GatewayDetails(BaseModel):
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    gateway_signature: Optional[str] = None
    transaction_id: Optional[str] = None

class CompleteOrderRequest(GatewayDetails):
    order_id: str

class FailOrderRequest(BaseModel):
    reason: Optional[str] = None

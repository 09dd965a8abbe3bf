from datetime import datetime
from typing import Optional

from pydantic import Field

from app.schemas.base import CamelModel


class CreateOrderSchema(CamelModel):
    movie_id: str = Field(min_length=1)
    device_id: str = Field(min_length=1)


class CreateOrderResponse(CamelModel):
    success: bool = True
    order_id: str
    razorpay_order_id: str
    amount: float
    currency: str
    key: str


class RazorpayPaymentVerifySchema(CamelModel):
    order_id: str
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str
    movie_id: Optional[str] = None


class AccessGrant(CamelModel):
    access_id: str
    token: str
    expiry_time: datetime
    movie_id: str
    movie_path: str


class VerifyResponse(CamelModel):
    success: bool = True
    message: str = "Payment verified successfully"
    access: AccessGrant


class ValidateAccessSchema(CamelModel):
    token: str = Field(min_length=1)
    device_id: str = Field(min_length=1)


class ValidatedAccess(CamelModel):
    access_id: str
    expiry_time: datetime
    movie_path: str


class ValidateAccessResponse(CamelModel):
    success: bool
    valid: bool
    reason: Optional[str] = None
    message: str
    server_time: datetime
    access: Optional[ValidatedAccess] = None

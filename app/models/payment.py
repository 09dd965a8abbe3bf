from sqlmodel import SQLModel, Field, Column, JSON
from typing import Any, Dict, Optional
from datetime import datetime

from app.constants.payment_status import PaymentStatus
from app.utils.clock import utcnow


class Payment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    payment_id: str = Field(unique=True, index=True)

    user_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)  # null for guests
    movie_id: int = Field(foreign_key="movie.id", index=True)
    device_id: Optional[str] = None

    gateway: str = Field(default="razorpay")
    gateway_order_id: Optional[str] = Field(default=None, index=True)
    gateway_payment_id: Optional[str] = Field(default=None, index=True)

    amount: float
    currency: str = Field(default="INR")
    status: PaymentStatus = Field(default=PaymentStatus.created)

    # access.id; no FK so payment <-> access does not form a cycle
    access_id: Optional[int] = Field(default=None, index=True)

    meta: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime

from app.constants.payment_status import PaymentStatus
from app.utils.clock import utcnow


class Access(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    access_id: str = Field(unique=True, index=True)
    token: str = Field(unique=True, index=True)

    user_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    movie_id: int = Field(foreign_key="movie.id", index=True)
    device_id: Optional[str] = Field(default=None, index=True)

    # one access per payment
    payment_id: int = Field(foreign_key="payment.id", unique=True)
    payment_status: PaymentStatus = Field(default=PaymentStatus.success)

    start_time: Optional[datetime] = None
    expiry_time: datetime = Field(index=True)  # fixed at mint, only revocation moves it
    playback_started: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime

from app.constants.payment_status import MovieStatus
from app.utils.clock import utcnow


class Movie(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    movie_id: str = Field(unique=True, index=True)

    title: str
    description: Optional[str] = None

    duration_seconds: int = Field(default=0, ge=0)
    price: float = Field(gt=0)
    currency: str = Field(default="INR")

    # media store keys
    file_path: str
    poster_path: Optional[str] = None

    status: MovieStatus = Field(default=MovieStatus.draft)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

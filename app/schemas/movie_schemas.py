from datetime import datetime
from typing import Optional

from app.constants.payment_status import MovieStatus
from app.schemas.base import CamelModel


class MoviePublic(CamelModel):
    movie_id: str
    title: str
    description: Optional[str] = None
    duration_seconds: int
    price: float
    currency: str
    poster_path: Optional[str] = None
    status: MovieStatus
    created_at: datetime


class MovieAdmin(MoviePublic):
    file_path: str
    updated_at: datetime

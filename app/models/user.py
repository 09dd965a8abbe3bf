from sqlmodel import SQLModel, Field, Column, JSON
from typing import List, Optional
from datetime import datetime

from app.utils.clock import utcnow


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(unique=True, index=True)
    name: str
    email: str = Field(unique=True, index=True)
    password: str
    role: str = Field(default="user")  # user | admin
    is_active: bool = Field(default=True)
    device_ids: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    last_login: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

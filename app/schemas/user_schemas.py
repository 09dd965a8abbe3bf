from pydantic import EmailStr, Field
from typing import Optional

from app.schemas.base import CamelModel


class UserSignup(CamelModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    device_id: Optional[str] = None


class UserLogin(CamelModel):
    email: EmailStr
    password: str
    device_id: Optional[str] = None


class RefreshTokenRequest(CamelModel):
    refresh_token: str


class UserProfile(CamelModel):
    user_id: str
    name: str
    email: EmailStr
    role: str
    is_admin: bool = False
    is_active: bool = True


class AuthResponse(CamelModel):
    success: bool = True
    message: str
    user: UserProfile
    access_token: str
    refresh_token: str


class TokenPair(CamelModel):
    success: bool = True
    access_token: str
    refresh_token: str

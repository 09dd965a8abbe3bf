from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select
from app.config import settings
from app.database import get_session
from app.models.user import User
from app.schemas.user_schemas import (
    AuthResponse,
    RefreshTokenRequest,
    TokenPair,
    UserLogin,
    UserProfile,
    UserSignup,
)
from app.services.id_allocator import insert_with_id
from app.utils.clock import utcnow
from app.utils.hash import hash_password, verify_password
from app.utils.token import create_token_pair, decode_refresh_token, get_current_user


router = APIRouter()


def _profile(user: User) -> UserProfile:
    return UserProfile(
        user_id=user.user_id,
        name=user.name,
        email=user.email,
        role=user.role,
        is_admin=user.role == "admin",
        is_active=user.is_active,
    )


@router.post("/signup", response_model=AuthResponse, status_code=201)
def signup(payload: UserSignup, session: Session = Depends(get_session)):
    if payload.email == settings.admin_email:
        raise HTTPException(403, "This email is reserved. Please use a different email.")

    existing_user = session.exec(select(User).where(User.email == payload.email)).first()
    if existing_user:
        raise HTTPException(409, "Email already registered")

    user = insert_with_id(
        session,
        "user",
        lambda user_id: User(
            user_id=user_id,
            name=payload.name,
            email=payload.email,
            password=hash_password(payload.password),
            device_ids=[payload.device_id] if payload.device_id else [],
        ),
    )

    return AuthResponse(
        message="Account created successfully",
        user=_profile(user),
        **create_token_pair(user),
    )


@router.post("/login", response_model=AuthResponse)
def login(payload: UserLogin, session: Session = Depends(get_session)):
    user = session.exec(select(User).where(User.email == payload.email)).first()

    if not user or not verify_password(payload.password, user.password):
        raise HTTPException(401, "Invalid email or password")

    if not user.is_active:
        raise HTTPException(403, "Account is disabled. Contact support.")

    if payload.device_id and payload.device_id not in (user.device_ids or []):
        user.device_ids = [*(user.device_ids or []), payload.device_id]

    user.last_login = utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)

    return AuthResponse(
        message="Admin login successful" if user.role == "admin" else "Login successful",
        user=_profile(user),
        **create_token_pair(user),
    )


@router.post("/refresh-token", response_model=TokenPair)
def refresh_token(payload: RefreshTokenRequest, session: Session = Depends(get_session)):
    claims = decode_refresh_token(payload.refresh_token)
    if not claims:
        raise HTTPException(401, "Invalid or expired refresh token")

    user = session.exec(select(User).where(User.user_id == claims.get("user_id"))).first()
    if not user or not user.is_active:
        raise HTTPException(401, "Invalid refresh token")

    return TokenPair(**create_token_pair(user))


@router.get("/profile")
def profile(current_user: User = Depends(get_current_user)):
    return {"success": True, "user": _profile(current_user)}

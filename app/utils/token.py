from jose import jwt, JWTError
from datetime import timedelta
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session, select
from app.config import settings
from app.database import get_session
from app.models.user import User
from app.utils.clock import utcnow

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def _encode(data: dict, secret: str, expires_delta: timedelta, token_type: str) -> str:
    to_encode = data.copy()
    to_encode.update({"exp": utcnow() + expires_delta, "type": token_type})
    return jwt.encode(to_encode, secret, algorithm=settings.algorithm)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    return _encode(
        data,
        settings.secret_key,
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes),
        "access",
    )


def create_refresh_token(data: dict):
    return _encode(
        data,
        settings.refresh_secret_key,
        timedelta(days=settings.refresh_token_expire_days),
        "refresh",
    )


def create_token_pair(user: User) -> dict:
    claims = {"user_id": user.user_id, "is_admin": user.role == "admin"}
    return {
        "access_token": create_access_token(claims),
        "refresh_token": create_refresh_token(claims),
    }


def _decode(token: str, secret: str, token_type: str):
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.algorithm],
        )
    except JWTError:
        return None
    if payload.get("type") != token_type:
        return None
    return payload


def decode_access_token(token: str):
    return _decode(token, settings.secret_key, "access")


def decode_refresh_token(token: str):
    return _decode(token, settings.refresh_secret_key, "refresh")


def _user_from_payload(payload: Optional[dict], session: Session) -> Optional[User]:
    if not payload or not payload.get("user_id"):
        return None
    return session.exec(
        select(User).where(User.user_id == payload["user_id"])
    ).first()


def get_current_user(
    token: str = Depends(oauth2_scheme),
    session: Session = Depends(get_session)
) -> User:
    payload = decode_access_token(token)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = _user_from_payload(payload, session)

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled"
        )

    return user


def get_optional_user(
    token: Optional[str] = Depends(optional_oauth2_scheme),
    session: Session = Depends(get_session)
) -> Optional[User]:
    """Bearer identity when present and valid, otherwise None (guest checkout)."""
    if not token:
        return None
    user = _user_from_payload(decode_access_token(token), session)
    if user is None or not user.is_active:
        return None
    return user

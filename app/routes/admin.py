from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select

from app.constants.payment_status import PaymentStatus
from app.database import get_session
from app.dependencies.admin import require_admin
from app.models.access import Access
from app.models.movie import Movie
from app.models.payment import Payment
from app.models.user import User
from app.services import access_service
from app.services.exceptions import AccessNotFound
from app.utils.clock import utcnow
from app.utils.pagination import paginate

router = APIRouter()


def _user_summary(user: Optional[User]):
    if not user:
        return None
    return {"userId": user.user_id, "name": user.name, "email": user.email}


# ============ ACCESS MANAGEMENT ============

@router.get("/access")
def list_access(
    status: Optional[str] = Query(None, pattern="^(all|active|expired)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    now = utcnow()
    query = (
        select(Access, Movie, User)
        .join(Movie, Movie.id == Access.movie_id)
        .join(User, User.id == Access.user_id, isouter=True)
    )

    if status == "active":
        query = query.where(Access.expiry_time > now).where(
            Access.payment_status == PaymentStatus.success
        )
    elif status == "expired":
        query = query.where(Access.expiry_time <= now)

    query = query.order_by(Access.created_at.desc(), Access.id.desc())

    def serialize(row):
        access, movie, user = row
        return {
            "accessId": access.access_id,
            "deviceId": access.device_id,
            "expiryTime": access.expiry_time,
            "startTime": access.start_time,
            "playbackStarted": access.playback_started,
            "paymentStatus": access.payment_status,
            "isActive": access_service.is_access_live(access, now),
            "createdAt": access.created_at,
            "movie": {"movieId": movie.movie_id, "title": movie.title},
            "user": _user_summary(user),
        }

    data = paginate(session=session, query=query, page=page, limit=limit, serialize=serialize)
    return {
        "success": True,
        "accessList": data.pop("results"),
        **data,
    }


@router.delete("/access/{access_id}")
def revoke_access(
    access_id: str,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    try:
        access_service.revoke(session, access_id)
    except AccessNotFound:
        raise HTTPException(404, "Access not found")

    return {"success": True, "message": "Access revoked successfully"}


# ============ USERS ============

@router.get("/users")
def list_users(
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    query = select(User).where(User.role == "user")
    if search:
        s = f"%{search}%"
        query = query.where(
            (User.name.ilike(s)) | (User.email.ilike(s)) | (User.user_id.ilike(s))
        )
    query = query.order_by(User.created_at.desc())

    data = paginate(
        session=session,
        query=query,
        page=page,
        limit=limit,
        serialize=lambda u: {
            "userId": u.user_id,
            "name": u.name,
            "email": u.email,
            "isActive": u.is_active,
            "deviceIds": u.device_ids,
            "lastLogin": u.last_login,
            "createdAt": u.created_at,
        },
    )
    return {"success": True, "users": data.pop("results"), **data}


def _get_user(session: Session, user_id: str) -> User:
    user = session.exec(select(User).where(User.user_id == user_id)).first()
    if not user:
        raise HTTPException(404, "User not found")
    return user


@router.get("/users/{user_id}/details")
def user_details(
    user_id: str,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    user = _get_user(session, user_id)

    purchases = session.exec(
        select(Payment, Movie)
        .join(Movie, Movie.id == Payment.movie_id)
        .where(Payment.user_id == user.id)
        .where(Payment.status == PaymentStatus.success)
        .order_by(Payment.created_at.desc())
    ).all()

    return {
        "success": True,
        "user": {
            **_user_summary(user),
            "isActive": user.is_active,
            "deviceIds": user.device_ids,
            "lastLogin": user.last_login,
            "createdAt": user.created_at,
        },
        "purchases": [
            {
                "paymentId": p.payment_id,
                "amount": p.amount,
                "currency": p.currency,
                "movie": {"movieId": m.movie_id, "title": m.title},
                "createdAt": p.created_at,
            }
            for p, m in purchases
        ],
    }


@router.put("/users/{user_id}/toggle-status")
def toggle_user_status(
    user_id: str,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    user = _get_user(session, user_id)
    if user.role == "admin":
        raise HTTPException(400, "Admin accounts cannot be deactivated")

    user.is_active = not user.is_active
    session.add(user)
    session.commit()
    session.refresh(user)

    return {
        "success": True,
        "message": f"User {'activated' if user.is_active else 'deactivated'} successfully",
        "user": {"userId": user.user_id, "isActive": user.is_active},
    }

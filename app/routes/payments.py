import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlmodel import Session, select

from app.constants.payment_status import PaymentStatus
from app.database import get_session
from app.dependencies.services import get_media_store, get_payment_gateway
from app.models.access import Access
from app.models.movie import Movie
from app.models.payment import Payment
from app.models.user import User
from app.schemas.payment_schemas import (
    AccessGrant,
    CreateOrderResponse,
    CreateOrderSchema,
    RazorpayPaymentVerifySchema,
    ValidateAccessResponse,
    ValidateAccessSchema,
    ValidatedAccess,
    VerifyResponse,
)
from app.services import access_service, order_service
from app.services.exceptions import (
    AlreadyEntitled,
    NotFound,
    OrderMismatch,
    UpstreamGatewayError,
)
from app.utils.clock import utcnow
from app.utils.token import get_current_user, get_optional_user

logger = logging.getLogger(__name__)

router = APIRouter()


def seconds_left(access: Access) -> int:
    return int((access.expiry_time - utcnow()).total_seconds())


@router.post("/create-order", response_model=CreateOrderResponse)
def create_order(
    payload: CreateOrderSchema,
    session: Session = Depends(get_session),
    gateway=Depends(get_payment_gateway),
    current_user: Optional[User] = Depends(get_optional_user),
):
    try:
        handle = order_service.create_order(
            session,
            gateway,
            movie_id=payload.movie_id,
            device_id=payload.device_id,
            user=current_user,
        )
    except NotFound:
        raise HTTPException(404, "Movie not found")
    except AlreadyEntitled as e:
        return JSONResponse(
            status_code=409,
            content={
                "success": False,
                "message": "You already have active access to this movie",
                "access": {
                    "accessId": e.access.access_id,
                    "expiryTime": e.access.expiry_time.isoformat(),
                },
            },
        )
    except UpstreamGatewayError:
        raise HTTPException(502, "Failed to create payment order, please retry")

    return CreateOrderResponse(
        order_id=handle.payment.payment_id,
        razorpay_order_id=handle.payment.gateway_order_id,
        amount=handle.payment.amount,
        currency=handle.payment.currency,
        key=handle.key,
    )


@router.post("/verify", response_model=VerifyResponse)
def verify_payment(
    payload: RazorpayPaymentVerifySchema,
    session: Session = Depends(get_session),
    gateway=Depends(get_payment_gateway),
    media_store=Depends(get_media_store),
    current_user: Optional[User] = Depends(get_optional_user),
):
    try:
        outcome = order_service.verify(
            session,
            gateway,
            order_id=payload.order_id,
            gateway_order_id=payload.razorpay_order_id,
            gateway_payment_id=payload.razorpay_payment_id,
            signature=payload.razorpay_signature,
            user=current_user,
            movie_id=payload.movie_id,
        )
    except NotFound:
        raise HTTPException(404, "Payment not found")
    except OrderMismatch:
        raise HTTPException(400, "Order mismatch")

    if not outcome.ok:
        # signature details stay server side
        raise HTTPException(400, "Payment could not be confirmed")

    access = outcome.access
    return VerifyResponse(
        access=AccessGrant(
            access_id=access.access_id,
            token=access.token,
            expiry_time=access.expiry_time,
            movie_id=outcome.movie.movie_id,
            movie_path=media_store.stream_url(outcome.movie.file_path, seconds_left(access)),
        )
    )


@router.post("/validate-access", response_model=ValidateAccessResponse)
def validate_access(
    payload: ValidateAccessSchema,
    session: Session = Depends(get_session),
    media_store=Depends(get_media_store),
):
    check = access_service.validate(session, payload.token, payload.device_id)

    if not check.valid:
        return ValidateAccessResponse(
            success=False,
            valid=False,
            reason=check.reason,
            message=check.message,
            server_time=utcnow(),
        )

    return ValidateAccessResponse(
        success=True,
        valid=True,
        message=check.message,
        server_time=utcnow(),
        access=ValidatedAccess(
            access_id=check.access.access_id,
            expiry_time=check.access.expiry_time,
            movie_path=media_store.stream_url(check.movie.file_path, seconds_left(check.access)),
        ),
    )


@router.get("/my-purchases")
def my_purchases(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    rows = session.exec(
        select(Payment, Movie, Access)
        .join(Movie, Movie.id == Payment.movie_id)
        .join(Access, Access.id == Payment.access_id, isouter=True)
        .where(Payment.user_id == current_user.id)
        .where(Payment.status == PaymentStatus.success)
        .order_by(Payment.created_at.desc())
    ).all()

    now = utcnow()
    return {
        "success": True,
        "purchases": [
            {
                "paymentId": p.payment_id,
                "amount": p.amount,
                "currency": p.currency,
                "createdAt": p.created_at,
                "movie": {
                    "movieId": m.movie_id,
                    "title": m.title,
                    "posterPath": m.poster_path,
                    "durationSeconds": m.duration_seconds,
                },
                "access": {
                    "accessId": a.access_id,
                    "expiryTime": a.expiry_time,
                    "playbackStarted": a.playback_started,
                    "isActive": access_service.is_access_live(a, now),
                } if a else None,
            }
            for p, m, a in rows
        ],
    }

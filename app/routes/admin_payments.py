from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select

from app.constants.payment_status import PaymentStatus
from app.database import get_session
from app.dependencies.admin import require_admin
from app.dependencies.services import get_payment_gateway
from app.models.access import Access
from app.models.movie import Movie
from app.models.payment import Payment
from app.models.user import User
from app.services import order_service
from app.services.exceptions import (
    InvalidPaymentTransition,
    PaymentNotFound,
    UpstreamGatewayError,
)
from app.utils.pagination import paginate

router = APIRouter()


def _payment_row(payment: Payment, movie: Movie, user: Optional[User], access: Optional[Access]):
    return {
        "paymentId": payment.payment_id,
        "gateway": payment.gateway,
        "gatewayOrderId": payment.gateway_order_id,
        "gatewayPaymentId": payment.gateway_payment_id,
        "amount": payment.amount,
        "currency": payment.currency,
        "status": payment.status,
        "deviceId": payment.device_id,
        "movie": {"movieId": movie.movie_id, "title": movie.title},
        "user": {"userId": user.user_id, "name": user.name, "email": user.email} if user else None,
        "accessId": access.access_id if access else None,
        "createdAt": payment.created_at,
        "updatedAt": payment.updated_at,
    }


def _payments_query():
    return (
        select(Payment, Movie, User, Access)
        .join(Movie, Movie.id == Payment.movie_id)
        .join(User, User.id == Payment.user_id, isouter=True)
        .join(Access, Access.id == Payment.access_id, isouter=True)
    )


@router.get("")
def list_payments(
    status: Optional[PaymentStatus] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    query = _payments_query()

    if status:
        query = query.where(Payment.status == status)

    if search:
        s = f"%{search}%"
        query = query.where(
            (Payment.payment_id.ilike(s)) |
            (Payment.gateway_order_id.ilike(s)) |
            (Payment.gateway_payment_id.ilike(s)) |
            (Movie.title.ilike(s))
        )

    query = query.order_by(Payment.created_at.desc(), Payment.id.desc())

    data = paginate(
        session=session,
        query=query,
        page=page,
        limit=limit,
        serialize=lambda row: _payment_row(*row),
    )
    return {"success": True, "payments": data.pop("results"), **data}


@router.get("/{payment_id}")
def get_payment_details(
    payment_id: str,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    row = session.exec(
        _payments_query().where(Payment.payment_id == payment_id)
    ).first()
    if not row:
        raise HTTPException(404, "Payment not found")

    payment = row[0]
    return {"success": True, "payment": {**_payment_row(*row), "meta": payment.meta}}


@router.post("/{payment_id}/refund")
def refund_payment(
    payment_id: str,
    session: Session = Depends(get_session),
    gateway=Depends(get_payment_gateway),
    admin: User = Depends(require_admin),
):
    """
    Refund a successful payment (admin). The linked access is revoked.
    """
    try:
        payment = order_service.refund_payment(session, gateway, payment_id)
    except PaymentNotFound:
        raise HTTPException(404, "Payment not found")
    except InvalidPaymentTransition:
        raise HTTPException(400, "Only successful payments can be refunded")
    except UpstreamGatewayError:
        raise HTTPException(502, "Refund failed at the payment gateway, please retry")

    return {
        "success": True,
        "message": "Payment refunded successfully",
        "paymentId": payment.payment_id,
        "status": payment.status,
    }

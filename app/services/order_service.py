import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from app.config import settings
from app.constants.payment_status import ALLOWED_TRANSITIONS, MovieStatus, PaymentStatus
from app.models.access import Access
from app.models.movie import Movie
from app.models.payment import Payment
from app.models.user import User
from app.services import access_service
from app.services.exceptions import (
    AlreadyEntitled,
    InvalidPaymentTransition,
    MovieNotFound,
    OrderMismatch,
    PaymentNotFound,
)
from app.services.id_allocator import insert_with_id, next_id
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

INVALID_SIGNATURE = "invalid_signature"
PAYMENT_FAILED = "payment_failed"
PAYMENT_REFUNDED = "payment_refunded"


@dataclass
class OrderHandle:
    payment: Payment
    gateway_order: Dict[str, Any]
    key: str


@dataclass
class VerifyOutcome:
    ok: bool
    payment: Payment
    reason: Optional[str] = None
    access: Optional[Access] = None
    movie: Optional[Movie] = None


def transition_payment(payment: Payment, new_status: PaymentStatus) -> Payment:
    if new_status not in ALLOWED_TRANSITIONS[PaymentStatus(payment.status)]:
        raise InvalidPaymentTransition(payment.status, new_status)
    payment.status = new_status
    payment.updated_at = utcnow()
    return payment


def _merge_meta(payment: Payment, **entries) -> None:
    # reassign so the JSON column is flagged dirty
    payment.meta = {**(payment.meta or {}), **entries}


def _advance_payment(session: Session, payment: Payment, new_status: PaymentStatus, **values) -> bool:
    """
    Compare-and-set a status change against the stored row, not the loaded
    one. Returns False when a concurrent writer moved the payment first;
    ``payment`` is refreshed either way.
    """
    sources = [s for s, targets in ALLOWED_TRANSITIONS.items() if new_status in targets]
    result = session.connection().execute(
        update(Payment)
        .where(Payment.id == payment.id)
        .where(Payment.status.in_(sources))
        .values(status=new_status, updated_at=utcnow(), **values)
    )
    session.commit()
    session.refresh(payment)
    return bool(result.rowcount)


def get_movie(session: Session, movie_id: str) -> Movie:
    """Purchasable movie: unknown, draft and archived movies are all not found."""
    movie = session.exec(select(Movie).where(Movie.movie_id == movie_id)).first()
    if not movie or movie.status != MovieStatus.published:
        raise MovieNotFound(f"Movie {movie_id} not found")
    return movie


def create_order(
    session: Session,
    gateway,
    movie_id: str,
    device_id: str,
    user: Optional[User] = None,
) -> OrderHandle:
    """
    Open a gateway order for one movie on one device.

    Two concurrent calls for the same movie and device can both pass the
    entitlement check; only one of them can be paid for real, and both rows
    stay visible to admins.
    """
    movie = get_movie(session, movie_id)

    existing = access_service.find_active_access(session, movie.id, device_id)
    if existing:
        raise AlreadyEntitled(existing)

    payment_id = next_id(session, "payment")

    # raises UpstreamGatewayError before anything is persisted
    gateway_order = gateway.create_order(
        amount=movie.price,
        currency=movie.currency,
        receipt=payment_id,
        notes={
            "movieId": movie.movie_id,
            "deviceId": device_id,
            "userId": user.user_id if user else "guest",
        },
    )

    payment = insert_with_id(
        session,
        "payment",
        lambda pid: Payment(
            payment_id=pid,
            user_id=user.id if user else None,
            movie_id=movie.id,
            device_id=device_id,
            gateway=gateway.name,
            gateway_order_id=gateway_order["id"],
            amount=movie.price,
            currency=movie.currency,
            status=PaymentStatus.created,
            meta={"order": gateway_order},
        ),
        first_id=payment_id,
    )

    logger.info(f"Payment {payment.payment_id} created for movie {movie.movie_id} on device {device_id}")
    return OrderHandle(payment=payment, gateway_order=gateway_order, key=gateway.key_id)


def _access_for_payment(session: Session, payment: Payment) -> Optional[Access]:
    return session.exec(select(Access).where(Access.payment_id == payment.id)).first()


def mint_access(session: Session, payment: Payment, now: Optional[datetime] = None) -> Access:
    """
    Create the access for a successful payment, at most once per payment.

    The expiry is computed here and never recomputed, so later edits to the
    movie do not move it.
    """
    existing = _access_for_payment(session, payment)
    if existing is None:
        movie = session.get(Movie, payment.movie_id)
        now = now or utcnow()
        expiry_time = now + timedelta(
            seconds=movie.duration_seconds + settings.access_grace_seconds
        )

        existing = insert_with_id(
            session,
            "access",
            lambda access_id: Access(
                access_id=access_id,
                token=secrets.token_hex(32),
                user_id=payment.user_id,
                movie_id=payment.movie_id,
                device_id=payment.device_id,
                payment_id=payment.id,
                payment_status=PaymentStatus.success,
                expiry_time=expiry_time,
                created_at=now,
                updated_at=now,
            ),
            on_conflict=lambda: _access_for_payment(session, payment),
        )
        logger.info(f"Access {existing.access_id} minted for payment {payment.payment_id}")

    if payment.access_id != existing.id:
        payment.access_id = existing.id
        payment.updated_at = utcnow()
        session.add(payment)
        session.commit()
        session.refresh(payment)

    return existing


def _settled(session: Session, payment: Payment, now: Optional[datetime]) -> VerifyOutcome:
    access = mint_access(session, payment, now=now)
    movie = session.get(Movie, payment.movie_id)
    return VerifyOutcome(ok=True, payment=payment, access=access, movie=movie)


def verify(
    session: Session,
    gateway,
    order_id: str,
    gateway_order_id: str,
    gateway_payment_id: str,
    signature: str,
    user: Optional[User] = None,
    movie_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> VerifyOutcome:
    payment = session.exec(
        select(Payment).where(Payment.payment_id == order_id)
    ).first()
    if not payment:
        raise PaymentNotFound(f"Payment {order_id} not found")

    if movie_id is not None:
        movie = session.get(Movie, payment.movie_id)
        if movie.movie_id != movie_id:
            raise PaymentNotFound(f"Payment {order_id} not found for movie {movie_id}")

    if payment.gateway_order_id != gateway_order_id:
        raise OrderMismatch(f"Gateway order does not belong to payment {order_id}")

    if payment.status == PaymentStatus.created:
        _advance_payment(session, payment, PaymentStatus.initiated, gateway_payment_id=gateway_payment_id)

    # checked on every call, retries of a settled payment included
    if not gateway.verify_signature(gateway_order_id, gateway_payment_id, signature):
        failure = {"reason": INVALID_SIGNATURE, "gateway_payment_id": gateway_payment_id}
        if _advance_payment(session, payment, PaymentStatus.failed, meta={**(payment.meta or {}), "failure": failure}):
            logger.warning(f"Invalid signature for payment {payment.payment_id}")
        else:
            logger.warning(f"Invalid signature for payment {payment.payment_id} in status {payment.status}")
        return VerifyOutcome(ok=False, payment=payment, reason=INVALID_SIGNATURE)

    if payment.status in (PaymentStatus.created, PaymentStatus.initiated):
        values = {"gateway_payment_id": gateway_payment_id}
        if user and payment.user_id is None:
            values["user_id"] = user.id
        _advance_payment(session, payment, PaymentStatus.success, **values)

    # also covers a concurrent verify that settled or failed it first
    if payment.status == PaymentStatus.success:
        return _settled(session, payment, now)

    reason = PAYMENT_REFUNDED if payment.status == PaymentStatus.refunded else PAYMENT_FAILED
    return VerifyOutcome(ok=False, payment=payment, reason=reason)


def refund_payment(session: Session, gateway, payment_id: str) -> Payment:
    """Admin refund: gateway refund, mark refunded, revoke the linked access."""
    payment = session.exec(
        select(Payment).where(Payment.payment_id == payment_id)
    ).first()
    if not payment:
        raise PaymentNotFound(f"Payment {payment_id} not found")

    if PaymentStatus.refunded not in ALLOWED_TRANSITIONS[PaymentStatus(payment.status)]:
        raise InvalidPaymentTransition(payment.status, PaymentStatus.refunded)

    refund = gateway.refund(payment.gateway_payment_id, payment.amount)

    transition_payment(payment, PaymentStatus.refunded)
    _merge_meta(payment, refund=refund)
    session.add(payment)
    session.commit()
    session.refresh(payment)
    logger.info(f"Payment {payment.payment_id} refunded")

    access = _access_for_payment(session, payment)
    if access:
        access_service.revoke(session, access.access_id)

    return payment


def reconcile_missing_access(session: Session) -> int:
    """Mint the access of every successful payment that lacks one."""
    orphans = session.exec(
        select(Payment)
        .where(Payment.status == PaymentStatus.success)
        .where(Payment.access_id == None)  # noqa: E711
    ).all()

    for payment in orphans:
        access = mint_access(session, payment)
        logger.info(f"Reconciled payment {payment.payment_id} -> access {access.access_id}")

    return len(orphans)

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlmodel import Session, select

from app.constants.payment_status import PaymentStatus
from app.models.access import Access
from app.models.movie import Movie
from app.services.exceptions import AccessNotFound
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

NOT_FOUND = "not_found"
EXPIRED = "expired"
PAYMENT_NOT_SUCCESSFUL = "payment_not_successful"

REASON_MESSAGES = {
    NOT_FOUND: "Access not found",
    EXPIRED: "Access expired",
    PAYMENT_NOT_SUCCESSFUL: "Payment not successful",
}


@dataclass
class AccessCheck:
    valid: bool
    reason: Optional[str] = None
    access: Optional[Access] = None
    movie: Optional[Movie] = None

    @property
    def message(self) -> str:
        return REASON_MESSAGES.get(self.reason, "Access valid")


def is_access_live(access: Access, now: datetime) -> bool:
    return now < access.expiry_time and access.payment_status == PaymentStatus.success


def find_active_access(
    session: Session,
    movie_id: int,
    device_id: str,
    now: Optional[datetime] = None,
) -> Optional[Access]:
    now = now or utcnow()
    return session.exec(
        select(Access)
        .where(Access.movie_id == movie_id)
        .where(Access.device_id == device_id)
        .where(Access.expiry_time > now)
        .where(Access.payment_status == PaymentStatus.success)
    ).first()


def validate(
    session: Session,
    token: str,
    device_id: str,
    now: Optional[datetime] = None,
) -> AccessCheck:
    """
    Playback gate. A token presented from another device is reported exactly
    like an unknown token. The first valid call marks playback as started.
    """
    now = now or utcnow()

    access = session.exec(
        select(Access)
        .where(Access.token == token)
        .where(Access.device_id == device_id)
    ).first()

    if not access:
        return AccessCheck(valid=False, reason=NOT_FOUND)

    if now >= access.expiry_time:
        return AccessCheck(valid=False, reason=EXPIRED, access=access)

    if access.payment_status != PaymentStatus.success:
        return AccessCheck(valid=False, reason=PAYMENT_NOT_SUCCESSFUL, access=access)

    if not access.playback_started:
        # compare-and-set so concurrent first plays keep a single start_time
        result = session.connection().execute(
            update(Access)
            .where(Access.id == access.id)
            .where(Access.playback_started == False)  # noqa: E712
            .values(playback_started=True, start_time=now, updated_at=now)
        )
        session.commit()
        session.refresh(access)
        if result.rowcount:
            logger.info(f"Playback started for access {access.access_id}")

    movie = session.get(Movie, access.movie_id)
    return AccessCheck(valid=True, access=access, movie=movie)


def revoke(session: Session, access_id: str, now: Optional[datetime] = None) -> Access:
    """Collapse the expiry to now; there is no separate revoked state."""
    now = now or utcnow()

    access = session.exec(
        select(Access).where(Access.access_id == access_id)
    ).first()
    if not access:
        raise AccessNotFound(f"Access {access_id} not found")

    if access.expiry_time > now:
        access.expiry_time = now
        access.updated_at = now
        session.add(access)
        session.commit()
        session.refresh(access)
        logger.info(f"Access {access_id} revoked")

    return access

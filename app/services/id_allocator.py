import logging
import random
import time
from typing import Callable, NamedTuple, Optional, TypeVar

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from app.config import settings
from app.models.access import Access
from app.models.id_sequence import IdSequence
from app.models.movie import Movie
from app.models.payment import Payment
from app.models.user import User
from app.services.exceptions import AllocationExhausted

logger = logging.getLogger(__name__)

SEED_VALUE = 10001
BACKOFF_SECONDS = 0.05

T = TypeVar("T", bound=SQLModel)


class Sequence(NamedTuple):
    prefix: str
    model: type
    column: str


SEQUENCES = {
    "movie": Sequence("M", Movie, "movie_id"),
    "user": Sequence("U", User, "user_id"),
    "payment": Sequence("PAY", Payment, "payment_id"),
    "access": Sequence("ACC", Access, "access_id"),
}


def degraded_id(prefix: str) -> str:
    """Timestamp based identifier used once the counter keeps failing."""
    return f"{prefix}{time.time_ns() // 1000}{random.randint(0, 999):03d}"


def _highest_existing(session: Session, seq: Sequence) -> int:
    column = getattr(seq.model, seq.column)
    # longest first, then lexicographic == numeric max for digit suffixes
    last = session.exec(
        select(column)
        .where(column.like(f"{seq.prefix}%"))
        .order_by(func.length(column).desc(), column.desc())
        .limit(1)
    ).first()

    suffix = last[len(seq.prefix):] if last else ""
    return int(suffix) if suffix.isdigit() else SEED_VALUE - 1


def _allocate(session: Session, name: str) -> int:
    seq = SEQUENCES[name]

    value = session.connection().execute(
        update(IdSequence)
        .where(IdSequence.name == name)
        .values(last_value=IdSequence.last_value + 1)
        .returning(IdSequence.last_value)
    ).scalar_one_or_none()

    if value is None:
        # first use of this sequence; never reissue rows created before it existed
        value = max(SEED_VALUE, _highest_existing(session, seq) + 1)
        session.add(IdSequence(name=name, prefix=seq.prefix, last_value=value))

    session.commit()
    return value


def _allocate_with_retry(session: Session, name: str) -> int:
    attempts = settings.id_allocation_retries

    for attempt in range(1, attempts + 1):
        try:
            return _allocate(session, name)
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning(f"Allocating {name} id failed (attempt {attempt}): {e}")
            time.sleep(BACKOFF_SECONDS * attempt)

    raise AllocationExhausted(name, attempts)


def next_id(session: Session, name: str) -> str:
    """
    Return the next identifier of a sequence, e.g. ``PAY10002``.

    The counter row is incremented atomically and committed right away, so
    anything pending on ``session`` is committed with it. Never raises: when
    the counter cannot be advanced a degraded timestamp identifier is issued
    and callers must tolerate gaps.
    """
    seq = SEQUENCES[name]
    try:
        return f"{seq.prefix}{_allocate_with_retry(session, name)}"
    except AllocationExhausted as e:
        logger.warning(f"{e}; issuing degraded identifier")
        return degraded_id(seq.prefix)


def insert_with_id(
    session: Session,
    name: str,
    build: Callable[[str], T],
    on_conflict: Optional[Callable[[], Optional[T]]] = None,
    first_id: Optional[str] = None,
) -> T:
    """
    Persist ``build(identifier)`` under the table's unique indexes.

    On a uniqueness violation the row is rebuilt with a fresh identifier. When
    ``on_conflict`` returns a row after a violation, that row is returned
    instead of retrying.
    """
    attempts = settings.id_allocation_retries
    identifier = first_id or next_id(session, name)

    for attempt in range(1, attempts + 1):
        row = build(identifier)
        session.add(row)
        try:
            session.commit()
        except IntegrityError as e:
            session.rollback()
            logger.warning(f"Insert of {name} {identifier} collided (attempt {attempt}): {e.orig}")

            if on_conflict is not None:
                existing = on_conflict()
                if existing is not None:
                    return existing

            time.sleep(BACKOFF_SECONDS * attempt)
            identifier = next_id(session, name)
            continue

        session.refresh(row)
        return row

    logger.warning(f"{AllocationExhausted(name, attempts)}; inserting with degraded identifier")
    row = build(degraded_id(SEQUENCES[name].prefix))
    session.add(row)
    session.commit()
    session.refresh(row)
    return row

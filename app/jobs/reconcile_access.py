import logging
from typing import Optional

from sqlmodel import Session

from app.database import get_session
from app.services.order_service import reconcile_missing_access

logger = logging.getLogger(__name__)


def reconcile_paid_without_access(session: Optional[Session] = None) -> int:
    """Repair successful payments whose access was never minted."""
    if session is not None:
        repaired = reconcile_missing_access(session)
    else:
        with next(get_session()) as session:
            repaired = reconcile_missing_access(session)

    logger.info(f"Reconciled {repaired} successful payments without access")
    return repaired


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    reconcile_paid_without_access()

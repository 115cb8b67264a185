import logging
from typing import Callable

from sqlalchemy.orm import Session

from agrimarket.models.ledger import LedgerReference, LedgerStatus

logger = logging.getLogger(__name__)


def record_ledger_reference(session_factory: Callable[[], Session], entity_type: str, entity_id: str, event: str) -> str:
    """Register a pending ledger reference for an entity; runs on the ledger pool."""
    db = session_factory()
    try:
        reference = LedgerReference(
            entity_type=entity_type,
            entity_id=entity_id,
            event=event,
            status=LedgerStatus.PENDING,
        )
        db.add(reference)
        db.commit()
        logger.info("Recorded ledger reference %s for %s %s (%s)", reference.id, entity_type, entity_id, event)
        return reference.id
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

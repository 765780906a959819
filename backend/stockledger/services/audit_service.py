# Overview: Advisory audit trail; records ledger actions after the business change has committed.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import AuditLog

logger = logging.getLogger(__name__)


class AuditRecorder:
    """
    Writes one AuditLog row per ledger action in its own short transaction.

    Advisory: a failed write is rolled back and logged, never raised, and
    never undoes the ledger change it describes.
    """

    def record(
        self,
        action: str,
        actor_id: int | None,
        details: dict | None = None,
        *,
        entity_type: str | None = None,
        entity_id: int | None = None,
    ) -> AuditLog | None:
        try:
            entry = AuditLog(
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                actor_id=actor_id,
                details=details or {},
            )
            db.session.add(entry)
            db.session.commit()
            return entry
        except Exception:
            db.session.rollback()
            logger.warning("Audit write failed for %s %s:%s", action, entity_type, entity_id, exc_info=True)
            return None

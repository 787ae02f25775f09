import logging
from dataclasses import dataclass
from datetime import datetime

from fastapi import Request

from app.stockroom.db.models import AuditEvent
from app.stockroom.repos.audit import AuditRepository

logger = logging.getLogger(__name__)


@dataclass
class AuditEventPayload:
    actor: str
    action: str
    entity_type: str
    entity_id: str | None
    trace_id: str | None = None
    before: dict | None = None
    after: dict | None = None
    metadata: dict | None = None
    result: str = "success"


class AuditService:
    """Best-effort audit trail, written after the business transaction commits.

    A failed audit write is logged and dropped; it never fails the operation
    that has already happened.
    """

    def __init__(self, db):
        self.db = db
        self.repo = AuditRepository(db)

    def record_success(
        self,
        request: Request,
        *,
        action: str,
        entity_type: str,
        entity_id: str | None,
        before: dict | None = None,
        after: dict | None = None,
        metadata: dict | None = None,
    ) -> None:
        self.record_event(
            AuditEventPayload(
                actor=getattr(request.state, "actor", None) or "unknown",
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                trace_id=getattr(request.state, "trace_id", None) or None,
                before=before,
                after=after,
                metadata=metadata,
            )
        )

    def record_event(self, payload: AuditEventPayload) -> None:
        event = AuditEvent(
            actor=payload.actor,
            action=payload.action,
            entity_type=payload.entity_type,
            entity_id=payload.entity_id,
            trace_id=payload.trace_id,
            before_payload=payload.before,
            after_payload=payload.after,
            event_metadata=payload.metadata,
            result=payload.result,
            created_at=datetime.utcnow(),
        )
        try:
            self.repo.create(event)
        except Exception:
            self.db.rollback()
            logger.exception(
                "Failed to write audit event",
                extra={"action": payload.action, "entity_id": payload.entity_id, "trace_id": payload.trace_id},
            )

    def history(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        return self.repo.list_for_entity(entity_type, entity_id)

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from app.stockledger.core.context import RequestContext
from app.stockledger.db.models import AuditEvent
from app.stockledger.repos.audit import AuditRepository

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
    """Best-effort audit logging.

    Events join the caller's transaction inside a savepoint, so they commit
    with the change they describe. A failed write is logged and dropped.
    """

    def __init__(self, db):
        self.db = db
        self.repo = AuditRepository(db)

    def record_event(self, payload: AuditEventPayload) -> None:
        try:
            with self.db.begin_nested():
                self.repo.add(
                    AuditEvent(
                        actor=payload.actor,
                        trace_id=payload.trace_id,
                        action=payload.action,
                        entity_type=payload.entity_type,
                        entity_id=payload.entity_id,
                        before_payload=payload.before,
                        after_payload=payload.after,
                        event_metadata=payload.metadata,
                        result=payload.result,
                        created_at=datetime.utcnow(),
                    )
                )
        except SQLAlchemyError:
            logger.exception(
                "Failed to write audit event",
                extra={"action": payload.action, "trace_id": payload.trace_id, "entity_id": payload.entity_id},
            )

    def record(
        self,
        ctx: RequestContext | None,
        *,
        action: str,
        entity_type: str,
        entity_id,
        before: dict | None = None,
        after: dict | None = None,
        metadata: dict | None = None,
    ) -> None:
        self.record_event(
            AuditEventPayload(
                actor=(ctx.user_id if ctx and ctx.user_id else "system"),
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id) if entity_id is not None else None,
                trace_id=ctx.trace_id if ctx else None,
                before=before,
                after=after,
                metadata=metadata,
            )
        )

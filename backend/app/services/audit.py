from __future__ import annotations

from sqlalchemy.orm import Session

from app.models.audit import AuditLog


SYSTEM_ACTOR = "system:reconciler"


def log_audit(
    db: Session,
    *,
    actor: str,
    action: str,
    entity_type: str,
    entity_id: str,
    account_id: int | None = None,
    settlement_id: str | None = None,
    before_state: dict | None = None,
    after_state: dict | None = None,
) -> AuditLog:
    log = AuditLog(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        account_id=account_id,
        settlement_id=settlement_id,
        before_state=before_state,
        after_state=after_state,
    )
    db.add(log)
    return log

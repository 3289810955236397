from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_account, get_db
from app.models.account import SellerAccount
from app.models.audit import AuditLog
from app.schemas.audit import AuditLogOut


router = APIRouter(tags=["audit"])


@router.get("/accounts/{account_id}/audit", response_model=list[AuditLogOut])
def list_account_audit_log(
    settlement_id: str | None = None,
    limit: int = 200,
    account: SellerAccount = Depends(get_account),
    db: Session = Depends(get_db),
) -> list[AuditLogOut]:
    query = select(AuditLog).where(AuditLog.account_id == account.id)
    if settlement_id is not None:
        query = query.where(AuditLog.settlement_id == settlement_id)
    rows = list(
        db.scalars(
            query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(max(1, min(limit, 500)))
        ).all()
    )
    return [
        AuditLogOut(
            id=row.id,
            account_id=row.account_id,
            settlement_id=row.settlement_id,
            actor=row.actor,
            action=row.action,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            before_state=row.before_state,
            after_state=row.after_state,
            created_at=row.created_at,
        )
        for row in rows
    ]

from datetime import datetime

from pydantic import BaseModel


class AuditLogOut(BaseModel):
    id: int
    account_id: int | None
    settlement_id: str | None
    actor: str
    action: str
    entity_type: str
    entity_id: str
    before_state: dict | None
    after_state: dict | None
    created_at: datetime

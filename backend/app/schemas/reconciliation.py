from datetime import date
from decimal import Decimal

from pydantic import BaseModel

from app.models.enums import ReconcileBranch, SkipReason


class AccountReconciliationOut(BaseModel):
    account_id: int
    branch: ReconcileBranch
    settlement_id: str | None = None
    skipped: SkipReason | None = None
    rolled_amount: Decimal | None = None
    regenerated_settlements: list[str] = []
    late_tracked: list[str] = []
    error: str | None = None


class ReconciliationRunOut(BaseModel):
    run_date: date
    yesterday: date
    settlements_closed: int
    rollovers: int
    failed: int
    accounts: list[AccountReconciliationOut]

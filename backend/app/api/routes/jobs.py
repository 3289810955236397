from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.schemas.reconciliation import AccountReconciliationOut, ReconciliationRunOut
from app.services.reconciler import AccountReconciliation, run_daily_reconciliation


router = APIRouter(prefix="/jobs", tags=["jobs"])


def _outcome_out(outcome: AccountReconciliation) -> AccountReconciliationOut:
    return AccountReconciliationOut(
        account_id=outcome.account_id,
        branch=outcome.branch,
        settlement_id=outcome.settlement_id,
        skipped=outcome.skipped,
        rolled_amount=outcome.rollover.rolled_amount if outcome.rollover is not None else None,
        regenerated_settlements=(
            [item.settlement_id for item in outcome.regeneration.forecasts]
            if outcome.regeneration is not None
            else []
        ),
        late_tracked=list(outcome.late_tracked),
        error=outcome.error,
    )


@router.post("/daily-reconciliation", response_model=ReconciliationRunOut)
def trigger_daily_reconciliation(
    run_date: date | None = None,
    db: Session = Depends(get_db),
) -> ReconciliationRunOut:
    run = run_daily_reconciliation(db, today=run_date)
    return ReconciliationRunOut(
        run_date=run.run_date,
        yesterday=run.yesterday,
        settlements_closed=run.settlements_closed,
        rollovers=run.rollovers,
        failed=run.failed,
        accounts=[_outcome_out(outcome) for outcome in run.outcomes],
    )

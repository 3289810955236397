from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_account, get_db
from app.models.account import SellerAccount
from app.schemas.schedule import ScheduleDay, ScheduleResponse
from app.services.forecasts import current_schedule
from app.utils.decimal_math import money


router = APIRouter(prefix="/accounts/{account_id}", tags=["schedule"])


@router.get("/schedule", response_model=ScheduleResponse)
def get_schedule(
    account: SellerAccount = Depends(get_account),
    db: Session = Depends(get_db),
) -> ScheduleResponse:
    rows = current_schedule(db, account.id)
    return ScheduleResponse(
        account_id=account.id,
        currency_code=account.currency_code,
        days=[
            ScheduleDay(
                date=row.forecast_date,
                daily_unlock=money(row.total_amount),
                cumulative_available=money(row.cumulative_available or 0),
                settlement_id=row.source_settlement_id or row.settlement_id,
                modeling_method=row.modeling_method,
            )
            for row in rows
        ],
    )

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_account, get_db, get_volume_provider
from app.core.config import get_settings
from app.models.account import SellerAccount
from app.models.draw import DailyDraw
from app.models.enums import ModelingMethod
from app.schemas.schedule import (
    CashOutResponse,
    DailyDrawOut,
    DrawCreateRequest,
    DrawResponse,
    ScheduleDay,
)
from app.services.cashout import detect
from app.services.draws import list_draws, record_draw
from app.services.locks import open_settlement_locks, settlement_lock
from app.services.providers import VolumeWeightProvider
from app.utils.dates import anchor_today


router = APIRouter(prefix="/accounts/{account_id}", tags=["draws"])


@router.get("/draws", response_model=list[DailyDrawOut])
def get_draws(
    settlement_id: str | None = None,
    account: SellerAccount = Depends(get_account),
    db: Session = Depends(get_db),
) -> list[DailyDraw]:
    return list_draws(db, account.id, settlement_id)


@router.post("/draws", response_model=DrawResponse, status_code=status.HTTP_201_CREATED)
def post_draw(
    payload: DrawCreateRequest,
    account: SellerAccount = Depends(get_account),
    db: Session = Depends(get_db),
    volume_provider: VolumeWeightProvider = Depends(get_volume_provider),
) -> DrawResponse:
    draw_date = payload.draw_date or anchor_today(get_settings().anchor_timezone)
    with settlement_lock(db, account.id, payload.settlement_id):
        result = record_draw(
            db,
            account_id=account.id,
            settlement_id=payload.settlement_id,
            amount=payload.amount,
            draw_date=draw_date,
            notes=payload.notes,
            volume_provider=volume_provider,
        )
        db.commit()
    db.refresh(result.draw)
    return DrawResponse(
        draw=DailyDrawOut.model_validate(result.draw),
        total_drawn=result.forecast.total_drawn,
        net_available=result.forecast.net_available,
        schedule=[
            ScheduleDay(
                date=item.date,
                daily_unlock=item.daily_unlock,
                cumulative_available=item.cumulative_available,
                settlement_id=result.forecast.settlement_id,
                modeling_method=ModelingMethod.draw_recalculation.value,
            )
            for item in result.forecast.schedule
        ],
    )


@router.post("/cashout/detect", response_model=CashOutResponse)
def detect_cash_out(
    account: SellerAccount = Depends(get_account),
    db: Session = Depends(get_db),
    volume_provider: VolumeWeightProvider = Depends(get_volume_provider),
) -> CashOutResponse:
    with open_settlement_locks(db, account.id):
        result = detect(db, account.id, actor="api", volume_provider=volume_provider)
        db.commit()
    return CashOutResponse(
        cash_out_detected=result.cash_out_detected,
        date=result.date,
        amount=result.amount,
        recorded=result.recorded,
        settlement_id=result.settlement_id,
        current_available=result.current_available,
        beginning_balance=result.beginning_balance,
        total_draws=result.total_draws,
    )

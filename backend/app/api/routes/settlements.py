from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_account, get_db, get_volume_provider
from app.models.account import SellerAccount
from app.models.enums import SettlementStatus
from app.models.settlement import SettlementPeriod
from app.schemas.settlements import (
    SalesVolumeIngestRequest,
    SalesVolumeIngestResponse,
    SettlementIngestRequest,
    SettlementIngestResponse,
    SettlementPeriodOut,
)
from app.services.forecasts import replace_settlement_forecasts
from app.services.ingestion import SettlementRecord, list_settlements, record_sales_volumes, upsert_settlement
from app.services.locks import settlement_lock
from app.services.providers import VolumeWeightProvider


router = APIRouter(prefix="/accounts/{account_id}", tags=["settlements"])


@router.get("/settlements", response_model=list[SettlementPeriodOut])
def get_settlements(
    status_filter: list[SettlementStatus] | None = Query(default=None, alias="status"),
    account: SellerAccount = Depends(get_account),
    db: Session = Depends(get_db),
) -> list[SettlementPeriod]:
    return list_settlements(db, account.id, statuses=set(status_filter) if status_filter else None)


@router.post("/settlements", response_model=SettlementIngestResponse)
def ingest_settlement(
    payload: SettlementIngestRequest,
    response: Response,
    account: SellerAccount = Depends(get_account),
    db: Session = Depends(get_db),
    volume_provider: VolumeWeightProvider = Depends(get_volume_provider),
) -> SettlementIngestResponse:
    record = SettlementRecord(
        settlement_id=payload.settlement_id,
        period_start=payload.period_start,
        period_end=payload.period_end,
        total_amount=payload.total_amount,
        status=SettlementStatus(payload.status),
        beginning_balance=payload.beginning_balance,
        currency_code=payload.currency_code,
        fund_transfer_status=payload.fund_transfer_status,
    )
    with settlement_lock(db, account.id, payload.settlement_id):
        row, created = upsert_settlement(db, account, record)
        # An open settlement gets its schedule as soon as its bounds are known.
        if row.status == SettlementStatus.estimated and row.has_bounds:
            replace_settlement_forecasts(db, row, volume_provider)
        db.commit()
    db.refresh(row)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return SettlementIngestResponse(created=created, settlement=SettlementPeriodOut.model_validate(row))


@router.post("/sales-volumes", response_model=SalesVolumeIngestResponse)
def ingest_sales_volumes(
    payload: SalesVolumeIngestRequest,
    account: SellerAccount = Depends(get_account),
    db: Session = Depends(get_db),
) -> SalesVolumeIngestResponse:
    stored = record_sales_volumes(db, account, {point.sales_date: point.net_amount for point in payload.volumes})
    db.commit()
    return SalesVolumeIngestResponse(stored=stored)

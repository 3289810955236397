from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.account import SellerAccount
from app.models.enums import SettlementStatus
from app.models.settlement import SettlementPeriod
from app.models.volume import DailySalesVolume
from app.services.audit import log_audit
from app.services.errors import AccountNotFound
from app.utils.decimal_math import money


INGESTIBLE_STATUSES = {SettlementStatus.estimated, SettlementStatus.confirmed}


@dataclass(frozen=True)
class SettlementRecord:
    settlement_id: str
    period_start: date | None
    period_end: date | None
    total_amount: Decimal
    status: SettlementStatus
    beginning_balance: Decimal | None = None
    currency_code: str | None = None
    fund_transfer_status: str | None = None


def get_account_or_404(db: Session, account_id: int) -> SellerAccount:
    account = db.get(SellerAccount, account_id)
    if account is None:
        raise AccountNotFound(account_id)
    return account


def upsert_settlement(
    db: Session,
    account: SellerAccount,
    record: SettlementRecord,
    *,
    actor: str = "ingestion",
) -> tuple[SettlementPeriod, bool]:
    if record.status not in INGESTIBLE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only estimated or confirmed settlements can be ingested.",
        )
    if (
        record.period_start is not None
        and record.period_end is not None
        and record.period_end < record.period_start
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="period_end must not be before period_start.",
        )

    row = db.scalar(
        select(SettlementPeriod).where(
            SettlementPeriod.account_id == account.id,
            SettlementPeriod.settlement_id == record.settlement_id,
            SettlementPeriod.status.in_(INGESTIBLE_STATUSES),
        )
    )
    created = row is None
    before = None
    if row is None:
        row = SettlementPeriod(account_id=account.id, settlement_id=record.settlement_id)
        db.add(row)
    else:
        if row.status == SettlementStatus.confirmed and record.status == SettlementStatus.estimated:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Confirmed settlements cannot return to estimated.",
            )
        before = {"status": row.status.value, "total_amount": str(money(row.total_amount))}

    row.status = record.status
    row.period_start = record.period_start
    row.period_end = record.period_end
    row.payout_date = SettlementPeriod.derive_payout_date(record.period_end)
    row.total_amount = money(record.total_amount)
    row.beginning_balance = money(record.beginning_balance) if record.beginning_balance is not None else None
    row.currency_code = record.currency_code or account.currency_code
    row.fund_transfer_status = record.fund_transfer_status
    db.flush()

    log_audit(
        db,
        actor=actor,
        action="settlement.create" if created else "settlement.update",
        entity_type="settlement_period",
        entity_id=str(row.id),
        account_id=account.id,
        settlement_id=row.settlement_id,
        before_state=before,
        after_state={"status": row.status.value, "total_amount": str(money(row.total_amount))},
    )
    return row, created


def record_sales_volumes(db: Session, account: SellerAccount, volumes: dict[date, Decimal]) -> int:
    existing = {
        row.sales_date: row
        for row in db.scalars(
            select(DailySalesVolume).where(
                DailySalesVolume.account_id == account.id,
                DailySalesVolume.sales_date.in_(list(volumes.keys())),
            )
        ).all()
    }
    for sales_date, net_amount in volumes.items():
        row = existing.get(sales_date)
        if row is None:
            db.add(DailySalesVolume(account_id=account.id, sales_date=sales_date, net_amount=money(net_amount)))
        else:
            row.net_amount = money(net_amount)
    db.flush()
    return len(volumes)


def list_settlements(
    db: Session,
    account_id: int,
    statuses: set[SettlementStatus] | None = None,
) -> list[SettlementPeriod]:
    query = select(SettlementPeriod).where(SettlementPeriod.account_id == account_id)
    if statuses:
        query = query.where(SettlementPeriod.status.in_(statuses))
    return list(
        db.scalars(
            query.order_by(
                SettlementPeriod.period_start,
                SettlementPeriod.forecast_date,
                SettlementPeriod.id,
            )
        ).all()
    )

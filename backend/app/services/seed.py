from __future__ import annotations

from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.account import SellerAccount
from app.models.enums import PayoutModel, SettlementStatus
from app.services.forecasts import regenerate_account_forecasts
from app.services.ingestion import SettlementRecord, upsert_settlement
from app.services.providers import StoredVolumeWeightProvider
from app.utils.dates import anchor_today
from app.utils.decimal_math import money


DEMO_ACCOUNT_CODE = "DEMO-US"


def seed_demo_data(db: Session) -> SellerAccount | None:
    """Create one demo seller with a confirmed and an open 7-day settlement."""
    existing = db.scalar(select(SellerAccount).where(SellerAccount.code == DEMO_ACCOUNT_CODE))
    if existing is not None:
        return None

    account = SellerAccount(
        code=DEMO_ACCOUNT_CODE,
        name="Demo Seller (US)",
        marketplace_name="United States",
        currency_code="USD",
        payout_model=PayoutModel.daily,
        is_active=True,
    )
    db.add(account)
    db.flush()

    today = anchor_today(get_settings().anchor_timezone)
    open_start = today - timedelta(days=2)
    upsert_settlement(
        db,
        account,
        SettlementRecord(
            settlement_id="DEMO-CLOSED-001",
            period_start=open_start - timedelta(days=7),
            period_end=open_start - timedelta(days=1),
            total_amount=money("1320.00"),
            status=SettlementStatus.confirmed,
            fund_transfer_status="Succeeded",
        ),
        actor="seed",
    )
    upsert_settlement(
        db,
        account,
        SettlementRecord(
            settlement_id="DEMO-OPEN-002",
            period_start=open_start,
            period_end=open_start + timedelta(days=6),
            total_amount=money("1400.00"),
            beginning_balance=money("1400.00"),
            status=SettlementStatus.estimated,
        ),
        actor="seed",
    )
    regenerate_account_forecasts(db, account, StoredVolumeWeightProvider(db))
    db.commit()
    return account

from datetime import date

from fastapi import HTTPException
import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from app.db.base import Base
from app.models.account import SellerAccount
from app.models.audit import AuditLog
from app.models.draw import DailyDraw
from app.models.enums import ModelingMethod, SettlementStatus
from app.models.settlement import SettlementPeriod
from app.services.draws import recalculate, record_draw
from app.services.errors import SettlementNotFound
from app.services.forecasts import current_schedule, regenerate_account_forecasts
from app.utils.decimal_math import money


def _session() -> Session:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)()


def _open_account(db: Session) -> SellerAccount:
    account = SellerAccount(code="US-1", name="Seller One", currency_code="USD", is_active=True)
    db.add(account)
    db.flush()
    db.add(
        SettlementPeriod(
            account_id=account.id,
            settlement_id="S-OPEN",
            status=SettlementStatus.estimated,
            period_start=date(2026, 3, 1),
            period_end=date(2026, 3, 7),
            total_amount=money("1400.00"),
            beginning_balance=money("1400.00"),
            currency_code="USD",
        )
    )
    db.flush()
    regenerate_account_forecasts(db, account, None)
    return account


def test_draw_redistributes_the_remaining_balance() -> None:
    db = _session()
    account = _open_account(db)
    assert sum(row.total_amount for row in current_schedule(db, account.id)) == money("1400.00")

    result = record_draw(
        db,
        account_id=account.id,
        settlement_id="S-OPEN",
        amount=money("500.00"),
        draw_date=date(2026, 3, 3),
    )
    assert result.forecast.total_drawn == money("500.00")
    assert result.forecast.net_available == money("900.00")

    rows = current_schedule(db, account.id)
    assert len(rows) == 7
    assert sum(money(row.total_amount) for row in rows) == money("900.00")
    assert rows[-1].cumulative_available == money("900.00")
    assert all(row.modeling_method == ModelingMethod.draw_recalculation.value for row in rows)

    audit = db.scalars(select(AuditLog).where(AuditLog.action == "draw.record")).all()
    assert len(audit) == 1
    assert audit[0].after_state["net_available"] == "900.00"


def test_recalculation_without_new_draws_is_idempotent() -> None:
    db = _session()
    account = _open_account(db)
    record_draw(
        db,
        account_id=account.id,
        settlement_id="S-OPEN",
        amount=money("250.00"),
        draw_date=date(2026, 3, 2),
    )
    first = [(row.forecast_date, money(row.total_amount)) for row in current_schedule(db, account.id)]

    recalculate(db, account.id, "S-OPEN")
    second = [(row.forecast_date, money(row.total_amount)) for row in current_schedule(db, account.id)]

    assert first == second
    assert len(second) == 7
    assert sum(amount for _, amount in second) == money("1150.00")


def test_multiple_draws_accumulate() -> None:
    db = _session()
    account = _open_account(db)
    for amount in ("100.00", "200.00"):
        record_draw(
            db,
            account_id=account.id,
            settlement_id="S-OPEN",
            amount=money(amount),
            draw_date=date(2026, 3, 2),
        )
    rows = current_schedule(db, account.id)
    assert sum(money(row.total_amount) for row in rows) == money("1100.00")
    assert len(db.scalars(select(DailyDraw)).all()) == 2


def test_unknown_settlement_is_rejected() -> None:
    db = _session()
    account = _open_account(db)
    with pytest.raises(SettlementNotFound) as exc:
        record_draw(
            db,
            account_id=account.id,
            settlement_id="S-MISSING",
            amount=money("10.00"),
            draw_date=date(2026, 3, 2),
        )
    assert exc.value.status_code == 404
    with pytest.raises(SettlementNotFound):
        recalculate(db, account.id, "S-MISSING")


def test_confirmed_settlement_cannot_take_draws() -> None:
    db = _session()
    account = _open_account(db)
    settlement = db.scalar(select(SettlementPeriod).where(SettlementPeriod.settlement_id == "S-OPEN"))
    settlement.status = SettlementStatus.confirmed
    db.flush()
    with pytest.raises(SettlementNotFound):
        record_draw(
            db,
            account_id=account.id,
            settlement_id="S-OPEN",
            amount=money("10.00"),
            draw_date=date(2026, 3, 2),
        )


def test_non_positive_draw_amount_is_rejected() -> None:
    db = _session()
    account = _open_account(db)
    with pytest.raises(HTTPException) as exc:
        record_draw(
            db,
            account_id=account.id,
            settlement_id="S-OPEN",
            amount=money("0"),
            draw_date=date(2026, 3, 2),
        )
    assert exc.value.status_code == 400
    assert db.scalars(select(DailyDraw)).all() == []

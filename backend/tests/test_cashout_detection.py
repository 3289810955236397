from datetime import date

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from app.db.base import Base
from app.models.account import SellerAccount
from app.models.draw import DailyDraw
from app.models.enums import DrawSource, SettlementStatus
from app.models.settlement import SettlementPeriod
from app.services.cashout import detect
from app.services.draws import record_draw
from app.services.errors import InvalidPeriodBounds
from app.services.forecasts import current_schedule, regenerate_account_forecasts
from app.utils.decimal_math import money


def _session() -> Session:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)()


def _account(db: Session) -> SellerAccount:
    account = SellerAccount(code="US-1", name="Seller One", currency_code="USD", is_active=True)
    db.add(account)
    db.flush()
    return account


def _open(
    db: Session,
    account: SellerAccount,
    settlement_id: str,
    start: date | None,
    end: date | None,
    total: str,
    beginning: str | None = None,
) -> SettlementPeriod:
    row = SettlementPeriod(
        account_id=account.id,
        settlement_id=settlement_id,
        status=SettlementStatus.estimated,
        period_start=start,
        period_end=end,
        total_amount=money(total),
        beginning_balance=money(beginning) if beginning is not None else None,
        currency_code="USD",
    )
    db.add(row)
    db.flush()
    return row


def test_gap_between_settlements_records_a_cash_out() -> None:
    db = _session()
    account = _account(db)
    _open(db, account, "S-OLD", date(2026, 3, 1), date(2026, 3, 7), "1400.00", beginning="1250.00")
    _open(db, account, "S-NEW", date(2026, 3, 10), date(2026, 3, 16), "700.00")
    regenerate_account_forecasts(db, account, None)

    result = detect(db, account.id)

    assert result.cash_out_detected is True
    assert result.date == date(2026, 3, 8)
    assert result.amount == money("1250.00")
    assert result.recorded is True
    assert result.settlement_id == "S-OLD"

    draw = db.scalar(select(DailyDraw))
    assert draw.source == DrawSource.cash_out_detected
    assert draw.draw_date == date(2026, 3, 8)
    assert draw.settlement_id == "S-OLD"

    old_rows = [row for row in current_schedule(db, account.id) if row.source_settlement_id == "S-OLD"]
    assert sum(money(row.total_amount) for row in old_rows) == money("150.00")


def test_cash_out_is_recorded_once_per_date() -> None:
    db = _session()
    account = _account(db)
    _open(db, account, "S-OLD", date(2026, 3, 1), date(2026, 3, 7), "1400.00")
    _open(db, account, "S-NEW", date(2026, 3, 10), date(2026, 3, 16), "700.00")

    first = detect(db, account.id)
    second = detect(db, account.id)

    assert first.recorded is True
    assert first.amount == money("1400.00")
    assert second.cash_out_detected is True
    assert second.recorded is False
    assert len(db.scalars(select(DailyDraw)).all()) == 1


def test_contiguous_settlements_report_available_balance() -> None:
    db = _session()
    account = _account(db)
    _open(db, account, "S-OLD", date(2026, 3, 1), date(2026, 3, 7), "1400.00")
    _open(db, account, "S-NEW", date(2026, 3, 7), date(2026, 3, 13), "500.00", beginning="500.00")
    record_draw(
        db,
        account_id=account.id,
        settlement_id="S-NEW",
        amount=money("120.00"),
        draw_date=date(2026, 3, 8),
    )

    result = detect(db, account.id)

    assert result.cash_out_detected is False
    assert result.settlement_id == "S-NEW"
    assert result.beginning_balance == money("500.00")
    assert result.total_draws == money("120.00")
    assert result.current_available == money("380.00")


def test_available_balance_floors_at_zero() -> None:
    db = _session()
    account = _account(db)
    _open(db, account, "S-ONLY", date(2026, 3, 1), date(2026, 3, 7), "100.00", beginning="100.00")
    record_draw(
        db,
        account_id=account.id,
        settlement_id="S-ONLY",
        amount=money("150.00"),
        draw_date=date(2026, 3, 2),
    )

    result = detect(db, account.id)

    assert result.cash_out_detected is False
    assert result.current_available == money(0)


def test_no_open_settlements_detects_nothing() -> None:
    db = _session()
    account = _account(db)
    result = detect(db, account.id)
    assert result.cash_out_detected is False
    assert result.current_available is None


def test_missing_bounds_raise() -> None:
    db = _session()
    account = _account(db)
    _open(db, account, "S-OLD", date(2026, 3, 1), date(2026, 3, 7), "1400.00")
    _open(db, account, "S-NEW", None, None, "700.00")
    with pytest.raises(InvalidPeriodBounds):
        detect(db, account.id)

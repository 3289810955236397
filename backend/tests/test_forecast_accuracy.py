from datetime import date
from decimal import Decimal

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from app.db.base import Base
from app.models.account import SellerAccount
from app.models.accuracy import ForecastAccuracyRecord
from app.models.enums import SettlementStatus, SkipReason
from app.models.settlement import SettlementPeriod
from app.services.accuracy import difference_percentage, forecast_chain, summarize, track
from app.services.forecasts import forecast_row_id
from app.utils.decimal_math import money, pct


def _session() -> Session:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)()


def _confirmed(db: Session, actual: str) -> SettlementPeriod:
    account = SellerAccount(code="US-1", name="Seller One", currency_code="USD", is_active=True)
    db.add(account)
    db.flush()
    settlement = SettlementPeriod(
        account_id=account.id,
        settlement_id="S-1",
        status=SettlementStatus.confirmed,
        period_start=date(2026, 3, 1),
        period_end=date(2026, 3, 3),
        payout_date=date(2026, 3, 4),
        total_amount=money(actual),
        currency_code="USD",
    )
    db.add(settlement)
    db.flush()
    return settlement


def _forecast(db: Session, settlement: SettlementPeriod, day: date, amount: str, status=SettlementStatus.forecasted):
    db.add(
        SettlementPeriod(
            account_id=settlement.account_id,
            settlement_id=forecast_row_id(settlement.settlement_id, day),
            status=status,
            forecast_date=day,
            source_settlement_id=settlement.settlement_id,
            total_amount=money(amount),
            currency_code="USD",
            modeling_method="cumulative_distribution",
        )
    )
    db.flush()


def test_latest_forecast_is_compared_with_actual() -> None:
    db = _session()
    settlement = _confirmed(db, "1000.00")
    _forecast(db, settlement, date(2026, 3, 1), "300.00", status=SettlementStatus.rolled_over)
    _forecast(db, settlement, date(2026, 3, 2), "600.00", status=SettlementStatus.rolled_over)
    _forecast(db, settlement, date(2026, 3, 3), "950.00")
    # Outside the window: on or after the payout date.
    _forecast(db, settlement, date(2026, 3, 4), "50.00")

    outcome = track(db, settlement)

    assert outcome.skipped is None
    record = outcome.record
    assert money(record.forecasted_amount) == money("950.00")
    assert money(record.actual_amount) == money("1000.00")
    assert money(record.difference_amount) == money("50.00")
    assert record.difference_percentage == pct("5.0")
    assert record.days_accumulated == 3
    assert [item["amount"] for item in record.forecasted_amounts_by_day] == ["300.00", "600.00", "950.00"]
    assert record.forecasted_amounts_by_day[0]["status"] == "rolled_over"


def test_tracking_twice_keeps_one_record() -> None:
    db = _session()
    settlement = _confirmed(db, "1000.00")
    _forecast(db, settlement, date(2026, 3, 3), "900.00")

    track(db, settlement)
    settlement.total_amount = money("880.00")
    db.flush()
    outcome = track(db, settlement)

    rows = db.scalars(select(ForecastAccuracyRecord)).all()
    assert len(rows) == 1
    assert money(outcome.record.actual_amount) == money("880.00")
    assert money(outcome.record.difference_amount) == money("-20.00")


def test_missing_forecast_skips_tracking() -> None:
    db = _session()
    settlement = _confirmed(db, "1000.00")

    outcome = track(db, settlement)

    assert outcome.record is None
    assert outcome.skipped == SkipReason.no_forecast_to_compare
    assert db.scalars(select(ForecastAccuracyRecord)).all() == []


def test_forecast_older_than_lookback_is_ignored() -> None:
    db = _session()
    settlement = _confirmed(db, "1000.00")
    _forecast(db, settlement, date(2026, 2, 20), "400.00")
    assert forecast_chain(db, settlement, 7) == []


def test_zero_actual_reports_zero_percentage() -> None:
    db = _session()
    settlement = _confirmed(db, "0.00")
    _forecast(db, settlement, date(2026, 3, 3), "25.00")

    outcome = track(db, settlement)

    assert money(outcome.record.difference_amount) == money("-25.00")
    assert outcome.record.difference_percentage == pct(0)
    assert difference_percentage(money(0), money("10.00")) == pct(0)


def test_summary_aggregates_error_metrics() -> None:
    records = [
        ForecastAccuracyRecord(
            settlement_id="S-1",
            account_id=1,
            settlement_period_end=date(2026, 3, 3),
            days_accumulated=3,
            forecasted_amount=money("950.00"),
            forecasted_amounts_by_day=[],
            actual_amount=money("1000.00"),
            difference_amount=money("50.00"),
            difference_percentage=pct("5"),
            modeling_method="cumulative_distribution",
        ),
        ForecastAccuracyRecord(
            settlement_id="S-2",
            account_id=1,
            settlement_period_end=date(2026, 4, 2),
            days_accumulated=2,
            forecasted_amount=money("1150.00"),
            forecasted_amounts_by_day=[],
            actual_amount=money("1000.00"),
            difference_amount=money("-150.00"),
            difference_percentage=pct("15"),
            modeling_method="draw_recalculation",
        ),
    ]

    summary = summarize(records)

    assert summary.total_comparisons == 2
    assert summary.mape == pct("10")
    assert summary.overall_accuracy == pct("90")
    assert summary.mean_absolute_error == money("100.00")
    assert summary.mean_bias == money("50.00")
    assert [group.key for group in summary.by_method] == ["cumulative_distribution", "draw_recalculation"]
    assert [group.key for group in summary.monthly] == ["2026-03", "2026-04"]
    assert summary.monthly[1].accuracy == pct("85")


def test_empty_summary() -> None:
    summary = summarize([])
    assert summary.total_comparisons == 0
    assert summary.overall_accuracy == Decimal("0")

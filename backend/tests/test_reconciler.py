from datetime import date

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import Settings
from app.db.base import Base
from app.models.account import SellerAccount
from app.models.accuracy import ForecastAccuracyRecord
from app.models.enums import ReconcileBranch, SettlementStatus, SkipReason
from app.models.settlement import SettlementPeriod
from app.services.forecasts import forecast_row_id, regenerate_account_forecasts
from app.services.reconciler import (
    decide_branch,
    find_recent_confirmed,
    reconcile_account,
    rollover_forecasts,
    run_daily_reconciliation,
)
from app.utils.decimal_math import money


TODAY = date(2026, 3, 5)
YESTERDAY = date(2026, 3, 4)


def _session() -> Session:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)()


def _settings() -> Settings:
    return Settings(
        daily_settlement_max_days=3,
        confirmed_lookback_days=3,
        accuracy_lookback_days=7,
        trend_forecast_horizon_days=0,
    )


def _account(db: Session, code: str = "US-1") -> SellerAccount:
    account = SellerAccount(code=code, name=f"Seller {code}", currency_code="USD", is_active=True)
    db.add(account)
    db.flush()
    return account


def _settlement(
    db: Session,
    account: SellerAccount,
    settlement_id: str,
    status: SettlementStatus,
    start: date | None,
    end: date | None,
    total: str,
    fund_transfer_status: str | None = None,
) -> SettlementPeriod:
    row = SettlementPeriod(
        account_id=account.id,
        settlement_id=settlement_id,
        status=status,
        period_start=start,
        period_end=end,
        payout_date=SettlementPeriod.derive_payout_date(end),
        total_amount=money(total),
        currency_code="USD",
        fund_transfer_status=fund_transfer_status,
    )
    db.add(row)
    db.flush()
    return row


def _forecast_row(db: Session, settlement_id: str, account_id: int, day: date) -> SettlementPeriod:
    return db.scalar(
        select(SettlementPeriod).where(
            SettlementPeriod.account_id == account_id,
            SettlementPeriod.settlement_id == forecast_row_id(settlement_id, day),
        )
    )


def test_rollover_carries_yesterday_into_today() -> None:
    db = _session()
    account = _account(db)
    _settlement(db, account, "S-OPEN", SettlementStatus.estimated, date(2026, 3, 1), date(2026, 3, 7), "1400.00")
    regenerate_account_forecasts(db, account, None)
    yesterday_row = _forecast_row(db, "S-OPEN", account.id, YESTERDAY)
    yesterday_row.total_amount = money("50.00")
    db.flush()

    outcome = reconcile_account(db, account, TODAY, settings=_settings())

    assert outcome.branch == ReconcileBranch.rollover
    assert outcome.rollover.rolled_amount == money("50.00")
    assert outcome.skipped is None
    today_row = _forecast_row(db, "S-OPEN", account.id, TODAY)
    assert money(today_row.total_amount) == money("250.00")
    assert yesterday_row.status == SettlementStatus.rolled_over


def test_rollover_twice_on_same_day_does_not_double_count() -> None:
    db = _session()
    account = _account(db)
    _settlement(db, account, "S-OPEN", SettlementStatus.estimated, date(2026, 3, 1), date(2026, 3, 7), "1400.00")
    regenerate_account_forecasts(db, account, None)

    first = rollover_forecasts(db, account.id, TODAY)
    second = rollover_forecasts(db, account.id, TODAY)

    assert first.rolled_amount == money("200.00")
    assert second.rolled_amount == money(0)
    assert second.rolled_rows == 0
    assert money(_forecast_row(db, "S-OPEN", account.id, TODAY).total_amount) == money("400.00")


def test_rollover_without_today_row_leaves_yesterday_in_place() -> None:
    db = _session()
    account = _account(db)
    _settlement(db, account, "S-OPEN", SettlementStatus.estimated, date(2026, 3, 1), YESTERDAY, "400.00")
    regenerate_account_forecasts(db, account, None)

    result = rollover_forecasts(db, account.id, TODAY)

    assert result.skipped == SkipReason.stale_rollover_target
    assert result.rolled_rows == 0
    assert _forecast_row(db, "S-OPEN", account.id, YESTERDAY).status == SettlementStatus.forecasted


def test_settlement_closed_yesterday_tracks_accuracy_and_regenerates() -> None:
    db = _session()
    account = _account(db)
    _settlement(
        db,
        account,
        "S-CLOSED",
        SettlementStatus.confirmed,
        date(2026, 3, 1),
        YESTERDAY,
        "1000.00",
        fund_transfer_status="Succeeded",
    )
    _settlement(db, account, "S-NEXT", SettlementStatus.estimated, TODAY, date(2026, 3, 11), "700.00")
    db.add(
        SettlementPeriod(
            account_id=account.id,
            settlement_id=forecast_row_id("S-CLOSED", YESTERDAY),
            status=SettlementStatus.forecasted,
            forecast_date=YESTERDAY,
            source_settlement_id="S-CLOSED",
            total_amount=money("950.00"),
            currency_code="USD",
            modeling_method="cumulative_distribution",
        )
    )
    db.flush()

    outcome = reconcile_account(db, account, TODAY, settings=_settings())

    assert outcome.branch == ReconcileBranch.settlement_closed
    assert outcome.settlement_id == "S-CLOSED"
    record = db.scalar(select(ForecastAccuracyRecord).where(ForecastAccuracyRecord.settlement_id == "S-CLOSED"))
    assert money(record.forecasted_amount) == money("950.00")
    assert money(record.difference_amount) == money("50.00")
    assert record.difference_percentage == money("5.00")
    assert record.days_accumulated == 4

    assert [item.settlement_id for item in outcome.regeneration.forecasts] == ["S-NEXT"]
    remaining = db.scalars(
        select(SettlementPeriod).where(SettlementPeriod.status == SettlementStatus.forecasted)
    ).all()
    assert {row.source_settlement_id for row in remaining} == {"S-NEXT"}
    assert sum(money(row.total_amount) for row in remaining) == money("700.00")


def test_long_invoiced_cycle_is_not_treated_as_a_close() -> None:
    db = _session()
    account = _account(db)
    _settlement(
        db,
        account,
        "S-BIWEEKLY",
        SettlementStatus.confirmed,
        date(2026, 2, 19),
        YESTERDAY,
        "5000.00",
        fund_transfer_status="Succeeded",
    )
    candidates = find_recent_confirmed(db, account.id, YESTERDAY, 3)
    decision = decide_branch(candidates, YESTERDAY, 3)

    assert decision.closed_yesterday is None
    assert [row.settlement_id for row in decision.long_cycles] == ["S-BIWEEKLY"]
    assert decision.branch == ReconcileBranch.rollover


def test_failed_fund_transfer_is_not_a_close() -> None:
    db = _session()
    account = _account(db)
    _settlement(
        db,
        account,
        "S-FAILED",
        SettlementStatus.confirmed,
        date(2026, 3, 2),
        YESTERDAY,
        "300.00",
        fund_transfer_status="Failed",
    )
    assert find_recent_confirmed(db, account.id, YESTERDAY, 3) == []


def test_invalid_bounds_fail_one_account_and_the_run_continues() -> None:
    db = _session()
    broken = _account(db, "US-BROKEN")
    healthy = _account(db, "US-OK")
    _settlement(db, broken, "S-NOSTART", SettlementStatus.estimated, None, date(2026, 3, 7), "100.00")
    _settlement(db, healthy, "S-OPEN", SettlementStatus.estimated, date(2026, 3, 1), date(2026, 3, 7), "1400.00")
    regenerate_account_forecasts(db, healthy, None)
    db.commit()

    run = run_daily_reconciliation(db, today=TODAY, settings=_settings())

    outcomes = {outcome.account_id: outcome for outcome in run.outcomes}
    assert outcomes[broken.id].branch == ReconcileBranch.failed
    assert outcomes[broken.id].skipped == SkipReason.invalid_period_bounds
    assert outcomes[broken.id].settlement_id == "S-NOSTART"
    assert outcomes[healthy.id].branch == ReconcileBranch.rollover
    assert run.failed == 1
    assert run.rollovers == 1
    assert money(_forecast_row(db, "S-OPEN", healthy.id, TODAY).total_amount) == money("400.00")


def test_late_reported_settlement_is_tracked_once() -> None:
    db = _session()
    account = _account(db)
    _settlement(
        db,
        account,
        "S-LATE",
        SettlementStatus.confirmed,
        date(2026, 3, 1),
        date(2026, 3, 2),
        "300.00",
        fund_transfer_status="Succeeded",
    )
    db.add(
        SettlementPeriod(
            account_id=account.id,
            settlement_id=forecast_row_id("S-LATE", date(2026, 3, 2)),
            status=SettlementStatus.forecasted,
            forecast_date=date(2026, 3, 2),
            source_settlement_id="S-LATE",
            total_amount=money("300.00"),
            currency_code="USD",
        )
    )
    db.flush()

    outcome = reconcile_account(db, account, TODAY, settings=_settings())
    again = reconcile_account(db, account, TODAY, settings=_settings())

    assert outcome.late_tracked == ["S-LATE"]
    assert again.late_tracked == []
    assert len(db.scalars(select(ForecastAccuracyRecord)).all()) == 1


def test_long_cycle_closing_yesterday_is_reported_and_rolls_over() -> None:
    db = _session()
    account = _account(db)
    _settlement(
        db,
        account,
        "S-BIWEEKLY",
        SettlementStatus.confirmed,
        date(2026, 2, 19),
        YESTERDAY,
        "5000.00",
        fund_transfer_status="Succeeded",
    )

    outcome = reconcile_account(db, account, TODAY, settings=_settings())

    assert outcome.branch == ReconcileBranch.rollover
    assert outcome.skipped == SkipReason.non_daily_settlement
    assert db.scalars(select(ForecastAccuracyRecord)).all() == []


def test_second_close_run_keeps_the_first_accuracy_record() -> None:
    db = _session()
    account = _account(db)
    _settlement(
        db,
        account,
        "S-CLOSED",
        SettlementStatus.confirmed,
        date(2026, 3, 1),
        YESTERDAY,
        "1000.00",
        fund_transfer_status="Succeeded",
    )
    for day, status, amount in (
        (date(2026, 3, 3), SettlementStatus.rolled_over, "300.00"),
        (YESTERDAY, SettlementStatus.forecasted, "950.00"),
    ):
        db.add(
            SettlementPeriod(
                account_id=account.id,
                settlement_id=forecast_row_id("S-CLOSED", day),
                status=status,
                forecast_date=day,
                source_settlement_id="S-CLOSED",
                total_amount=money(amount),
                currency_code="USD",
            )
        )
    db.flush()

    first = reconcile_account(db, account, TODAY, settings=_settings())
    second = reconcile_account(db, account, TODAY, settings=_settings())

    assert first.accuracy.record is not None
    assert second.branch == ReconcileBranch.settlement_closed
    assert second.accuracy is None
    records = db.scalars(select(ForecastAccuracyRecord)).all()
    assert len(records) == 1
    assert money(records[0].forecasted_amount) == money("950.00")
    assert records[0].difference_percentage == money("5.00")


def test_confirmed_settlement_without_start_closes_as_daily() -> None:
    db = _session()
    account = _account(db)
    _settlement(
        db,
        account,
        "S-NOSTART",
        SettlementStatus.confirmed,
        None,
        YESTERDAY,
        "120.00",
        fund_transfer_status="Succeeded",
    )
    db.add(
        SettlementPeriod(
            account_id=account.id,
            settlement_id=forecast_row_id("S-NOSTART", YESTERDAY),
            status=SettlementStatus.forecasted,
            forecast_date=YESTERDAY,
            source_settlement_id="S-NOSTART",
            total_amount=money("100.00"),
            currency_code="USD",
        )
    )
    db.flush()

    outcome = reconcile_account(db, account, TODAY, settings=_settings())

    assert outcome.branch == ReconcileBranch.settlement_closed
    assert outcome.settlement_id == "S-NOSTART"
    record = outcome.accuracy.record
    assert record.settlement_period_start is None
    assert record.days_accumulated == 1
    assert money(record.difference_amount) == money("20.00")


def test_rollover_keeps_visible_rows_summing_to_today_cumulative() -> None:
    db = _session()
    account = _account(db)
    _settlement(db, account, "S-OPEN", SettlementStatus.estimated, date(2026, 3, 1), date(2026, 3, 7), "1400.00")
    regenerate_account_forecasts(db, account, None)
    today_cumulative = money(_forecast_row(db, "S-OPEN", account.id, TODAY).cumulative_available)

    rollover_forecasts(db, account.id, TODAY)

    visible = db.scalars(
        select(SettlementPeriod).where(
            SettlementPeriod.source_settlement_id == "S-OPEN",
            SettlementPeriod.status == SettlementStatus.forecasted,
            SettlementPeriod.forecast_date <= TODAY,
        )
    ).all()
    assert sum(money(row.total_amount) for row in visible) == today_cumulative
    assert money(_forecast_row(db, "S-OPEN", account.id, TODAY).cumulative_available) == today_cumulative

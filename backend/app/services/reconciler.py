from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.db.session import SessionLocal
from app.models.account import SellerAccount
from app.models.accuracy import ForecastAccuracyRecord
from app.models.enums import ReconcileBranch, SettlementStatus, SkipReason
from app.models.settlement import SettlementPeriod
from app.services.accuracy import AccuracyOutcome, track
from app.services.audit import SYSTEM_ACTOR, log_audit
from app.services.errors import InvalidPeriodBounds
from app.services.forecasts import (
    RegenerationResult,
    get_open_settlements,
    regenerate_account_forecasts,
    require_bounds,
)
from app.services.locks import open_settlement_locks
from app.services.providers import (
    StoredVolumeWeightProvider,
    TrendForecastProvider,
    VolumeWeightProvider,
)
from app.utils.dates import anchor_today
from app.utils.decimal_math import money


logger = logging.getLogger("settlecast.reconciler")

FUND_TRANSFER_SUCCEEDED = "Succeeded"


@dataclass(frozen=True)
class RolloverResult:
    rolled_amount: Decimal
    rolled_rows: int
    skipped: SkipReason | None = None


@dataclass(frozen=True)
class BranchDecision:
    closed_yesterday: SettlementPeriod | None
    late_reported: list[SettlementPeriod]
    long_cycles: list[SettlementPeriod]

    @property
    def branch(self) -> ReconcileBranch:
        if self.closed_yesterday is not None:
            return ReconcileBranch.settlement_closed
        return ReconcileBranch.rollover


@dataclass
class AccountReconciliation:
    account_id: int
    branch: ReconcileBranch
    settlement_id: str | None = None
    accuracy: AccuracyOutcome | None = None
    late_tracked: list[str] = field(default_factory=list)
    regeneration: RegenerationResult | None = None
    rollover: RolloverResult | None = None
    skipped: SkipReason | None = None
    error: str | None = None


@dataclass
class ReconciliationRun:
    run_date: date
    yesterday: date
    outcomes: list[AccountReconciliation] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.branch == ReconcileBranch.failed)

    @property
    def settlements_closed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.branch == ReconcileBranch.settlement_closed)

    @property
    def rollovers(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.branch == ReconcileBranch.rollover)


def is_daily_settlement(settlement: SettlementPeriod, max_days: int) -> bool:
    # A confirmed settlement without a start date counts as daily-style.
    duration = settlement.duration_days
    return duration is None or duration <= max_days


def find_recent_confirmed(
    db: Session,
    account_id: int,
    yesterday: date,
    lookback_days: int,
) -> list[SettlementPeriod]:
    rows = db.scalars(
        select(SettlementPeriod)
        .where(
            SettlementPeriod.account_id == account_id,
            SettlementPeriod.status == SettlementStatus.confirmed,
            SettlementPeriod.period_end >= yesterday - timedelta(days=lookback_days),
            SettlementPeriod.period_end <= yesterday,
        )
        .order_by(SettlementPeriod.period_end.desc(), SettlementPeriod.id.desc())
    ).all()
    return [
        row
        for row in rows
        if row.fund_transfer_status is None or row.fund_transfer_status == FUND_TRANSFER_SUCCEEDED
    ]


def decide_branch(
    candidates: list[SettlementPeriod],
    yesterday: date,
    max_days: int,
) -> BranchDecision:
    """Pick the settlement that closed yesterday, if any.

    Only daily-style settlements count; longer invoiced cycles are reported
    back but never redistributed. Daily settlements that closed earlier in
    the lookback window are late reports.
    """
    closed_yesterday: SettlementPeriod | None = None
    late: list[SettlementPeriod] = []
    long_cycles: list[SettlementPeriod] = []
    for candidate in candidates:
        if not is_daily_settlement(candidate, max_days):
            long_cycles.append(candidate)
            continue
        if candidate.period_end == yesterday:
            if closed_yesterday is None:
                closed_yesterday = candidate
        else:
            late.append(candidate)
    return BranchDecision(closed_yesterday=closed_yesterday, late_reported=late, long_cycles=long_cycles)


def rollover_forecasts(
    db: Session,
    account_id: int,
    today: date,
    *,
    actor: str = SYSTEM_ACTOR,
) -> RolloverResult:
    """Fold yesterday's unclaimed forecast into today's row of the same settlement.

    A yesterday row that is already ``rolled_over`` is no longer a candidate,
    which keeps a second run on the same day from carrying it twice.
    """
    yesterday = today - timedelta(days=1)
    yesterday_rows = list(
        db.scalars(
            select(SettlementPeriod)
            .where(
                SettlementPeriod.account_id == account_id,
                SettlementPeriod.status == SettlementStatus.forecasted,
                SettlementPeriod.forecast_date == yesterday,
            )
            .order_by(SettlementPeriod.id)
        ).all()
    )
    if not yesterday_rows:
        logger.info("Nothing to roll over for account %s on %s.", account_id, today)
        return RolloverResult(rolled_amount=money(0), rolled_rows=0)

    today_rows = {
        row.source_settlement_id: row
        for row in db.scalars(
            select(SettlementPeriod).where(
                SettlementPeriod.account_id == account_id,
                SettlementPeriod.status == SettlementStatus.forecasted,
                SettlementPeriod.forecast_date == today,
            )
        ).all()
    }

    rolled_amount = money(0)
    rolled_rows = 0
    for row in yesterday_rows:
        target = today_rows.get(row.source_settlement_id)
        if target is None:
            logger.info(
                "Stale rollover target: no forecast for %s on %s (account %s); leaving %s in place.",
                row.source_settlement_id,
                today,
                account_id,
                money(row.total_amount),
            )
            continue
        before = money(target.total_amount)
        target.total_amount = money(before + money(row.total_amount))
        row.status = SettlementStatus.rolled_over
        rolled_amount = money(rolled_amount + money(row.total_amount))
        rolled_rows += 1
        log_audit(
            db,
            actor=actor,
            action="forecast.rollover",
            entity_type="settlement_period",
            entity_id=target.settlement_id,
            account_id=account_id,
            settlement_id=row.source_settlement_id,
            before_state={"total_amount": str(before), "rolled_from": row.settlement_id},
            after_state={"total_amount": str(money(target.total_amount))},
        )
    db.flush()

    if rolled_rows == 0:
        return RolloverResult(
            rolled_amount=money(0),
            rolled_rows=0,
            skipped=SkipReason.stale_rollover_target,
        )
    logger.info("Rolled %s forward into %s for account %s.", rolled_amount, today, account_id)
    return RolloverResult(rolled_amount=rolled_amount, rolled_rows=rolled_rows)


def _already_tracked(db: Session, settlement_id: str) -> bool:
    return (
        db.scalar(
            select(ForecastAccuracyRecord.id).where(ForecastAccuracyRecord.settlement_id == settlement_id)
        )
        is not None
    )


def reconcile_account(
    db: Session,
    account: SellerAccount,
    today: date,
    *,
    settings: Settings | None = None,
    volume_provider: VolumeWeightProvider | None = None,
    trend_provider: TrendForecastProvider | None = None,
) -> AccountReconciliation:
    """Run one account's daily cycle. The caller owns locking and the commit."""
    config = settings or get_settings()
    yesterday = today - timedelta(days=1)

    # A malformed open settlement makes any distribution meaningless.
    for settlement in get_open_settlements(db, account.id):
        require_bounds(settlement)

    candidates = find_recent_confirmed(db, account.id, yesterday, config.confirmed_lookback_days)
    decision = decide_branch(candidates, yesterday, config.daily_settlement_max_days)
    for settlement in decision.long_cycles:
        logger.info(
            "Settlement %s spans %s days; recorded without redistribution.",
            settlement.settlement_id,
            settlement.duration_days,
        )

    outcome = AccountReconciliation(account_id=account.id, branch=decision.branch)
    for settlement in decision.late_reported:
        if _already_tracked(db, settlement.settlement_id):
            continue
        late_outcome = track(db, settlement, lookback_days=config.accuracy_lookback_days)
        if late_outcome.record is not None:
            outcome.late_tracked.append(settlement.settlement_id)

    if decision.closed_yesterday is not None:
        closed = decision.closed_yesterday
        outcome.settlement_id = closed.settlement_id
        # A retry on the same day must not re-read a chain that regeneration already trimmed.
        if _already_tracked(db, closed.settlement_id):
            logger.info("Accuracy for settlement %s already recorded.", closed.settlement_id)
        else:
            outcome.accuracy = track(db, closed, lookback_days=config.accuracy_lookback_days)
            if outcome.accuracy.skipped is not None:
                outcome.skipped = outcome.accuracy.skipped
        outcome.regeneration = regenerate_account_forecasts(
            db,
            account,
            volume_provider,
            trend_provider=trend_provider,
            trend_horizon_days=config.trend_forecast_horizon_days,
        )
        log_audit(
            db,
            actor=SYSTEM_ACTOR,
            action="forecast.regenerate",
            entity_type="seller_account",
            entity_id=str(account.id),
            account_id=account.id,
            settlement_id=closed.settlement_id,
            after_state={
                "deleted_rows": outcome.regeneration.deleted_rows,
                "settlements": [item.settlement_id for item in outcome.regeneration.forecasts],
            },
        )
        logger.info(
            "Account %s: settlement %s closed %s; accuracy tracked and forecasts regenerated.",
            account.id,
            closed.settlement_id,
            yesterday,
        )
        return outcome

    outcome.rollover = rollover_forecasts(db, account.id, today)
    outcome.skipped = outcome.rollover.skipped
    if outcome.skipped is None and any(row.period_end == yesterday for row in decision.long_cycles):
        outcome.skipped = SkipReason.non_daily_settlement
    return outcome


def run_daily_reconciliation(
    db: Session | None = None,
    *,
    today: date | None = None,
    settings: Settings | None = None,
    volume_provider_factory: Callable[[Session], VolumeWeightProvider] | None = None,
    trend_provider: TrendForecastProvider | None = None,
) -> ReconciliationRun:
    """Scheduled entry point: reconcile every active account for one operational day.

    Accounts are processed one at a time and each commits or rolls back on its
    own, so a failure is recorded against that account only.
    """
    config = settings or get_settings()
    run_date = today or anchor_today(config.anchor_timezone)
    run = ReconciliationRun(run_date=run_date, yesterday=run_date - timedelta(days=1))
    provider_factory = volume_provider_factory or StoredVolumeWeightProvider

    manage_session = db is None
    session = db if db is not None else SessionLocal()
    try:
        account_ids = list(
            session.scalars(
                select(SellerAccount.id)
                .where(SellerAccount.is_active.is_(True))
                .order_by(SellerAccount.id)
            ).all()
        )
        logger.info("Daily reconciliation for %s: %d accounts.", run_date, len(account_ids))
        for account_id in account_ids:
            run.outcomes.append(
                _reconcile_isolated(
                    session,
                    account_id,
                    run_date,
                    config,
                    provider_factory(session),
                    trend_provider,
                )
            )
        logger.info(
            "Daily reconciliation for %s complete: %d closed, %d rollovers, %d failed.",
            run_date,
            run.settlements_closed,
            run.rollovers,
            run.failed,
        )
        return run
    finally:
        if manage_session:
            session.close()


def _reconcile_isolated(
    db: Session,
    account_id: int,
    run_date: date,
    config: Settings,
    volume_provider: VolumeWeightProvider,
    trend_provider: TrendForecastProvider | None,
) -> AccountReconciliation:
    try:
        account = db.get(SellerAccount, account_id)
        with open_settlement_locks(db, account_id):
            outcome = reconcile_account(
                db,
                account,
                run_date,
                settings=config,
                volume_provider=volume_provider,
                trend_provider=trend_provider,
            )
            db.commit()
        return outcome
    except InvalidPeriodBounds as exc:
        db.rollback()
        logger.warning("Skipping account %s: %s", account_id, exc.detail)
        return AccountReconciliation(
            account_id=account_id,
            branch=ReconcileBranch.failed,
            settlement_id=exc.settlement_id,
            skipped=SkipReason.invalid_period_bounds,
            error=str(exc.detail),
        )
    except Exception as exc:
        db.rollback()
        logger.exception("Reconciliation failed for account %s.", account_id)
        return AccountReconciliation(
            account_id=account_id,
            branch=ReconcileBranch.failed,
            error=str(exc),
        )

from __future__ import annotations

import logging
from zoneinfo import ZoneInfo

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.models.account import SellerAccount
from app.services.cashout import detect
from app.services.locks import open_settlement_locks
from app.services.providers import GeminiTrendForecastProvider, StoredVolumeWeightProvider
from app.services.reconciler import run_daily_reconciliation


logger = logging.getLogger("settlecast.scheduler")

_scheduler: BackgroundScheduler | None = None


def daily_reconciliation_job() -> None:
    settings = get_settings()
    trend_provider = GeminiTrendForecastProvider() if settings.trend_forecast_horizon_days > 0 else None
    run = run_daily_reconciliation(trend_provider=trend_provider)
    logger.info(
        "Reconciliation job finished for %s: %d accounts, %d failed.",
        run.run_date,
        len(run.outcomes),
        run.failed,
    )


def daily_cashout_sync_job() -> None:
    detected = 0
    errors = 0
    with SessionLocal() as db:
        account_ids = list(
            db.scalars(
                select(SellerAccount.id)
                .where(SellerAccount.is_active.is_(True))
                .order_by(SellerAccount.id)
            ).all()
        )
        for account_id in account_ids:
            try:
                with open_settlement_locks(db, account_id):
                    result = detect(db, account_id, volume_provider=StoredVolumeWeightProvider(db))
                    db.commit()
            except Exception:
                db.rollback()
                errors += 1
                logger.exception("Cash-out sync failed for account %s.", account_id)
                continue
            if result.cash_out_detected:
                detected += 1
    logger.info(
        "Cash-out sync complete: %d accounts, %d cash-outs, %d errors.",
        len(account_ids),
        detected,
        errors,
    )


def start_scheduler() -> BackgroundScheduler:
    global _scheduler
    settings = get_settings()
    timezone = ZoneInfo(settings.anchor_timezone)
    scheduler = BackgroundScheduler(timezone=timezone)
    scheduler.add_job(
        daily_reconciliation_job,
        trigger=CronTrigger(hour=settings.reconcile_hour, minute=settings.reconcile_minute, timezone=timezone),
        id="daily_reconciliation",
        name="Daily settlement reconciliation",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        daily_cashout_sync_job,
        trigger=CronTrigger(
            hour=settings.cashout_sync_hour,
            minute=settings.cashout_sync_minute,
            timezone=timezone,
        ),
        id="daily_cashout_sync",
        name="Daily cash-out detection",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    _scheduler = scheduler
    logger.info("Scheduler started in %s.", settings.anchor_timezone)
    return scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Scheduler stopped.")

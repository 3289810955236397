from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.accuracy import ForecastAccuracyRecord
from app.models.enums import SettlementStatus, SkipReason
from app.models.settlement import SettlementPeriod
from app.services.errors import InvalidPeriodBounds
from app.utils.decimal_math import money, pct


logger = logging.getLogger("settlecast.accuracy")

CHAIN_STATUSES = (SettlementStatus.forecasted, SettlementStatus.rolled_over)


@dataclass(frozen=True)
class AccuracyOutcome:
    settlement_id: str
    record: ForecastAccuracyRecord | None
    skipped: SkipReason | None = None


@dataclass(frozen=True)
class GroupAccuracy:
    key: str
    count: int
    accuracy: Decimal
    mape: Decimal


@dataclass(frozen=True)
class AccuracySummary:
    total_comparisons: int
    overall_accuracy: Decimal
    mape: Decimal
    mean_absolute_error: Decimal
    mean_bias: Decimal
    by_method: list[GroupAccuracy]
    monthly: list[GroupAccuracy]


def difference_percentage(actual: Decimal, difference: Decimal) -> Decimal:
    if money(actual) == money(0):
        return pct(0)
    return pct(abs(difference) / money(actual) * Decimal("100"))


def forecast_chain(
    db: Session,
    settlement: SettlementPeriod,
    lookback_days: int,
) -> list[SettlementPeriod]:
    """Forecast rows that led up to the settlement's payout, oldest first.

    The window ends before the payout date (the day after period end) and
    reaches back ``lookback_days`` from it. Rolled-over rows stay in the chain
    because their amounts were carried into the later rows.
    """
    if settlement.period_end is None:
        raise InvalidPeriodBounds(settlement.settlement_id, reason="missing period end")
    close_date = SettlementPeriod.derive_payout_date(settlement.period_end)
    window_start = close_date - timedelta(days=lookback_days)
    return list(
        db.scalars(
            select(SettlementPeriod)
            .where(
                SettlementPeriod.account_id == settlement.account_id,
                SettlementPeriod.status.in_(CHAIN_STATUSES),
                SettlementPeriod.forecast_date < close_date,
                SettlementPeriod.forecast_date >= window_start,
            )
            .order_by(SettlementPeriod.forecast_date, SettlementPeriod.id)
        ).all()
    )


def track(
    db: Session,
    settlement: SettlementPeriod,
    *,
    lookback_days: int = 7,
) -> AccuracyOutcome:
    chain = forecast_chain(db, settlement, lookback_days)
    if not chain:
        logger.info(
            "No forecast to compare for settlement %s (account %s); skipping accuracy tracking.",
            settlement.settlement_id,
            settlement.account_id,
        )
        return AccuracyOutcome(
            settlement_id=settlement.settlement_id,
            record=None,
            skipped=SkipReason.no_forecast_to_compare,
        )

    # Each row already carries the rollovers before it, so the latest one is the forecast.
    latest = chain[-1]
    forecasted_amount = money(latest.total_amount)
    actual_amount = money(settlement.total_amount)
    difference_amount = money(actual_amount - forecasted_amount)
    difference_pct = difference_percentage(actual_amount, difference_amount)
    by_day = [
        {
            "date": row.forecast_date.isoformat(),
            "amount": str(money(row.total_amount)),
            "status": row.status.value,
        }
        for row in chain
    ]

    record = db.scalar(
        select(ForecastAccuracyRecord).where(
            ForecastAccuracyRecord.settlement_id == settlement.settlement_id
        )
    )
    if record is None:
        record = ForecastAccuracyRecord(settlement_id=settlement.settlement_id)
        db.add(record)
    record.account_id = settlement.account_id
    record.settlement_period_start = settlement.period_start
    record.settlement_period_end = settlement.period_end
    record.payout_date = settlement.payout_date or SettlementPeriod.derive_payout_date(settlement.period_end)
    record.days_accumulated = (settlement.duration_days or 0) + 1
    record.forecasted_amount = forecasted_amount
    record.forecasted_amounts_by_day = by_day
    record.actual_amount = actual_amount
    record.difference_amount = difference_amount
    record.difference_percentage = difference_pct
    record.modeling_method = latest.modeling_method
    db.flush()

    logger.info(
        "Forecast accuracy for settlement %s: forecast %s, actual %s, difference %s (%s%%).",
        settlement.settlement_id,
        forecasted_amount,
        actual_amount,
        difference_amount,
        difference_pct,
    )
    return AccuracyOutcome(settlement_id=settlement.settlement_id, record=record)


def list_records(db: Session, account_id: int) -> list[ForecastAccuracyRecord]:
    return list(
        db.scalars(
            select(ForecastAccuracyRecord)
            .where(ForecastAccuracyRecord.account_id == account_id)
            .order_by(ForecastAccuracyRecord.settlement_period_end.desc())
        ).all()
    )


def _group(records: list[ForecastAccuracyRecord], key_fn) -> list[GroupAccuracy]:
    buckets: dict[str, list[Decimal]] = defaultdict(list)
    for record in records:
        buckets[key_fn(record)].append(pct(record.difference_percentage))
    rows: list[GroupAccuracy] = []
    for key in sorted(buckets):
        values = buckets[key]
        mape = pct(sum(values) / len(values))
        rows.append(
            GroupAccuracy(
                key=key,
                count=len(values),
                accuracy=pct(max(Decimal(0), Decimal(100) - mape)),
                mape=mape,
            )
        )
    return rows


def summarize(records: list[ForecastAccuracyRecord]) -> AccuracySummary:
    if not records:
        return AccuracySummary(
            total_comparisons=0,
            overall_accuracy=pct(0),
            mape=pct(0),
            mean_absolute_error=money(0),
            mean_bias=money(0),
            by_method=[],
            monthly=[],
        )
    count = len(records)
    mape = pct(sum(pct(record.difference_percentage) for record in records) / count)
    mean_absolute_error = money(sum(abs(money(record.difference_amount)) for record in records) / count)
    # Positive bias means the forecast ran above the actual payout.
    mean_bias = money(
        sum(money(record.forecasted_amount) - money(record.actual_amount) for record in records) / count
    )
    return AccuracySummary(
        total_comparisons=count,
        overall_accuracy=pct(max(Decimal(0), Decimal(100) - mape)),
        mape=mape,
        mean_absolute_error=mean_absolute_error,
        mean_bias=mean_bias,
        by_method=_group(records, lambda record: record.modeling_method or "unknown"),
        monthly=_group(records, lambda record: record.settlement_period_end.strftime("%Y-%m")),
    )

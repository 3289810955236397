from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.models.account import SellerAccount
from app.models.draw import DailyDraw
from app.models.enums import ModelingMethod, SettlementStatus
from app.models.settlement import SettlementPeriod
from app.services.distribution import DailySlice, distribute, net_available
from app.services.errors import InvalidPeriodBounds
from app.services.providers import TrendForecastProvider, VolumeWeightProvider
from app.utils.decimal_math import money


logger = logging.getLogger("settlecast.forecasts")


@dataclass(frozen=True)
class SettlementForecast:
    settlement_id: str
    total_amount: Decimal
    total_drawn: Decimal
    net_available: Decimal
    weighted: bool
    schedule: list[DailySlice]


@dataclass
class RegenerationResult:
    account_id: int
    deleted_rows: int = 0
    forecasts: list[SettlementForecast] = field(default_factory=list)
    trend_rows: int = 0


def forecast_row_id(source_settlement_id: str, day: date) -> str:
    return f"forecast:{source_settlement_id}:{day.isoformat()}"


def trend_source_id(account_id: int) -> str:
    return f"trend:{account_id}"


def require_bounds(settlement: SettlementPeriod) -> tuple[date, date]:
    if settlement.period_start is None or settlement.period_end is None:
        raise InvalidPeriodBounds(settlement.settlement_id)
    if settlement.period_end < settlement.period_start:
        raise InvalidPeriodBounds(settlement.settlement_id, reason="period end precedes period start")
    return settlement.period_start, settlement.period_end


def get_open_settlements(db: Session, account_id: int) -> list[SettlementPeriod]:
    return list(
        db.scalars(
            select(SettlementPeriod)
            .where(
                SettlementPeriod.account_id == account_id,
                SettlementPeriod.status == SettlementStatus.estimated,
            )
            .order_by(SettlementPeriod.period_start, SettlementPeriod.id)
        ).all()
    )


def get_open_settlement(db: Session, account_id: int, settlement_id: str) -> SettlementPeriod | None:
    return db.scalar(
        select(SettlementPeriod).where(
            SettlementPeriod.account_id == account_id,
            SettlementPeriod.settlement_id == settlement_id,
            SettlementPeriod.status == SettlementStatus.estimated,
        )
    )


def settlement_draw_amounts(db: Session, account_id: int, settlement_id: str) -> list[Decimal]:
    return [
        money(amount)
        for amount in db.scalars(
            select(DailyDraw.amount)
            .where(DailyDraw.account_id == account_id, DailyDraw.settlement_id == settlement_id)
            .order_by(DailyDraw.id)
        ).all()
    ]


def _forecast_rows(
    settlement: SettlementPeriod,
    forecast: SettlementForecast,
    modeling_method: ModelingMethod,
) -> list[SettlementPeriod]:
    return [
        SettlementPeriod(
            account_id=settlement.account_id,
            settlement_id=forecast_row_id(settlement.settlement_id, item.date),
            status=SettlementStatus.forecasted,
            forecast_date=item.date,
            source_settlement_id=settlement.settlement_id,
            total_amount=item.daily_unlock,
            cumulative_available=item.cumulative_available,
            days_accumulated=item.days_accumulated,
            currency_code=settlement.currency_code,
            modeling_method=modeling_method.value,
            forecast_metadata={
                "settlement_total": str(forecast.total_amount),
                "total_drawn": str(forecast.total_drawn),
                "net_available": str(forecast.net_available),
                "volume_weighted": forecast.weighted,
            },
        )
        for item in forecast.schedule
    ]


def compute_settlement_forecast(
    db: Session,
    settlement: SettlementPeriod,
    volume_provider: VolumeWeightProvider | None,
) -> SettlementForecast:
    period_start, period_end = require_bounds(settlement)
    draws = settlement_draw_amounts(db, settlement.account_id, settlement.settlement_id)
    weights = {}
    if volume_provider is not None:
        weights = volume_provider.weights(settlement.account_id, period_start, period_end) or {}
    schedule = distribute(settlement.total_amount, period_start, period_end, draws, weights)
    return SettlementForecast(
        settlement_id=settlement.settlement_id,
        total_amount=money(settlement.total_amount),
        total_drawn=money(sum(draws, Decimal(0))),
        net_available=net_available(settlement.total_amount, draws),
        weighted=any(weights.get(item.date) for item in schedule),
        schedule=schedule,
    )


def replace_settlement_forecasts(
    db: Session,
    settlement: SettlementPeriod,
    volume_provider: VolumeWeightProvider | None,
    modeling_method: ModelingMethod = ModelingMethod.cumulative_distribution,
) -> SettlementForecast:
    """Swap the forecast rows of one open settlement for a fresh computation.

    The delete and insert share the caller's transaction; nothing is committed here.
    """
    forecast = compute_settlement_forecast(db, settlement, volume_provider)
    db.execute(
        delete(SettlementPeriod).where(
            SettlementPeriod.account_id == settlement.account_id,
            SettlementPeriod.source_settlement_id == settlement.settlement_id,
            SettlementPeriod.status == SettlementStatus.forecasted,
        )
    )
    db.add_all(_forecast_rows(settlement, forecast, modeling_method))
    db.flush()
    return forecast


def _seed_trend_rows(
    db: Session,
    account: SellerAccount,
    after: date,
    horizon_days: int,
    trend_provider: TrendForecastProvider,
) -> int:
    date_start = after + timedelta(days=1)
    date_end = after + timedelta(days=horizon_days)
    history = [
        {
            "settlement_id": row.settlement_id,
            "period_start": row.period_start,
            "period_end": row.period_end,
            "total_amount": str(money(row.total_amount)),
        }
        for row in db.scalars(
            select(SettlementPeriod)
            .where(
                SettlementPeriod.account_id == account.id,
                SettlementPeriod.status == SettlementStatus.confirmed,
            )
            .order_by(SettlementPeriod.period_end.desc())
            .limit(30)
        ).all()
    ]
    estimate = trend_provider.estimate(account.id, date_start, date_end, history)
    if estimate is None:
        return 0

    source = trend_source_id(account.id)
    schedule = distribute(estimate.point_estimate, date_start, date_end)
    db.add_all(
        [
            SettlementPeriod(
                account_id=account.id,
                settlement_id=forecast_row_id(source, item.date),
                status=SettlementStatus.forecasted,
                forecast_date=item.date,
                source_settlement_id=source,
                total_amount=item.daily_unlock,
                cumulative_available=item.cumulative_available,
                days_accumulated=item.days_accumulated,
                currency_code=account.currency_code,
                modeling_method=ModelingMethod.trend_seed.value,
                forecast_metadata={
                    "point_estimate": str(estimate.point_estimate),
                    "lower_bound": str(estimate.lower_bound),
                    "upper_bound": str(estimate.upper_bound),
                    "provider": estimate.source,
                },
            )
            for item in schedule
        ]
    )
    db.flush()
    return len(schedule)


def regenerate_account_forecasts(
    db: Session,
    account: SellerAccount,
    volume_provider: VolumeWeightProvider | None,
    *,
    trend_provider: TrendForecastProvider | None = None,
    trend_horizon_days: int = 0,
) -> RegenerationResult:
    """Discard every forecast row of the account and rebuild from open settlements."""
    open_settlements = get_open_settlements(db, account.id)
    # Validate first so a malformed settlement leaves the existing rows untouched.
    for settlement in open_settlements:
        require_bounds(settlement)

    result = RegenerationResult(account_id=account.id)
    deleted = db.execute(
        delete(SettlementPeriod).where(
            SettlementPeriod.account_id == account.id,
            SettlementPeriod.status == SettlementStatus.forecasted,
        )
    )
    result.deleted_rows = deleted.rowcount or 0

    for settlement in open_settlements:
        forecast = compute_settlement_forecast(db, settlement, volume_provider)
        db.add_all(_forecast_rows(settlement, forecast, ModelingMethod.cumulative_distribution))
        result.forecasts.append(forecast)
    db.flush()

    if trend_provider is not None and trend_horizon_days > 0 and open_settlements:
        horizon_start = max(settlement.period_end for settlement in open_settlements)
        result.trend_rows = _seed_trend_rows(db, account, horizon_start, trend_horizon_days, trend_provider)

    logger.info(
        "Regenerated forecasts for account %s: %d settlements, %d rows removed, %d trend rows.",
        account.id,
        len(result.forecasts),
        result.deleted_rows,
        result.trend_rows,
    )
    return result


def current_schedule(db: Session, account_id: int) -> list[SettlementPeriod]:
    return list(
        db.scalars(
            select(SettlementPeriod)
            .where(
                SettlementPeriod.account_id == account_id,
                SettlementPeriod.status == SettlementStatus.forecasted,
            )
            .order_by(SettlementPeriod.forecast_date, SettlementPeriod.id)
        ).all()
    )

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
import logging

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.draw import DailyDraw
from app.models.enums import DrawSource, ModelingMethod
from app.services.audit import log_audit
from app.services.errors import SettlementNotFound
from app.services.forecasts import (
    SettlementForecast,
    get_open_settlement,
    replace_settlement_forecasts,
)
from app.services.providers import VolumeWeightProvider
from app.utils.decimal_math import money


logger = logging.getLogger("settlecast.draws")


@dataclass(frozen=True)
class DrawResult:
    draw: DailyDraw
    forecast: SettlementForecast


def recalculate(
    db: Session,
    account_id: int,
    settlement_id: str,
    new_draw_amount: Decimal | None = None,
    *,
    volume_provider: VolumeWeightProvider | None = None,
) -> SettlementForecast:
    """Rebuild the whole schedule of an open settlement from its draw ledger.

    The result depends only on the draws currently recorded, so running it
    again without new draws rewrites identical rows. The caller holds the
    settlement lock and commits.
    """
    settlement = get_open_settlement(db, account_id, settlement_id)
    if settlement is None:
        raise SettlementNotFound(account_id, settlement_id)

    forecast = replace_settlement_forecasts(
        db,
        settlement,
        volume_provider,
        modeling_method=ModelingMethod.draw_recalculation,
    )
    logger.info(
        "Recalculated settlement %s for account %s after draw %s: drawn %s, remaining %s over %d days.",
        settlement_id,
        account_id,
        money(new_draw_amount) if new_draw_amount is not None else "-",
        forecast.total_drawn,
        forecast.net_available,
        len(forecast.schedule),
    )
    return forecast


def record_draw(
    db: Session,
    *,
    account_id: int,
    settlement_id: str,
    amount: Decimal,
    draw_date: date,
    notes: str | None = None,
    actor: str = "api",
    volume_provider: VolumeWeightProvider | None = None,
) -> DrawResult:
    draw_amount = money(amount)
    if draw_amount <= money(0):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Draw amount must be positive.",
        )

    settlement = get_open_settlement(db, account_id, settlement_id)
    if settlement is None:
        raise SettlementNotFound(account_id, settlement_id)

    draw = DailyDraw(
        account_id=account_id,
        settlement_id=settlement_id,
        draw_date=draw_date,
        amount=draw_amount,
        source=DrawSource.manual,
        settlement_period_start=settlement.period_start,
        settlement_period_end=settlement.period_end,
        notes=notes,
    )
    db.add(draw)
    db.flush()

    forecast = recalculate(
        db,
        account_id,
        settlement_id,
        draw_amount,
        volume_provider=volume_provider,
    )
    log_audit(
        db,
        actor=actor,
        action="draw.record",
        entity_type="daily_draw",
        entity_id=str(draw.id),
        account_id=account_id,
        settlement_id=settlement_id,
        after_state={
            "draw_date": draw_date.isoformat(),
            "amount": str(draw_amount),
            "total_drawn": str(forecast.total_drawn),
            "net_available": str(forecast.net_available),
        },
    )
    return DrawResult(draw=draw, forecast=forecast)


def list_draws(db: Session, account_id: int, settlement_id: str | None = None) -> list[DailyDraw]:
    query = select(DailyDraw).where(DailyDraw.account_id == account_id)
    if settlement_id is not None:
        query = query.where(DailyDraw.settlement_id == settlement_id)
    return list(db.scalars(query.order_by(DailyDraw.draw_date, DailyDraw.id)).all())

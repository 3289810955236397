from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.draw import DailyDraw
from app.models.enums import DrawSource, SettlementStatus
from app.models.settlement import SettlementPeriod
from app.services.audit import log_audit
from app.services.draws import recalculate
from app.services.errors import InvalidPeriodBounds
from app.services.providers import VolumeWeightProvider
from app.utils.decimal_math import money


logger = logging.getLogger("settlecast.cashout")

CASH_OUT_NOTE = "Auto-detected cash-out from new settlement period"


@dataclass(frozen=True)
class CashOutResult:
    cash_out_detected: bool
    date: date | None = None
    amount: Decimal | None = None
    recorded: bool = False
    settlement_id: str | None = None
    current_available: Decimal | None = None
    beginning_balance: Decimal | None = None
    total_draws: Decimal | None = None


def _latest_open_settlements(db: Session, account_id: int) -> list[SettlementPeriod]:
    return list(
        db.scalars(
            select(SettlementPeriod)
            .where(
                SettlementPeriod.account_id == account_id,
                SettlementPeriod.status == SettlementStatus.estimated,
            )
            .order_by(SettlementPeriod.period_end.desc().nulls_first(), SettlementPeriod.id.desc())
            .limit(2)
        ).all()
    )


def _opening_figure(settlement: SettlementPeriod) -> Decimal:
    if settlement.beginning_balance is not None:
        return money(settlement.beginning_balance)
    return money(settlement.total_amount)


def _draws_since(db: Session, account_id: int, since: date) -> Decimal:
    total = db.scalar(
        select(func.coalesce(func.sum(DailyDraw.amount), 0)).where(
            DailyDraw.account_id == account_id,
            DailyDraw.draw_date >= since,
        )
    )
    return money(total or 0)


def detect(
    db: Session,
    account_id: int,
    *,
    actor: str = "system:cashout",
    volume_provider: VolumeWeightProvider | None = None,
) -> CashOutResult:
    """Infer an out-of-band full withdrawal from a gap between open settlements.

    A gap means the newer settlement starts after the older one ended. The
    cash-out is recorded once per account and date; when no gap exists the
    current available balance is reported instead.
    """
    settlements = _latest_open_settlements(db, account_id)
    if not settlements:
        logger.info("No open settlements for account %s.", account_id)
        return CashOutResult(cash_out_detected=False)

    if len(settlements) == 2:
        newer, older = settlements
        if older.period_end is None or newer.period_start is None:
            raise InvalidPeriodBounds(
                older.settlement_id if older.period_end is None else newer.settlement_id
            )
        if newer.period_start > older.period_end:
            return _record_cash_out(db, account_id, older, actor, volume_provider)

    latest = settlements[0]
    if latest.period_start is None:
        raise InvalidPeriodBounds(latest.settlement_id)
    beginning_balance = _opening_figure(latest)
    total_draws = _draws_since(db, account_id, latest.period_start)
    current_available = max(money(0), money(beginning_balance - total_draws))
    logger.info(
        "Account %s available %s (beginning %s, draws %s).",
        account_id,
        current_available,
        beginning_balance,
        total_draws,
    )
    return CashOutResult(
        cash_out_detected=False,
        settlement_id=latest.settlement_id,
        current_available=current_available,
        beginning_balance=beginning_balance,
        total_draws=total_draws,
    )


def _record_cash_out(
    db: Session,
    account_id: int,
    older: SettlementPeriod,
    actor: str,
    volume_provider: VolumeWeightProvider | None,
) -> CashOutResult:
    cash_out_date = older.period_end + timedelta(days=1)
    amount = _opening_figure(older)

    existing = db.scalar(
        select(DailyDraw.id).where(
            DailyDraw.account_id == account_id,
            DailyDraw.draw_date == cash_out_date,
        ).limit(1)
    )
    recorded = False
    if existing is None and amount > money(0):
        draw = DailyDraw(
            account_id=account_id,
            settlement_id=older.settlement_id,
            draw_date=cash_out_date,
            amount=amount,
            source=DrawSource.cash_out_detected,
            settlement_period_start=older.period_start,
            settlement_period_end=older.period_end,
            notes=CASH_OUT_NOTE,
        )
        db.add(draw)
        db.flush()
        recorded = True
        log_audit(
            db,
            actor=actor,
            action="draw.cash_out_detected",
            entity_type="daily_draw",
            entity_id=str(draw.id),
            account_id=account_id,
            settlement_id=older.settlement_id,
            after_state={"draw_date": cash_out_date.isoformat(), "amount": str(amount)},
        )
        # The older settlement is still open, so its schedule must absorb the draw.
        recalculate(db, account_id, older.settlement_id, amount, volume_provider=volume_provider)
        logger.info(
            "Recorded cash-out of %s on %s for account %s (settlement %s).",
            amount,
            cash_out_date,
            account_id,
            older.settlement_id,
        )
    elif existing is not None:
        logger.info("Cash-out on %s for account %s already recorded.", cash_out_date, account_id)

    return CashOutResult(
        cash_out_detected=True,
        date=cash_out_date,
        amount=amount,
        recorded=recorded,
        settlement_id=older.settlement_id,
    )

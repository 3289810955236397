from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from app.utils.dates import days_inclusive, iter_days
from app.utils.decimal_math import from_cents, round_half_up_int, to_cents


@dataclass(frozen=True)
class DailySlice:
    date: date
    daily_unlock: Decimal
    cumulative_available: Decimal
    days_accumulated: int


def _volume_shares(
    days: list[date],
    volume_weights: Mapping[date, Decimal | int | float] | None,
) -> list[Decimal] | None:
    if not volume_weights:
        return None
    shares = [abs(Decimal(str(volume_weights.get(day, 0)))) for day in days]
    if sum(shares) <= 0:
        return None
    return shares


def distribute(
    total_amount: Decimal | int | str,
    period_start: date,
    period_end: date,
    prior_draws: Iterable[Decimal | int | str] = (),
    volume_weights: Mapping[date, Decimal | int | float] | None = None,
) -> list[DailySlice]:
    """Spread what is left of a settlement across every day of its period.

    Days are weighted by sales volume when the weights cover the range with a
    non-zero total, otherwise split evenly. Work happens in integer cents: the
    exact cumulative figure is rounded half-up once per day and each day's
    unlock is the difference between consecutive rounded cumulatives, so the
    unlocks always add back up to the net available amount.
    """
    if period_end < period_start:
        raise ValueError("period_end must not be before period_start.")

    drawn_cents = sum(to_cents(draw) for draw in prior_draws)
    net_cents = max(0, to_cents(total_amount) - drawn_cents)

    days = list(iter_days(period_start, period_end))
    total_days = days_inclusive(period_start, period_end)
    shares = _volume_shares(days, volume_weights)
    if shares is None:
        shares = [Decimal(1)] * total_days
    share_total = sum(shares)

    slices: list[DailySlice] = []
    running_share = Decimal(0)
    previous_cents = 0
    for index, day in enumerate(days):
        running_share += shares[index]
        if index == total_days - 1:
            cumulative_cents = net_cents
        else:
            cumulative_cents = round_half_up_int(Decimal(net_cents) * running_share / share_total)
        slices.append(
            DailySlice(
                date=day,
                daily_unlock=from_cents(cumulative_cents - previous_cents),
                cumulative_available=from_cents(cumulative_cents),
                days_accumulated=index + 1,
            )
        )
        previous_cents = cumulative_cents
    return slices


def net_available(total_amount: Decimal | int | str, draws: Iterable[Decimal | int | str]) -> Decimal:
    return from_cents(max(0, to_cents(total_amount) - sum(to_cents(draw) for draw in draws)))

import enum


class SettlementStatus(str, enum.Enum):
    forecasted = "forecasted"
    estimated = "estimated"
    confirmed = "confirmed"
    rolled_over = "rolled_over"


class DrawSource(str, enum.Enum):
    manual = "manual"
    cash_out_detected = "cash_out_detected"


class PayoutModel(str, enum.Enum):
    daily = "daily"
    bi_weekly = "bi_weekly"


class ReconcileBranch(str, enum.Enum):
    settlement_closed = "settlement_closed"
    rollover = "rollover"
    failed = "failed"


class SkipReason(str, enum.Enum):
    no_forecast_to_compare = "no_forecast_to_compare"
    stale_rollover_target = "stale_rollover_target"
    non_daily_settlement = "non_daily_settlement"
    invalid_period_bounds = "invalid_period_bounds"


class ModelingMethod(str, enum.Enum):
    cumulative_distribution = "cumulative_distribution"
    draw_recalculation = "draw_recalculation"
    trend_seed = "trend_seed"

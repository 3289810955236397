from app.models.account import SellerAccount
from app.models.accuracy import ForecastAccuracyRecord
from app.models.audit import AuditLog
from app.models.draw import DailyDraw
from app.models.enums import (
    DrawSource,
    ModelingMethod,
    PayoutModel,
    ReconcileBranch,
    SettlementStatus,
    SkipReason,
)
from app.models.settlement import SettlementPeriod
from app.models.volume import DailySalesVolume

__all__ = [
    "AuditLog",
    "DailyDraw",
    "DailySalesVolume",
    "DrawSource",
    "ForecastAccuracyRecord",
    "ModelingMethod",
    "PayoutModel",
    "ReconcileBranch",
    "SellerAccount",
    "SettlementPeriod",
    "SettlementStatus",
    "SkipReason",
]

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.core.config import get_settings
from app.utils.dates import anchor_today


router = APIRouter(tags=["health"])


@router.get("/health")
def health(db: Session = Depends(get_db)) -> dict:
    settings = get_settings()
    db.execute(text("SELECT 1"))
    return {
        "ok": True,
        "service": settings.app_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "operational_date": anchor_today(settings.anchor_timezone).isoformat(),
        "scheduler_enabled": settings.scheduler_enabled,
    }

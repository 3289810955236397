from collections.abc import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from app.db.session import SessionLocal
from app.models.account import SellerAccount
from app.services.ingestion import get_account_or_404
from app.services.providers import StoredVolumeWeightProvider, VolumeWeightProvider


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_account(account_id: int, db: Session = Depends(get_db)) -> SellerAccount:
    return get_account_or_404(db, account_id)


def get_volume_provider(db: Session = Depends(get_db)) -> VolumeWeightProvider:
    return StoredVolumeWeightProvider(db)

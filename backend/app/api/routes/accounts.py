from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_account, get_db
from app.models.account import SellerAccount
from app.schemas.accounts import SellerAccountCreateRequest, SellerAccountOut
from app.services.audit import log_audit


router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.get("", response_model=list[SellerAccountOut])
def list_accounts(include_inactive: bool = False, db: Session = Depends(get_db)) -> list[SellerAccount]:
    query = select(SellerAccount)
    if not include_inactive:
        query = query.where(SellerAccount.is_active.is_(True))
    return list(db.scalars(query.order_by(SellerAccount.id)).all())


@router.post("", response_model=SellerAccountOut, status_code=status.HTTP_201_CREATED)
def create_account(payload: SellerAccountCreateRequest, db: Session = Depends(get_db)) -> SellerAccount:
    if db.scalar(select(SellerAccount.id).where(SellerAccount.code == payload.code)) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Account code already exists.")
    account = SellerAccount(
        code=payload.code,
        name=payload.name,
        marketplace_name=payload.marketplace_name,
        currency_code=payload.currency_code.upper(),
        payout_model=payload.payout_model,
        is_active=True,
    )
    db.add(account)
    db.flush()
    log_audit(
        db,
        actor="api",
        action="account.create",
        entity_type="seller_account",
        entity_id=str(account.id),
        account_id=account.id,
        after_state={"code": account.code, "payout_model": account.payout_model.value},
    )
    db.commit()
    db.refresh(account)
    return account


@router.get("/{account_id}", response_model=SellerAccountOut)
def get_account_detail(account: SellerAccount = Depends(get_account)) -> SellerAccount:
    return account

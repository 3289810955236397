from datetime import datetime

from pydantic import BaseModel, Field

from app.models.enums import PayoutModel
from app.schemas.common import ORMModel


class SellerAccountCreateRequest(BaseModel):
    code: str = Field(min_length=2, max_length=50)
    name: str = Field(min_length=2, max_length=255)
    marketplace_name: str = Field(default="United States", max_length=100)
    currency_code: str = Field(default="USD", min_length=3, max_length=10)
    payout_model: PayoutModel = PayoutModel.daily


class SellerAccountOut(ORMModel):
    id: int
    code: str
    name: str
    marketplace_name: str
    currency_code: str
    payout_model: PayoutModel
    is_active: bool
    created_at: datetime

from __future__ import annotations

from fastapi import HTTPException, status


class SettlementNotFound(HTTPException):
    def __init__(self, account_id: int, settlement_id: str) -> None:
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No open settlement {settlement_id!r} for account {account_id}.",
        )
        self.account_id = account_id
        self.settlement_id = settlement_id


class InvalidPeriodBounds(HTTPException):
    def __init__(self, settlement_id: str, reason: str = "missing period start or end") -> None:
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Settlement {settlement_id!r} has invalid period bounds: {reason}.",
        )
        self.settlement_id = settlement_id
        self.reason = reason


class AccountNotFound(HTTPException):
    def __init__(self, account_id: int) -> None:
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Seller account not found.",
        )
        self.account_id = account_id

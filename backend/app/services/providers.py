from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
import json
import logging
import re
from typing import Any, Protocol

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.volume import DailySalesVolume
from app.utils.decimal_math import money


logger = logging.getLogger("settlecast.trend")


class VolumeWeightProvider(Protocol):
    def weights(self, account_id: int, date_start: date, date_end: date) -> dict[date, Decimal]:
        ...


@dataclass(frozen=True)
class TrendEstimate:
    point_estimate: Decimal
    lower_bound: Decimal
    upper_bound: Decimal
    source: str


class TrendForecastProvider(Protocol):
    def estimate(
        self,
        account_id: int,
        date_start: date,
        date_end: date,
        history: list[dict[str, Any]],
    ) -> TrendEstimate | None:
        ...


class StoredVolumeWeightProvider:
    """Daily sales volume read back from the aggregated history table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def weights(self, account_id: int, date_start: date, date_end: date) -> dict[date, Decimal]:
        rows = self.db.execute(
            select(DailySalesVolume.sales_date, DailySalesVolume.net_amount).where(
                DailySalesVolume.account_id == account_id,
                DailySalesVolume.sales_date >= date_start,
                DailySalesVolume.sales_date <= date_end,
            )
        ).all()
        return {sales_date: abs(money(net_amount)) for sales_date, net_amount in rows}


TREND_SYSTEM_PROMPT = """
You forecast marketplace settlement payouts for a single seller account.
Reply with one JSON object and nothing else:
{"point_estimate": <number>, "lower_bound": <number>, "upper_bound": <number>}
The point estimate is the total payout expected across the requested date range.
Use only the settlement history provided.
""".strip()


def _extract_gemini_text(payload: dict[str, Any]) -> str | None:
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    first = candidates[0] if isinstance(candidates[0], dict) else {}
    content = first.get("content") if isinstance(first, dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return None
    chunks = [
        part["text"].strip()
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str) and part["text"].strip()
    ]
    return "\n".join(chunks) if chunks else None


def parse_trend_estimate(text: str, source: str) -> TrendEstimate | None:
    match = re.search(r"\{.*\}", text, flags=re.DOTALL)
    if match is None:
        return None
    try:
        data = json.loads(match.group(0))
        point = money(data["point_estimate"])
        lower = money(data.get("lower_bound", point))
        upper = money(data.get("upper_bound", point))
    except (ValueError, KeyError, TypeError, InvalidOperation):
        return None
    if point < 0:
        return None
    return TrendEstimate(
        point_estimate=point,
        lower_bound=min(lower, point),
        upper_bound=max(upper, point),
        source=source,
    )


class GeminiTrendForecastProvider:
    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = (api_key if api_key is not None else settings.gemini_api_key).strip()
        self.model = (model or settings.gemini_model).strip()
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.trend_forecast_timeout_seconds

    def _call(self, user_prompt: str) -> str | None:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = {
            "systemInstruction": {"parts": [{"text": TREND_SYSTEM_PROMPT}]},
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
            "generationConfig": {"temperature": 0.1, "maxOutputTokens": 200},
        }
        with httpx.Client(timeout=self.timeout) as client:
            response = client.post(
                url,
                params={"key": self.api_key},
                headers={"Content-Type": "application/json"},
                json=payload,
            )
        if response.status_code >= 400:
            raise httpx.HTTPStatusError(
                message=f"Gemini request failed with status {response.status_code}",
                request=response.request,
                response=response,
            )
        return _extract_gemini_text(response.json())

    def estimate(
        self,
        account_id: int,
        date_start: date,
        date_end: date,
        history: list[dict[str, Any]],
    ) -> TrendEstimate | None:
        if not self.api_key:
            return None
        user_prompt = (
            f"Account: {account_id}\n"
            f"Forecast range: {date_start.isoformat()} to {date_end.isoformat()}\n"
            "Confirmed settlement history (JSON):\n"
            f"{json.dumps(history, ensure_ascii=True, default=str)}"
        )
        try:
            text = self._call(user_prompt)
        except httpx.HTTPError as exc:
            logger.warning("Trend forecast unavailable for account %s: %s", account_id, exc)
            return None
        if not text:
            return None
        estimate = parse_trend_estimate(text, source=f"gemini:{self.model}")
        if estimate is None:
            logger.warning("Trend forecast for account %s was not parseable.", account_id)
        return estimate

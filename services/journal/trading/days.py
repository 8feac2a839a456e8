"""Trading days: daily outlook (plan) and review (retrospective)."""

import logging
from datetime import date, timedelta
from typing import Any

from db import store
from errors import NotFoundError, ValidationError
from trading.sessions import parse_date, today_str

logger = logging.getLogger(__name__)

GRADES = ("A", "B", "C", "D", "F")


class TradingDays:
    async def _with_details(self, day: dict, include_trades: bool = False) -> dict:
        day = dict(day)
        day["outlook"] = await store.get_outlook(day["id"])
        day["review"] = await store.get_review(day["id"])
        if include_trades:
            day["trades"] = await store.get_trades_opened_on(day["date"])
        return day

    async def list_days(self, date_from: str | None = None, date_to: str | None = None,
                        limit: int = 30, offset: int = 0) -> tuple[list[dict], int]:
        if date_from:
            parse_date(date_from, "from")
        if date_to:
            parse_date(date_to, "to")
        return await store.list_trading_days(date_from, date_to, limit, offset)

    async def latest(self) -> dict | None:
        day = await store.get_latest_trading_day()
        return await self._with_details(day) if day else None

    async def today(self) -> dict:
        """Today's day with outlook, review and trades. Not persisted until something is written."""
        date_str = today_str()
        day = await store.get_trading_day(date_str)
        if day is None:
            return {
                "id": None,
                "date": date_str,
                "has_outlook": 0,
                "has_review": 0,
                "outlook": None,
                "review": None,
                "trades": await store.get_trades_opened_on(date_str),
            }
        return await self._with_details(day, include_trades=True)

    async def get_day(self, date_str: str) -> dict:
        parse_date(date_str)
        day = await store.get_trading_day(date_str)
        if day is None:
            raise NotFoundError(f"No trading day for {date_str}", error="Trading day not found")
        return await self._with_details(day, include_trades=True)

    async def save_outlook(self, date_str: str, data: dict[str, Any]) -> dict:
        parse_date(date_str)
        if not (data.get("bias") or "").strip():
            raise ValidationError("Bias is required for daily outlook", error="Missing required fields")
        outlook = await store.upsert_outlook(date_str, data)
        logger.info(f"[DAYS] Outlook saved for {date_str} (bias={data['bias']})")
        return outlook

    async def save_review(self, date_str: str, data: dict[str, Any]) -> dict:
        parse_date(date_str)
        for key in ("outlook_grade", "execution_grade", "emotional_grade"):
            grade = data.get(key)
            if grade and str(grade).upper() not in GRADES:
                raise ValidationError(f"{key} must be one of {', '.join(GRADES)}", error="Invalid grade")
        closed = await store.find_closed_trades(since=date_str, until=date_str)
        review = {
            **data,
            "trades_won": sum(1 for t in closed if t.get("outcome") == "win"),
            "trades_lost": sum(1 for t in closed if t.get("outcome") == "loss"),
            "total_pnl": sum((t.get("pnl") or 0) for t in closed),
        }
        saved = await store.upsert_review(date_str, review)
        logger.info(f"[DAYS] Review saved for {date_str} ({review['trades_won']}W/{review['trades_lost']}L)")
        return saved

    async def check_review(self, date_str: str) -> dict:
        """Whether the day before ``date_str`` had trades but no review."""
        parse_date(date_str)
        prev = (date.fromisoformat(date_str) - timedelta(days=1)).isoformat()
        prev_day = await store.get_trading_day(prev)
        trade_count = await store.count_trades_opened_on(prev)
        has_review = bool(prev_day and prev_day["has_review"])
        needs_review = trade_count > 0 and not has_review
        if needs_review:
            message = (
                f"You had {trade_count} trade(s) on {prev} but haven't reviewed. "
                "Consider reviewing first."
            )
        else:
            message = "Previous day is reviewed or had no trades."
        return {
            "previous_date": prev,
            "had_trades": trade_count > 0,
            "has_review": has_review,
            "needs_review": needs_review,
            "message": message,
        }

    async def delete_day(self, date_str: str) -> None:
        parse_date(date_str)
        if not await store.delete_trading_day(date_str):
            raise NotFoundError(f"No trading day for {date_str}", error="Trading day not found")
        logger.info(f"[DAYS] Deleted trading day {date_str}")

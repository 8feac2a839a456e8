import asyncio
import logging
from typing import Any

from db import store
from errors import ConflictError, NotFoundError, ValidationError
from lessons.service import LessonService
from trading.numbering import expand_short_ref, is_valid_trade_number, next_trade_number
from trading.sessions import detect_session, parse_date, parse_timestamp, today_str, utc_now

logger = logging.getLogger(__name__)

DIRECTIONS = ("long", "short")
NUMERIC_FIELDS = ("entry_price", "exit_price", "position_size", "collateral", "leverage", "liquidation_price")
EDITABLE_FIELDS = (
    "asset", "direction", "entry_price", "position_size", "collateral", "leverage",
    "liquidation_price", "setup", "location", "trigger", "session", "initial_emotion",
    "planned_in_outlook", "is_scaled_trade", "parent_trade_id",
)
RAPID_UPDATE_WINDOW_MINUTES = 30
RAPID_UPDATE_THRESHOLD = 3


def _to_float(value: Any, field: str) -> float | None:
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field} must be a number") from e


def _text(value: Any, field: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value.strip()


def compute_pnl(trade: dict, exit_price: float) -> dict[str, Any]:
    """P&L fields for closing ``trade`` at ``exit_price``.

    Percentage is leveraged and signed by direction. Absolute P&L uses
    collateral when known, else notional position size.
    """
    pnl = pnl_percentage = roi = None
    entry = trade.get("entry_price")
    if entry:
        direction = 1 if trade.get("direction") == "long" else -1
        leverage = trade.get("leverage") or 1
        pnl_percentage = (exit_price - entry) / entry * 100 * direction * leverage
        if trade.get("collateral"):
            pnl = trade["collateral"] * pnl_percentage / 100
            roi = pnl / trade["collateral"] * 100
        elif trade.get("position_size"):
            pnl = trade["position_size"] * pnl_percentage / 100

    basis = pnl if pnl is not None else pnl_percentage
    if basis is None or basis == 0:
        outcome = "breakeven"
    else:
        outcome = "win" if basis > 0 else "loss"
    return {"pnl": pnl, "pnl_percentage": pnl_percentage, "roi": roi, "outcome": outcome}


class TradeJournal:
    """Open, update and close journal trades; attaches relevant lessons on open and close."""

    def __init__(self, lessons: LessonService):
        self.lessons = lessons
        # Numbering reads the day's highest sequence; held until the insert lands.
        self._numbering_lock = asyncio.Lock()

    async def resolve(self, ref: Any) -> dict:
        """Find a trade by id, full trade number, or today's short form ``T{n}``."""
        ref_str = str(ref).strip()
        trade = None
        if ref_str.isdigit():
            trade = await store.get_trade(int(ref_str))
        if trade is None and is_valid_trade_number(ref_str):
            trade = await store.get_trade_by_number(ref_str)
        if trade is None:
            expanded = expand_short_ref(ref_str, today_str())
            if expanded:
                trade = await store.get_trade_by_number(expanded)
        if trade is None:
            raise NotFoundError(f"Trade {ref_str} not found", error="Trade not found")
        return trade

    async def open_trade(self, data: dict[str, Any]) -> tuple[dict, list[dict]]:
        asset = _text(data.get("asset"), "asset")
        direction = _text(data.get("direction"), "direction").lower()
        if not asset or not direction:
            raise ValidationError("Asset and direction are required", error="Missing required fields")
        if direction not in DIRECTIONS:
            raise ValidationError('Direction must be "long" or "short"', error="Invalid direction")

        opened = parse_timestamp(data.get("opened_at")) if data.get("opened_at") else utc_now()
        date_str = opened.date().isoformat()
        day = await store.get_or_create_trading_day(date_str)

        record = {
            "trading_day_id": day["id"],
            "asset": asset.upper(),
            "direction": direction,
            "setup": data.get("setup") or None,
            "location": data.get("location") or None,
            "trigger": data.get("trigger") or None,
            "session": data.get("session") or detect_session(opened),
            "initial_emotion": data.get("initial_emotion") or None,
            "planned_in_outlook": bool(data.get("planned_in_outlook")),
            "is_scaled_trade": bool(data.get("is_scaled_trade")),
            "parent_trade_id": data.get("parent_trade_id"),
            "opened_at": opened.isoformat(timespec="seconds"),
        }
        for field in NUMERIC_FIELDS:
            if field != "exit_price":
                record[field] = _to_float(data.get(field), field)
        if record["leverage"] is None:
            record["leverage"] = 1.0

        async with self._numbering_lock:
            trade_number = await next_trade_number(date_str)
            trade_id = await store.insert_trade({"trade_number": trade_number, **record})
        trade = await store.get_trade(trade_id)
        relevant = await self.lessons.relevant_for_trade(trade)
        logger.info(f"[TRADES] Opened {trade_number} {asset.upper()} {direction} ({len(relevant)} relevant lessons)")
        return trade, [r.to_dict() for r in relevant]

    async def get_trade(self, ref: Any) -> dict:
        trade = await self.resolve(ref)
        trade["updates"] = await store.get_trade_updates(trade["id"])
        return trade

    async def list_trades(self, filters: dict[str, Any], limit: int = 100, offset: int = 0) -> tuple[list[dict], int]:
        for key in ("from", "to"):
            if filters.get(key):
                parse_date(filters[key], key)
        return await store.list_trades(filters, limit, offset)

    async def open_trades(self) -> list[dict]:
        return await store.get_open_trades()

    async def update_trade(self, ref: Any, fields: dict[str, Any]) -> dict:
        trade = await self.resolve(ref)
        updates = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS}
        if not updates:
            raise ValidationError("No valid fields to update", error="Nothing to update")
        if "direction" in updates:
            updates["direction"] = str(updates["direction"]).lower()
            if updates["direction"] not in DIRECTIONS:
                raise ValidationError('Direction must be "long" or "short"', error="Invalid direction")
        for field in NUMERIC_FIELDS:
            if field in updates:
                updates[field] = _to_float(updates[field], field)
        for flag in ("planned_in_outlook", "is_scaled_trade"):
            if flag in updates:
                updates[flag] = 1 if updates[flag] else 0
        await store.update_trade(trade["id"], updates)
        logger.info(f"[TRADES] Updated {trade['trade_number']}: {', '.join(sorted(updates))}")
        return await store.get_trade(trade["id"])

    async def close_trade(
        self,
        ref: Any,
        exit_price: Any,
        exit_emotion: str | None = None,
        closed_at: str | None = None,
    ) -> tuple[dict, list[dict], str]:
        trade = await self.resolve(ref)
        if trade["status"] == "closed":
            raise ConflictError(f"Trade {trade['trade_number']} is already closed",
                                error="Trade is already closed")
        price = _to_float(exit_price, "exit_price")
        if not price:
            raise ValidationError("Exit price is required", error="Missing required fields")

        closed = parse_timestamp(closed_at) if closed_at else utc_now()
        result = compute_pnl(trade, price)
        ok = await store.close_trade(trade["id"], {
            "exit_price": price,
            **result,
            "closed_at": closed.isoformat(timespec="seconds"),
        })
        if not ok:
            raise ConflictError(f"Trade {trade['trade_number']} is already closed",
                                error="Trade is already closed")
        if exit_emotion:
            await store.insert_trade_update(trade["id"], "Trade closed", exit_emotion, update_type="close")

        closed_trade = await store.get_trade(trade["id"])
        relevant = await self.lessons.relevant_for_trade(closed_trade)
        message = self._close_message(closed_trade)
        logger.info(f"[TRADES] {message}")
        return closed_trade, [r.to_dict() for r in relevant], message

    async def add_update(self, ref: Any, content: str | None, emotion: str | None,
                         update_type: str = "note") -> tuple[dict, str | None]:
        trade = await self.resolve(ref)
        if not content and not emotion:
            raise ValidationError("Content or emotion is required", error="Missing required fields")
        update_id = await store.insert_trade_update(trade["id"], content or None, emotion or None,
                                                    update_type=update_type or "note")
        recent = await store.count_recent_trade_updates(trade["id"], RAPID_UPDATE_WINDOW_MINUTES)
        warning = None
        if recent >= RAPID_UPDATE_THRESHOLD:
            warning = (
                f"You've updated this trade {recent} times in the last "
                f"{RAPID_UPDATE_WINDOW_MINUTES} minutes. Take a breath."
            )
            logger.info(f"[TRADES] Rapid updates on {trade['trade_number']} ({recent})")
        updates = await store.get_trade_updates(trade["id"])
        update = next(u for u in updates if u["id"] == update_id)
        return update, warning

    async def delete_trade(self, ref: Any) -> dict:
        trade = await self.resolve(ref)
        await store.delete_trade(trade["id"])
        logger.info(f"[TRADES] Deleted {trade['trade_number']}")
        return trade

    @staticmethod
    def _close_message(trade: dict) -> str:
        message = f"Trade {trade['trade_number']} closed. {trade['outcome'].upper()}"
        if trade.get("pnl") is not None:
            message += f" - PnL: ${trade['pnl']:.2f}"
        if trade.get("pnl_percentage") is not None:
            message += f" ({trade['pnl_percentage']:.2f}%)"
        if trade.get("roi") is not None:
            message += f" | ROI: {trade['roi']:.2f}%"
        return message

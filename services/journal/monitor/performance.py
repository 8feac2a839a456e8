import logging
from collections import defaultdict

from db import store
from errors import ValidationError
from trading.sessions import parse_date

logger = logging.getLogger(__name__)

GROUPABLE_FIELDS = ("setup", "location", "trigger", "direction", "asset", "session")
RECENT_SETUP_TRADES = 5


def win_rate(trades: list[dict]) -> float:
    """Percentage (0-100) of ``trades`` with outcome win; 0 when empty."""
    if not trades:
        return 0.0
    wins = sum(1 for t in trades if t.get("outcome") == "win")
    return wins / len(trades) * 100


def profit_ratio(trades: list[dict]) -> float | None:
    """Average win % over average loss %. None without both sides."""
    wins = [abs(t["pnl_percentage"]) for t in trades if t.get("outcome") == "win" and t.get("pnl_percentage")]
    losses = [abs(t["pnl_percentage"]) for t in trades if t.get("outcome") == "loss" and t.get("pnl_percentage")]
    if not wins or not losses:
        return None
    avg_loss = sum(losses) / len(losses)
    if avg_loss == 0:
        return None
    return (sum(wins) / len(wins)) / avg_loss


def expectancy(rate: float | None, ratio: float | None) -> float | None:
    """R-multiple expectancy: wr * pr - (1 - wr), with wr as a fraction."""
    if rate is None or ratio is None:
        return None
    wr = rate / 100
    return wr * ratio - (1 - wr)


def _pnl(trade: dict) -> float:
    return trade.get("pnl") or 0


def _summary(trades: list[dict]) -> dict:
    rate = win_rate(trades)
    ratio = profit_ratio(trades)
    return {
        "total_trades": len(trades),
        "wins": sum(1 for t in trades if t.get("outcome") == "win"),
        "losses": sum(1 for t in trades if t.get("outcome") == "loss"),
        "win_rate": rate,
        "profit_ratio": ratio,
        "expectancy": expectancy(rate, ratio),
        "total_pnl": sum((t.get("pnl") or 0) for t in trades),
    }


def _brief(trade: dict | None) -> dict | None:
    if trade is None:
        return None
    return {
        "trade_number": trade["trade_number"],
        "pnl": trade.get("pnl"),
        "pnl_percentage": trade.get("pnl_percentage"),
        "setup": trade.get("setup"),
    }


class PerformanceTracker:
    """Aggregate statistics over closed journal trades."""

    @staticmethod
    async def _closed(date_from: str | None, date_to: str | None) -> list[dict]:
        if date_from:
            parse_date(date_from, "from")
        if date_to:
            parse_date(date_to, "to")
        return await store.find_closed_trades(since=date_from, until=date_to)

    async def overview(self, date_from: str | None = None, date_to: str | None = None) -> dict:
        trades = await self._closed(date_from, date_to)
        stats = _summary(trades)
        stats["breakeven"] = sum(1 for t in trades if t.get("outcome") == "breakeven")
        stats["open_trades"] = await store.count_open_trades()
        stats["best_trade"] = _brief(max(trades, key=_pnl)) if trades else None
        stats["worst_trade"] = _brief(min(trades, key=_pnl)) if trades else None
        return stats

    async def by_field(self, field: str, date_from: str | None = None,
                       date_to: str | None = None) -> list[dict]:
        if field not in GROUPABLE_FIELDS:
            raise ValidationError(
                f"Invalid groupBy field: {field}. Use one of: {', '.join(GROUPABLE_FIELDS)}",
                error="Invalid field",
            )
        groups: dict[str, list[dict]] = defaultdict(list)
        for trade in await self._closed(date_from, date_to):
            if trade.get(field) is not None:
                groups[trade[field]].append(trade)
        results = [{field: value, **_summary(trades)} for value, trades in groups.items()]
        return sorted(results, key=lambda r: r["total_trades"], reverse=True)

    async def setup_detail(self, setup: str, date_from: str | None = None,
                           date_to: str | None = None) -> dict:
        trades = [t for t in await self._closed(date_from, date_to) if t.get("setup") == setup]
        if not trades:
            return {"setup": setup, "total_trades": 0, "message": "No closed trades found for this setup"}

        stats = {"setup": setup, **_summary(trades)}
        stats["avg_position_size"] = sum((t.get("position_size") or 0) for t in trades) / len(trades)

        by_location: dict[str, list[dict]] = defaultdict(list)
        for trade in trades:
            if trade.get("location"):
                by_location[trade["location"]].append(trade)
        stats["location_breakdown"] = sorted(
            (
                {
                    "location": location,
                    "total_trades": len(group),
                    "wins": sum(1 for t in group if t.get("outcome") == "win"),
                    "win_rate": win_rate(group),
                    "total_pnl": sum((t.get("pnl") or 0) for t in group),
                }
                for location, group in by_location.items()
            ),
            key=lambda r: r["total_trades"],
            reverse=True,
        )

        recent = sorted(trades, key=lambda t: t.get("closed_at") or "", reverse=True)[:RECENT_SETUP_TRADES]
        stats["recent_trades"] = [
            {
                "trade_number": t["trade_number"],
                "outcome": t.get("outcome"),
                "pnl": t.get("pnl"),
                "pnl_percentage": t.get("pnl_percentage"),
                "location": t.get("location"),
                "closed_at": t.get("closed_at"),
            }
            for t in recent
        ]
        return stats

    async def emotions(self, date_from: str | None = None, date_to: str | None = None) -> list[dict]:
        groups: dict[str, list[dict]] = defaultdict(list)
        for trade in await self._closed(date_from, date_to):
            if trade.get("initial_emotion"):
                groups[trade["initial_emotion"]].append(trade)
        results = [
            {
                "emotion": emotion,
                "total_trades": len(trades),
                "wins": sum(1 for t in trades if t.get("outcome") == "win"),
                "win_rate": win_rate(trades),
                "total_pnl": sum((t.get("pnl") or 0) for t in trades),
            }
            for emotion, trades in groups.items()
        ]
        return sorted(results, key=lambda r: r["total_trades"], reverse=True)

    def format_stats(self, stats: dict) -> str:
        """Format an overview for chat display."""
        if stats["total_trades"] == 0:
            return (
                f"Open trades: {stats['open_trades']}\n"
                f"No closed trades yet."
            )

        lines = [
            f"Trades: {stats['total_trades']} closed / {stats['open_trades']} open",
            f"Win rate: {stats['win_rate']:.1f}% ({stats['wins']}W / {stats['losses']}L / {stats['breakeven']}BE)",
            f"Total P&L: ${stats['total_pnl']:+.2f}",
        ]
        if stats["profit_ratio"] is not None:
            lines.append(f"Profit ratio: {stats['profit_ratio']:.2f}:1")
        if stats["expectancy"] is not None:
            lines.append(f"Expectancy: {stats['expectancy']:+.2f}R")
        if stats["best_trade"]:
            lines.append(
                f"Best: {stats['best_trade']['trade_number']} ${stats['best_trade']['pnl'] or 0:+.2f} | "
                f"Worst: {stats['worst_trade']['trade_number']} ${stats['worst_trade']['pnl'] or 0:+.2f}"
            )
        return "\n".join(lines)

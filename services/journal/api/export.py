import csv
import io
import logging

from aiohttp import web

from api.common import json_response, query_filters
from db import store
from trading.sessions import parse_date, today_str, utc_now

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "trade_number", "asset", "direction", "entry_price", "exit_price", "position_size",
    "leverage", "setup", "location", "trigger", "session", "pnl", "pnl_percentage",
    "outcome", "initial_emotion", "planned_in_outlook", "status", "opened_at", "closed_at",
]
EXPORT_FILTERS = ("from", "to", "status", "setup", "location")


def _date_range(request: web.Request) -> dict[str, str]:
    filters = query_filters(request, EXPORT_FILTERS)
    for key in ("from", "to"):
        if key in filters:
            parse_date(filters[key], key)
    return filters


class ExportHandlers:
    async def export_csv(self, request: web.Request) -> web.Response:
        """GET /api/export/csv?from=&to=&status="""
        filters = _date_range(request)
        trades = await store.get_trades_for_export(filters)

        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(CSV_COLUMNS)
        for trade in trades:
            writer.writerow(["" if trade.get(col) is None else trade[col] for col in CSV_COLUMNS])

        logger.info(f"[EXPORT] Exported {len(trades)} trades to CSV")
        return web.Response(
            text=output.getvalue(),
            content_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="trades_{today_str()}.csv"'},
        )

    async def export_json(self, request: web.Request) -> web.Response:
        """GET /api/export/json: trades with updates, trading days, lessons and config."""
        filters = _date_range(request)
        trades = await store.get_trades_for_export(filters)
        for trade in trades:
            trade["updates"] = await store.get_trade_updates(trade["id"])
        days = await store.get_trading_days_for_export(filters.get("from"), filters.get("to"))
        lessons = await store.get_lessons_for_export()

        data = {
            "exported_at": utc_now().isoformat(timespec="seconds"),
            "filters": {"from": filters.get("from"), "to": filters.get("to")},
            "summary": {
                "total_trades": len(trades),
                "total_trading_days": len(days),
                "total_lessons": len(lessons),
            },
            "trades": trades,
            "trading_days": days,
            "lessons": lessons,
            "config": await store.get_all_config(),
        }
        logger.info(f"[EXPORT] Exported {len(trades)} trades and {len(days)} trading days to JSON")
        return json_response(
            data,
            headers={"Content-Disposition": f'attachment; filename="trading_journal_{today_str()}.json"'},
        )

    async def export_trades(self, request: web.Request) -> web.Response:
        """GET /api/export/trades: flat JSON array with the same filters as the CSV."""
        trades = await store.get_trades_for_export(_date_range(request))
        return json_response({"success": True, "data": trades, "meta": {"count": len(trades)}})

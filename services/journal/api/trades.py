from aiohttp import web

from api.common import ok, query_filters, query_int, read_json
from trading.trades import TradeJournal

LIST_FILTERS = ("status", "setup", "location", "session", "outcome", "direction", "asset", "from", "to")


class TradeHandlers:
    def __init__(self, trades: TradeJournal):
        self.trades = trades

    async def list_trades(self, request: web.Request) -> web.Response:
        """GET /api/trades"""
        filters = query_filters(request, LIST_FILTERS)
        if "direction" in filters:
            filters["direction"] = filters["direction"].lower()
        limit = query_int(request, "limit", 100, minimum=1, maximum=1000)
        offset = query_int(request, "offset", 0)
        items, total = await self.trades.list_trades(filters, limit, offset)
        return ok(items, meta={"total": total, "limit": limit, "offset": offset})

    async def open_trades(self, request: web.Request) -> web.Response:
        """GET /api/trades/open"""
        items = await self.trades.open_trades()
        return ok(items, meta={"count": len(items)})

    async def create_trade(self, request: web.Request) -> web.Response:
        """POST /api/trades"""
        trade, relevant = await self.trades.open_trade(await read_json(request))
        return ok(
            trade,
            status=201,
            message=f"Trade {trade['trade_number']} created successfully",
            relevant_lessons=relevant,
        )

    async def get_trade(self, request: web.Request) -> web.Response:
        """GET /api/trades/{id} (id, trade number or T{n})"""
        return ok(await self.trades.get_trade(request.match_info["id"]))

    async def update_trade(self, request: web.Request) -> web.Response:
        """PUT /api/trades/{id}"""
        trade = await self.trades.update_trade(request.match_info["id"], await read_json(request))
        return ok(trade, message=f"Trade {trade['trade_number']} updated successfully")

    async def close_trade(self, request: web.Request) -> web.Response:
        """POST /api/trades/{id}/close"""
        body = await read_json(request)
        trade, relevant, message = await self.trades.close_trade(
            request.match_info["id"],
            body.get("exit_price"),
            exit_emotion=body.get("exit_emotion"),
            closed_at=body.get("closed_at"),
        )
        return ok(trade, message=message, relevant_lessons=relevant)

    async def add_update(self, request: web.Request) -> web.Response:
        """POST /api/trades/{id}/updates"""
        body = await read_json(request)
        update, warning = await self.trades.add_update(
            request.match_info["id"],
            body.get("content"),
            body.get("emotion"),
            update_type=body.get("update_type") or "note",
        )
        extra = {"warning": warning} if warning else {}
        return ok(update, status=201, message="Update added", **extra)

    async def delete_trade(self, request: web.Request) -> web.Response:
        """DELETE /api/trades/{id}"""
        trade = await self.trades.delete_trade(request.match_info["id"])
        return ok({"id": trade["id"]}, message=f"Trade {trade['trade_number']} deleted successfully")

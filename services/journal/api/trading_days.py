from aiohttp import web

from api.common import ok, query_int, read_json
from trading.days import TradingDays


class TradingDayHandlers:
    def __init__(self, days: TradingDays):
        self.days = days

    async def list_days(self, request: web.Request) -> web.Response:
        """GET /api/trading-days?from=&to=&limit=&offset="""
        limit = query_int(request, "limit", 30, minimum=1, maximum=366)
        offset = query_int(request, "offset", 0)
        items, total = await self.days.list_days(
            request.query.get("from") or None,
            request.query.get("to") or None,
            limit,
            offset,
        )
        return ok(items, meta={"total": total, "limit": limit, "offset": offset})

    async def latest(self, request: web.Request) -> web.Response:
        """GET /api/trading-days/latest"""
        return ok(await self.days.latest())

    async def today(self, request: web.Request) -> web.Response:
        """GET /api/trading-days/today"""
        return ok(await self.days.today())

    async def get_day(self, request: web.Request) -> web.Response:
        """GET /api/trading-days/{date}"""
        return ok(await self.days.get_day(request.match_info["date"]))

    async def save_outlook(self, request: web.Request) -> web.Response:
        """POST /api/trading-days/{date}/outlook"""
        date_str = request.match_info["date"]
        outlook = await self.days.save_outlook(date_str, await read_json(request))
        return ok(outlook, message=f"Outlook saved for {date_str}")

    async def save_review(self, request: web.Request) -> web.Response:
        """POST /api/trading-days/{date}/review"""
        date_str = request.match_info["date"]
        review = await self.days.save_review(date_str, await read_json(request))
        return ok(review, message=f"Review saved for {date_str}")

    async def check_review(self, request: web.Request) -> web.Response:
        """GET /api/trading-days/{date}/check-review"""
        return ok(await self.days.check_review(request.match_info["date"]))

    async def delete_day(self, request: web.Request) -> web.Response:
        """DELETE /api/trading-days/{date}"""
        date_str = request.match_info["date"]
        await self.days.delete_day(date_str)
        return ok(None, message=f"Trading day {date_str} deleted successfully")

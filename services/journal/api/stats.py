from aiohttp import web

from api.common import ok
from monitor.performance import PerformanceTracker


class StatsHandlers:
    def __init__(self, performance: PerformanceTracker):
        self.performance = performance

    @staticmethod
    def _range(request: web.Request) -> tuple[str | None, str | None]:
        return request.query.get("from") or None, request.query.get("to") or None

    async def overview(self, request: web.Request) -> web.Response:
        """GET /api/stats/overview"""
        return ok(await self.performance.overview(*self._range(request)))

    async def by_field(self, request: web.Request) -> web.Response:
        """GET /api/stats/by-{field}"""
        return ok(await self.performance.by_field(request.match_info["field"], *self._range(request)))

    async def setup_detail(self, request: web.Request) -> web.Response:
        """GET /api/stats/setup/{name}"""
        return ok(await self.performance.setup_detail(request.match_info["name"], *self._range(request)))

    async def emotions(self, request: web.Request) -> web.Response:
        """GET /api/stats/emotions"""
        return ok(await self.performance.emotions(*self._range(request)))

"""aiohttp application: service wiring and route table."""

import logging

from aiohttp import web

from api.chat import ChatHandlers
from api.common import error_middleware
from api.export import ExportHandlers
from api.health import health
from api.journal_config import ConfigHandlers
from api.lessons import LessonHandlers
from api.stats import StatsHandlers
from api.trades import TradeHandlers
from api.trading_days import TradingDayHandlers
from config import AppConfig
from conversation.router import ConversationRouter
from lessons.service import LessonService
from monitor.performance import PerformanceTracker
from trading.days import TradingDays
from trading.trades import TradeJournal

logger = logging.getLogger(__name__)


class JournalServer:
    """REST API for the trading journal."""

    def __init__(self, config: AppConfig):
        self.config = config
        self.lessons = LessonService()
        self.trades = TradeJournal(self.lessons)
        self.days = TradingDays()
        self.performance = PerformanceTracker()
        self.router = ConversationRouter(
            self.lessons, self.trades, self.days, self.performance,
            config.anthropic, config.chat,
        )

    def create_app(self) -> web.Application:
        app = web.Application(middlewares=[error_middleware])
        r = app.router

        r.add_get("/api/health", health)

        lessons = LessonHandlers(self.lessons)
        r.add_get("/api/lesson-categories", lessons.categories)
        r.add_get("/api/lessons", lessons.list_lessons)
        r.add_post("/api/lessons", lessons.create_lesson)
        r.add_get("/api/lessons/relevant", lessons.relevant)
        r.add_get("/api/lessons/{id}", lessons.get_lesson)
        r.add_put("/api/lessons/{id}", lessons.update_lesson)
        r.add_delete("/api/lessons/{id}", lessons.archive_lesson)
        r.add_post("/api/lessons/{id}/validate", lessons.validate_lesson)

        trades = TradeHandlers(self.trades)
        r.add_get("/api/trades", trades.list_trades)
        r.add_post("/api/trades", trades.create_trade)
        r.add_get("/api/trades/open", trades.open_trades)
        r.add_get("/api/trades/{id}", trades.get_trade)
        r.add_put("/api/trades/{id}", trades.update_trade)
        r.add_delete("/api/trades/{id}", trades.delete_trade)
        r.add_post("/api/trades/{id}/close", trades.close_trade)
        r.add_post("/api/trades/{id}/updates", trades.add_update)

        days = TradingDayHandlers(self.days)
        r.add_get("/api/trading-days", days.list_days)
        r.add_get("/api/trading-days/latest", days.latest)
        r.add_get("/api/trading-days/today", days.today)
        r.add_get("/api/trading-days/{date}", days.get_day)
        r.add_delete("/api/trading-days/{date}", days.delete_day)
        r.add_post("/api/trading-days/{date}/outlook", days.save_outlook)
        r.add_post("/api/trading-days/{date}/review", days.save_review)
        r.add_get("/api/trading-days/{date}/check-review", days.check_review)

        stats = StatsHandlers(self.performance)
        r.add_get("/api/stats/overview", stats.overview)
        r.add_get("/api/stats/emotions", stats.emotions)
        r.add_get("/api/stats/setup/{name}", stats.setup_detail)
        r.add_get("/api/stats/by-{field}", stats.by_field)

        settings = ConfigHandlers()
        r.add_get("/api/config", settings.get_all)
        r.add_post("/api/config", settings.save)
        r.add_post("/api/config/initialize", settings.initialize)
        r.add_get("/api/config/{key}", settings.get_key)
        r.add_delete("/api/config/{key}", settings.delete_key)

        export = ExportHandlers()
        r.add_get("/api/export/csv", export.export_csv)
        r.add_get("/api/export/json", export.export_json)
        r.add_get("/api/export/trades", export.export_trades)

        chat = ChatHandlers(self.router)
        r.add_post("/api/chat/parse", chat.parse)
        r.add_post("/api/chat/message", chat.message)
        r.add_get("/api/chat/history", chat.history)

        return app

    async def start(self) -> web.AppRunner:
        """Start the API server and return the runner for cleanup."""
        app = self.create_app()
        runner = web.AppRunner(app)
        await runner.setup()

        site = web.TCPSite(runner, self.config.server.host, self.config.server.port)
        await site.start()

        logger.info(f"Trading journal API running on {self.config.server.host}:{self.config.server.port}")
        return runner

"""Trading Journal: main entry point.

Serves the journal REST API (trades, trading days, lessons, stats, export,
chat) until SIGINT/SIGTERM, then closes the database cleanly.
"""

import asyncio
import logging
import os
import signal

from config import AppConfig, ServerConfig
from db.store import init_db, close_db, init_journal_config, get_active_lessons_with_conditions
from api.server import JournalServer

_log_file = ServerConfig().log_file
os.makedirs(os.path.dirname(_log_file) or ".", exist_ok=True)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler(_log_file, mode="a"),
    ],
)
# Silence noisy libraries that log every request at INFO
logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logger = logging.getLogger("main")


class JournalApp:
    def __init__(self):
        self.config = AppConfig.load()
        self.server = JournalServer(self.config)
        self.runner = None
        self._stop_requested = asyncio.Event()

    async def start(self):
        """Initialize the database and serve the API until a stop is requested."""
        logger.info("=" * 60)
        logger.info("Trading journal starting...")
        logger.info(f"  API: {self.config.server.host}:{self.config.server.port}")
        logger.info(f"  Chat: {'ON' if self.config.chat.conversation_enabled else 'OFF'}")
        logger.info(f"  Claude: {'configured' if self.config.anthropic.api_key else 'not configured'}")
        logger.info("=" * 60)

        await init_db()
        if await init_journal_config():
            logger.info("First run: journal config defaults written")

        tracked = await get_active_lessons_with_conditions()
        logger.info(f"{len(tracked)} active lessons with tracked conditions")

        self.runner = await self.server.start()
        await self._stop_requested.wait()

    def request_stop(self):
        self._stop_requested.set()

    async def stop(self):
        """Graceful shutdown."""
        logger.info("Stopping journal...")
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
        await close_db()
        logger.info("Journal stopped cleanly")


async def main():
    app = JournalApp()

    loop = asyncio.get_event_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.request_stop)

    try:
        await app.start()
    except Exception as e:
        logger.critical(f"Journal crashed: {e}", exc_info=True)
        raise
    finally:
        await app.stop()


if __name__ == "__main__":
    asyncio.run(main())

import logging

from aiohttp import web

from api.common import json_response
from db import store
from errors import StoreError
from trading.sessions import utc_now

logger = logging.getLogger(__name__)


async def health(request: web.Request) -> web.Response:
    """GET /api/health"""
    timestamp = utc_now().isoformat(timespec="seconds")
    try:
        tables = await store.count_tables()
    except StoreError as e:
        logger.error(f"[HEALTH] Database check failed: {e.message}")
        return json_response({"status": "unhealthy", "timestamp": timestamp, "error": e.message}, 500)
    return json_response({
        "status": "healthy",
        "timestamp": timestamp,
        "database": {"connected": True, "tables": tables},
    })

import logging

from aiohttp import web

from api.common import ok, read_json
from db import store
from errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class ConfigHandlers:
    """Key -> JSON value settings (setups, locations, triggers, vocabulary...)."""

    async def get_all(self, request: web.Request) -> web.Response:
        """GET /api/config"""
        return ok(await store.get_all_config())

    async def get_key(self, request: web.Request) -> web.Response:
        """GET /api/config/{key}"""
        key = request.match_info["key"]
        if not await store.config_key_exists(key):
            raise NotFoundError(f"Configuration key '{key}' not found", error="Configuration key not found")
        return ok({key: await store.get_config_value(key)})

    async def save(self, request: web.Request) -> web.Response:
        """POST /api/config with ``{key: value, ...}``"""
        body = await read_json(request)
        if not body:
            raise ValidationError("No configuration data provided", error="No configuration data provided")
        saved = await store.set_config_values(body)
        logger.info(f"[CONFIG] Saved keys: {', '.join(sorted(saved))}")
        return ok(saved)

    async def delete_key(self, request: web.Request) -> web.Response:
        """DELETE /api/config/{key}"""
        key = request.match_info["key"]
        if not await store.delete_config(key):
            raise NotFoundError(f"Configuration key '{key}' not found", error="Configuration key not found")
        return ok(None, message=f"Configuration key '{key}' deleted successfully")

    async def initialize(self, request: web.Request) -> web.Response:
        """POST /api/config/initialize (idempotent)"""
        initialized = await store.init_journal_config()
        message = "Default configuration initialized" if initialized else "Configuration already exists"
        return ok(None, message=message, initialized=initialized)

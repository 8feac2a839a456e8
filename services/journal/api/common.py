"""Response envelope, request parsing and error middleware shared by all handlers."""

import json
import logging
from typing import Any

from aiohttp import web

from errors import JournalError, StoreError, ValidationError

logger = logging.getLogger(__name__)


def json_response(data: Any, status: int = 200, headers: dict | None = None) -> web.Response:
    return web.Response(
        text=json.dumps(data, default=str),
        status=status,
        content_type="application/json",
        headers=headers,
    )


def ok(data: Any = None, status: int = 200, message: str | None = None, **extra) -> web.Response:
    """``{success: true, data, message?, ...extra}``."""
    body: dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    body.update(extra)
    return json_response(body, status)


def error_response(message: str, status: int = 400, error: str | None = None) -> web.Response:
    return json_response({"success": False, "error": error or message, "message": message}, status)


async def read_json(request: web.Request) -> dict[str, Any]:
    """Request body as a JSON object. Empty body -> ``{}``."""
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        raise ValidationError(f"Malformed JSON body: {e.msg}", error="Invalid JSON") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object", error="Invalid JSON")
    return body


def query_int(request: web.Request, name: str, default: int, minimum: int = 0, maximum: int | None = None) -> int:
    raw = request.query.get(name)
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValidationError(f"{name} must be an integer") from e
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f">= {minimum}" if maximum is None else f"between {minimum} and {maximum}"
        raise ValidationError(f"{name} must be {bounds}")
    return value


def path_int(request: web.Request, name: str = "id") -> int:
    raw = request.match_info[name]
    try:
        return int(raw)
    except ValueError as e:
        raise ValidationError(f"Invalid {name}: {raw}") from e


def query_filters(request: web.Request, keys: tuple[str, ...]) -> dict[str, str]:
    return {k: request.query[k] for k in keys if request.query.get(k)}


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Map journal errors to their status and the ``{success: false}`` envelope."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except StoreError as e:
        logger.error(f"[API] {request.method} {request.path} storage failure: {e.message}")
        return json_response(e.to_dict(), e.http_status)
    except JournalError as e:
        logger.info(f"[API] {request.method} {request.path} -> {e.http_status}: {e.message}")
        return json_response(e.to_dict(), e.http_status)
    except Exception as e:
        logger.exception(f"[API] {request.method} {request.path} failed")
        return error_response(str(e), 500, error="Internal error")

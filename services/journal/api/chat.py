from aiohttp import web

from api.common import ok, query_int, read_json
from conversation.router import ConversationRouter
from errors import ValidationError


def _has_image(body: dict) -> bool:
    return bool(body.get("has_image") or body.get("hasImage"))


class ChatHandlers:
    def __init__(self, router: ConversationRouter):
        self.router = router

    async def parse(self, request: web.Request) -> web.Response:
        """POST /api/chat/parse: intent only, nothing is executed."""
        body = await read_json(request)
        return ok(await self.router.parser.parse(body.get("message"), _has_image(body)))

    async def message(self, request: web.Request) -> web.Response:
        """POST /api/chat/message: parse, execute and reply."""
        body = await read_json(request)
        if not (body.get("message") or "").strip() and not _has_image(body):
            raise ValidationError("Message or image required", error="Missing message")
        result = await self.router.handle_message(
            body.get("message") or "",
            source=body.get("source") or "dashboard",
            has_image=_has_image(body),
        )
        return ok(result)

    async def history(self, request: web.Request) -> web.Response:
        """GET /api/chat/history?source=&limit="""
        limit = query_int(request, "limit", self.router.chat.conversation_max_history, minimum=1, maximum=200)
        items = await self.router.history(request.query.get("source") or "dashboard", limit)
        return ok(items, meta={"count": len(items)})

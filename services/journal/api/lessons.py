from aiohttp import web

from api.common import ok, path_int, query_int, read_json
from lessons.models import ATTRIBUTE_WEIGHTS, LessonContext
from lessons.service import LessonService, creation_message


class LessonHandlers:
    def __init__(self, lessons: LessonService):
        self.lessons = lessons

    async def list_lessons(self, request: web.Request) -> web.Response:
        """GET /api/lessons"""
        limit = query_int(request, "limit", 50, minimum=1, maximum=500)
        offset = query_int(request, "offset", 0)
        category_id = query_int(request, "category_id", 0) or None
        items, total = await self.lessons.list_lessons(
            category_id=category_id,
            status=request.query.get("status") or None,
            search=request.query.get("search") or None,
            limit=limit,
            offset=offset,
        )
        return ok([i.to_dict() for i in items], meta={"total": total, "limit": limit, "offset": offset})

    async def relevant(self, request: web.Request) -> web.Response:
        """GET /api/lessons/relevant?setup=&session=&trigger=&emotion=&location="""
        query = {attr: request.query.get(attr) for attr in ATTRIBUTE_WEIGHTS}
        matches = await self.lessons.relevant_for_context(LessonContext.from_query(query))
        return ok([m.to_dict() for m in matches], context=query)

    async def create_lesson(self, request: web.Request) -> web.Response:
        """POST /api/lessons"""
        body = await read_json(request)
        lesson = await self.lessons.create_lesson(
            title=body.get("title"),
            content=body.get("content"),
            category_id=body.get("category_id"),
            conditions=body.get("conditions"),
            learned_at=body.get("learned_at"),
            status=body.get("status"),
        )
        return ok(lesson.to_dict(), status=201, message=creation_message(lesson))

    async def get_lesson(self, request: web.Request) -> web.Response:
        """GET /api/lessons/{id}"""
        lesson = await self.lessons.get_lesson(path_int(request), with_current_stats=True)
        return ok(lesson.to_dict())

    async def update_lesson(self, request: web.Request) -> web.Response:
        """PUT /api/lessons/{id}"""
        lesson = await self.lessons.update_lesson(path_int(request), await read_json(request))
        return ok(lesson.to_dict(), message="Lesson updated successfully")

    async def archive_lesson(self, request: web.Request) -> web.Response:
        """DELETE /api/lessons/{id} (soft delete)"""
        lesson = await self.lessons.archive_lesson(path_int(request))
        return ok(lesson.to_dict(), message="Lesson archived successfully")

    async def validate_lesson(self, request: web.Request) -> web.Response:
        """POST /api/lessons/{id}/validate"""
        result = await self.lessons.validate(path_int(request))
        return ok(result, message=result["note"])

    async def categories(self, request: web.Request) -> web.Response:
        """GET /api/lesson-categories"""
        return ok(await self.lessons.get_categories())

import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from typing import Any

from db import store
from errors import NotFoundError, ValidationError
from lessons.models import (
    Conditions, Lesson, LessonContext, LessonStatus, MANUAL_STATUSES,
    RelevantLesson, StatisticsSnapshot,
)
from lessons.scorer import RELEVANT_QUERY_CAP, TRADE_SUGGESTION_CAP, score_lessons
from lessons.validator import NO_BASELINE_NOTE, decide
from trading.sessions import parse_date, today_str

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "content", "category_id", "conditions", "status", "validation_note")


def _text(value: Any, field: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field.capitalize()} must be a string")
    return value.strip()


def creation_message(lesson: Lesson) -> str:
    return f'Lesson "{lesson.title}" created. Tracking performance from {lesson.learned_at}.'


class LessonService:
    """Lesson lifecycle: creation with a baseline, relevance lookup, validation."""

    def __init__(self):
        # One lock per lesson id while a validation holds or waits on it.
        self._validation_locks: dict[int, asyncio.Lock] = {}
        self._lock_users: Counter[int] = Counter()

    # ── Statistics ─────────────────────────────────────────────────────

    async def compute_stats(self, conditions: Conditions, since: str | None = None) -> StatisticsSnapshot:
        """Snapshot over closed trades matching every condition, optionally closed on/after ``since``."""
        trades = await store.find_closed_trades(conditions.to_trade_filter(), since=since)
        return StatisticsSnapshot.from_trades(trades)

    # ── CRUD ───────────────────────────────────────────────────────────

    async def create_lesson(
        self,
        title: str | None,
        content: str | None,
        category_id: int | None = None,
        conditions: dict | Conditions | None = None,
        learned_at: str | None = None,
        status: str | None = None,
    ) -> Lesson:
        title = _text(title, "title")
        content = _text(content, "content")
        if not title or not content:
            raise ValidationError("Title and content are required", error="Missing required fields")

        learned_at = parse_date(learned_at, "learned_at") if learned_at else today_str()
        initial = self._initial_status(status)
        category_id = await self._check_category(category_id)
        parsed = Conditions.from_dict(conditions)

        stats_before = None
        if parsed is not None:
            stats_before = await self.compute_stats(parsed)

        lesson_id = await store.insert_lesson({
            "title": title,
            "content": content,
            "category_id": category_id,
            "conditions": parsed.to_dict() if parsed is not None else None,
            "learned_at": learned_at,
            "stats_before": stats_before.to_dict() if stats_before else None,
            "trade_count_before": stats_before.total_trades if stats_before else None,
            "status": initial.value,
        })
        logger.info(
            f"[LESSONS] Created lesson {lesson_id} '{title}' "
            f"(baseline trades={stats_before.total_trades if stats_before else 'n/a'})"
        )
        return await self.get_lesson(lesson_id)

    async def get_lesson(self, lesson_id: int, with_current_stats: bool = False) -> Lesson:
        row = await store.get_lesson(lesson_id)
        if row is None:
            raise NotFoundError(f"Lesson {lesson_id} not found", error="Lesson not found")
        lesson = Lesson.from_row(row)
        if with_current_stats and lesson.conditions is not None:
            current = await self.compute_stats(lesson.conditions, since=lesson.learned_at)
            lesson.extra["current_stats"] = current.to_dict()
        return lesson

    async def list_lessons(
        self,
        category_id: int | None = None,
        status: str | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Lesson], int]:
        if status:
            self._coerce_status(status)
        rows, total = await store.list_lessons(category_id, status, search, limit, offset)
        return [Lesson.from_row(r) for r in rows], total

    async def update_lesson(self, lesson_id: int, fields: dict[str, Any]) -> Lesson:
        lesson = await self.get_lesson(lesson_id)
        updates = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS}
        if not updates:
            raise ValidationError("No valid fields to update", error="Nothing to update")

        for key in ("title", "content"):
            if key in updates:
                updates[key] = _text(updates[key], key)
                if not updates[key]:
                    raise ValidationError(f"{key.capitalize()} cannot be empty")

        if "status" in updates:
            new_status = self._coerce_status(updates["status"])
            if new_status not in MANUAL_STATUSES:
                raise ValidationError(
                    f"Status '{new_status.value}' is set by validation only",
                    error="Invalid status",
                )
            if lesson.status == LessonStatus.ARCHIVED and new_status != LessonStatus.ARCHIVED:
                raise ValidationError("Archived lessons cannot be reopened", error="Invalid status")
            updates["status"] = new_status.value

        if "category_id" in updates:
            updates["category_id"] = await self._check_category(updates["category_id"])

        if "conditions" in updates:
            parsed = Conditions.from_dict(updates["conditions"])
            updates["conditions"] = parsed.to_dict() if parsed is not None else None
            # The baseline is captured the first time conditions exist and never again.
            if parsed is not None and lesson.stats_before is None:
                baseline = await self.compute_stats(parsed)
                updates["stats_before"] = baseline.to_dict()
                updates["trade_count_before"] = baseline.total_trades

        await store.update_lesson(lesson_id, updates)
        logger.info(f"[LESSONS] Updated lesson {lesson_id}: {', '.join(sorted(updates))}")
        return await self.get_lesson(lesson_id)

    async def archive_lesson(self, lesson_id: int) -> Lesson:
        await self.get_lesson(lesson_id)
        await store.update_lesson(lesson_id, {"status": LessonStatus.ARCHIVED.value})
        logger.info(f"[LESSONS] Archived lesson {lesson_id}")
        return await self.get_lesson(lesson_id)

    async def get_categories(self) -> dict[str, list[dict]]:
        flat = await store.get_lesson_categories()
        by_id = {c["id"]: {**c, "children": []} for c in flat}
        tree = []
        for cat in by_id.values():
            parent = by_id.get(cat["parent_id"]) if cat["parent_id"] else None
            if parent is not None:
                parent["children"].append(cat)
            else:
                tree.append(cat)
        return {"tree": tree, "flat": flat}

    # ── Relevance ──────────────────────────────────────────────────────

    async def active_lessons_with_conditions(self) -> list[Lesson]:
        rows = await store.get_active_lessons_with_conditions()
        return [Lesson.from_row(r) for r in rows]

    async def relevant_for_context(self, context: LessonContext,
                                   cap: int = RELEVANT_QUERY_CAP) -> list[RelevantLesson]:
        return score_lessons(context, await self.active_lessons_with_conditions(), cap)

    async def relevant_for_trade(self, trade: dict) -> list[RelevantLesson]:
        return await self.relevant_for_context(LessonContext.from_trade(trade), TRADE_SUGGESTION_CAP)

    # ── Validation ─────────────────────────────────────────────────────

    async def validate(self, lesson_id: int) -> dict[str, Any]:
        """Recompute post-lesson stats and apply the status decision.

        Persists stats_after, trade_count_after, status and the note in one write.
        """
        async with self._lesson_lock(lesson_id):
            lesson = await self.get_lesson(lesson_id)
            if lesson.conditions is None:
                raise ValidationError("Lesson has no conditions to validate", error="No conditions")
            if lesson.status == LessonStatus.ARCHIVED:
                raise ValidationError("Archived lessons cannot be validated", error="Invalid status")
            if lesson.status == LessonStatus.DRAFT:
                raise ValidationError("Draft lessons must be activated before validation",
                                      error="Invalid status")

            stats_after = await self.compute_stats(lesson.conditions, since=lesson.learned_at)
            decision = decide(lesson.status, lesson.stats_before, stats_after)
            if decision.note == NO_BASELINE_NOTE:
                logger.warning(f"[LESSONS] Lesson {lesson_id} has conditions but no baseline snapshot")

            await store.update_lesson(lesson_id, {
                "stats_after": stats_after.to_dict(),
                "trade_count_after": stats_after.total_trades,
                "status": decision.status.value,
                "validation_note": decision.note,
            })
            if decision.status != lesson.status:
                logger.info(
                    f"[LESSONS] Lesson {lesson_id} {lesson.status.value} -> {decision.status.value}: "
                    f"{decision.note}"
                )

        return {
            "lesson_id": lesson_id,
            "status": decision.status.value,
            "previous_status": lesson.status.value,
            "note": decision.note,
            "stats_before": lesson.stats_before.to_dict() if lesson.stats_before else None,
            "stats_after": stats_after.to_dict(),
        }

    # ── Helpers ────────────────────────────────────────────────────────

    @asynccontextmanager
    async def _lesson_lock(self, lesson_id: int):
        lock = self._validation_locks.setdefault(lesson_id, asyncio.Lock())
        self._lock_users[lesson_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[lesson_id] -= 1
            if not self._lock_users[lesson_id]:
                del self._lock_users[lesson_id]
                del self._validation_locks[lesson_id]

    @staticmethod
    def _coerce_status(value: str) -> LessonStatus:
        try:
            return LessonStatus(value)
        except ValueError as e:
            allowed = ", ".join(s.value for s in LessonStatus)
            raise ValidationError(f"Invalid status '{value}'. Use one of: {allowed}",
                                  error="Invalid status") from e

    def _initial_status(self, status: str | None) -> LessonStatus:
        if not status:
            return LessonStatus.ACTIVE
        initial = self._coerce_status(status)
        if initial not in (LessonStatus.ACTIVE, LessonStatus.DRAFT):
            raise ValidationError("New lessons start as active or draft", error="Invalid status")
        return initial

    @staticmethod
    async def _check_category(category_id) -> int | None:
        if category_id in (None, ""):
            return None
        try:
            category_id = int(category_id)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid category_id: {category_id}") from e
        if await store.get_lesson_category(category_id) is None:
            raise ValidationError(f"Lesson category {category_id} does not exist",
                                  error="Invalid category")
        return category_id

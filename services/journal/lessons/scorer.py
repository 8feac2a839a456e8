"""Rank lessons by how well their conditions match a trade context."""

from typing import Iterable

from lessons.models import ATTRIBUTE_WEIGHTS, Lesson, LessonContext, RelevantLesson

# Suggestions attached to a trade on open/close vs. an explicit lookup.
TRADE_SUGGESTION_CAP = 3
RELEVANT_QUERY_CAP = 5


def score_lesson(context: LessonContext, lesson: Lesson) -> tuple[int, tuple[str, ...]]:
    """Weighted match score and the attributes that contributed, in evaluation order."""
    if lesson.conditions is None:
        return 0, ()
    score = 0
    matched: list[str] = []
    for attr, weight in ATTRIBUTE_WEIGHTS.items():
        if lesson.conditions.allows(attr, getattr(context, attr)):
            score += weight
            matched.append(attr)
    return score, tuple(matched)


def score_lessons(context: LessonContext, lessons: Iterable[Lesson], cap: int) -> list[RelevantLesson]:
    """Top ``cap`` lessons with a positive score, highest first.

    Ties keep input order (``sorted`` is stable). Lessons scoring 0 are dropped.
    """
    if cap < 0:
        raise ValueError(f"cap must be >= 0, got {cap}")
    matches = []
    for lesson in lessons:
        score, matched_on = score_lesson(context, lesson)
        if score <= 0:
            continue
        matches.append(RelevantLesson(
            id=lesson.id,
            title=lesson.title,
            content=lesson.content,
            category_name=lesson.category_name,
            relevance_score=score,
            matched_on=matched_on,
        ))
    matches = sorted(matches, key=lambda m: m.relevance_score, reverse=True)
    return matches[:cap]

"""Tests for lessons/scorer.py and the condition model it reads."""

import pytest

from errors import ValidationError
from lessons.models import Conditions, Lesson, LessonContext
from lessons.scorer import score_lesson, score_lessons


def _lesson(lesson_id: int, conditions: dict | None, title: str | None = None) -> Lesson:
    return Lesson(
        id=lesson_id,
        title=title or f"Lesson {lesson_id}",
        content="content",
        learned_at="2026-01-01",
        category_name="Setups",
        conditions=Conditions.from_dict(conditions),
    )


# ====================================================================
# score_lesson
# ====================================================================

class TestScoreLesson:
    def test_full_match_sums_all_weights(self):
        lesson = _lesson(1, {
            "setup": ["Breakout"], "session": ["London"], "trigger": ["reclaim"],
            "emotion": ["FOMO"], "location": ["dVWAP"],
        })
        ctx = LessonContext(setup="Breakout", session="London", trigger="reclaim",
                            emotion="FOMO", location="dVWAP")
        score, matched = score_lesson(ctx, lesson)
        assert score == 12
        assert matched == ("setup", "session", "trigger", "emotion", "location")

    def test_partial_match(self):
        lesson = _lesson(1, {"setup": ["Breakout"], "emotion": ["FOMO"]})
        score, matched = score_lesson(LessonContext(setup="Breakout", emotion="calm"), lesson)
        assert score == 3
        assert matched == ("setup",)

    def test_value_sets_match_any(self):
        lesson = _lesson(1, {"session": ["Asia", "London"]})
        assert score_lesson(LessonContext(session="London"), lesson) == (2, ("session",))
        assert score_lesson(LessonContext(session="NY Open"), lesson) == (0, ())

    def test_missing_context_value_never_matches(self):
        lesson = _lesson(1, {"trigger": ["reclaim"]})
        assert score_lesson(LessonContext(), lesson) == (0, ())

    def test_blank_context_value_never_matches(self):
        lesson = _lesson(1, {"setup": ["Breakout"]})
        assert score_lesson(LessonContext(setup=""), lesson) == (0, ())

    def test_lesson_without_conditions_scores_zero(self):
        assert score_lesson(LessonContext(setup="Breakout"), _lesson(1, None)) == (0, ())

    def test_more_matching_attributes_never_lower_the_score(self):
        lesson = _lesson(1, {
            "setup": ["Breakout"], "session": ["London"], "trigger": ["reclaim"],
            "emotion": ["FOMO"], "location": ["dVWAP"],
        })
        full = {"setup": "Breakout", "session": "London", "trigger": "reclaim",
                "emotion": "FOMO", "location": "dVWAP"}
        previous = 0
        filled: dict[str, str] = {}
        for attr, value in full.items():
            filled[attr] = value
            score, _ = score_lesson(LessonContext(**filled), lesson)
            assert score > previous
            previous = score

    def test_match_is_case_sensitive(self):
        lesson = _lesson(1, {"setup": ["Breakout"]})
        assert score_lesson(LessonContext(setup="breakout"), lesson) == (0, ())


# ====================================================================
# score_lessons
# ====================================================================

class TestScoreLessons:
    def test_sorted_by_score_descending(self):
        low = _lesson(1, {"session": ["London"]})
        high = _lesson(2, {"setup": ["Breakout"], "trigger": ["reclaim"]})
        ctx = LessonContext(setup="Breakout", session="London", trigger="reclaim")
        result = score_lessons(ctx, [low, high], cap=5)
        assert [r.id for r in result] == [2, 1]
        assert [r.relevance_score for r in result] == [6, 2]

    def test_ties_keep_input_order(self):
        a = _lesson(10, {"setup": ["Breakout"]})
        b = _lesson(3, {"trigger": ["reclaim"]})
        ctx = LessonContext(setup="Breakout", trigger="reclaim")
        assert [r.id for r in score_lessons(ctx, [a, b], cap=5)] == [10, 3]
        assert [r.id for r in score_lessons(ctx, [b, a], cap=5)] == [3, 10]

    def test_zero_scores_dropped(self):
        ctx = LessonContext(setup="Breakout")
        result = score_lessons(ctx, [_lesson(1, {"setup": ["FOMO"]}), _lesson(2, None)], cap=5)
        assert result == []

    def test_cap_limits_results(self):
        lessons = [_lesson(i, {"setup": ["Breakout"]}) for i in range(1, 8)]
        result = score_lessons(LessonContext(setup="Breakout"), lessons, cap=3)
        assert [r.id for r in result] == [1, 2, 3]

    def test_cap_zero_returns_empty(self):
        lessons = [_lesson(1, {"setup": ["Breakout"]})]
        assert score_lessons(LessonContext(setup="Breakout"), lessons, cap=0) == []

    def test_negative_cap_rejected(self):
        with pytest.raises(ValueError):
            score_lessons(LessonContext(), [], cap=-1)

    def test_result_carries_lesson_fields(self):
        lesson = _lesson(4, {"emotion": ["FOMO"]}, title="Don't chase")
        [match] = score_lessons(LessonContext(emotion="FOMO"), [lesson], cap=5)
        assert match.to_dict() == {
            "id": 4,
            "title": "Don't chase",
            "content": "content",
            "category_name": "Setups",
            "relevance_score": 2,
            "matched_on": ["emotion"],
        }


# ====================================================================
# Conditions
# ====================================================================

class TestConditions:
    def test_none_is_none(self):
        assert Conditions.from_dict(None) is None

    def test_string_value_becomes_list(self):
        cond = Conditions.from_dict({"setup": "Breakout"})
        assert cond.to_dict() == {"setup": ["Breakout"]}

    def test_duplicates_and_blanks_removed(self):
        cond = Conditions.from_dict({"session": ["London", " ", "London", "Asia"]})
        assert cond.session == ("London", "Asia")

    def test_empty_lists_are_dont_care(self):
        cond = Conditions.from_dict({"setup": [], "trigger": ["reclaim"]})
        assert cond.setup is None
        assert cond.to_dict() == {"trigger": ["reclaim"]}

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError):
            Conditions.from_dict({"timeframe": ["H4"]})

    def test_non_string_value_rejected(self):
        with pytest.raises(ValidationError):
            Conditions.from_dict({"setup": [1, 2]})

    def test_trade_filter_uses_trade_columns(self):
        cond = Conditions.from_dict({"emotion": ["FOMO"], "setup": ["Breakout"]})
        assert cond.to_trade_filter() == {"setup": ["Breakout"], "initial_emotion": ["FOMO"]}

    def test_context_from_trade_reads_initial_emotion(self):
        ctx = LessonContext.from_trade({"setup": "Breakout", "initial_emotion": "FOMO"})
        assert ctx.emotion == "FOMO"
        assert ctx.setup == "Breakout"

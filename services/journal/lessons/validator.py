"""Decide a lesson's status from its baseline and post-lesson statistics."""

from dataclasses import dataclass

from lessons.models import LessonStatus, StatisticsSnapshot

MIN_VALIDATION_TRADES = 5
SIGNIFICANT_DELTA_PTS = 10.0

NO_BASELINE_NOTE = "No baseline win rate recorded; cannot validate this lesson yet."


@dataclass(frozen=True)
class ValidationDecision:
    status: LessonStatus
    note: str
    stats_after: StatisticsSnapshot
    delta: float | None = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "note": self.note,
            "stats_after": self.stats_after.to_dict(),
            "delta": self.delta,
        }


def decide(
    current_status: LessonStatus,
    stats_before: StatisticsSnapshot | None,
    stats_after: StatisticsSnapshot,
) -> ValidationDecision:
    n = stats_after.total_trades
    if n < MIN_VALIDATION_TRADES:
        return ValidationDecision(
            status=current_status,
            note=f"Need {MIN_VALIDATION_TRADES - n} more matching trades to validate.",
            stats_after=stats_after,
        )

    if stats_before is None:
        return ValidationDecision(status=current_status, note=NO_BASELINE_NOTE, stats_after=stats_after)

    before = stats_before.win_rate
    after = stats_after.win_rate
    # Rounded so float noise cannot push an exact 10-point move under the threshold.
    delta = round(after - before, 9)

    if delta >= SIGNIFICANT_DELTA_PTS:
        return ValidationDecision(
            status=LessonStatus.VALIDATED,
            note=f"Win rate improved by {delta:.1f}% ({before:.1f}% → {after:.1f}%)",
            stats_after=stats_after,
            delta=delta,
        )
    if delta <= -SIGNIFICANT_DELTA_PTS:
        return ValidationDecision(
            status=LessonStatus.INVALIDATED,
            note=f"Win rate decreased by {abs(delta):.1f}% ({before:.1f}% → {after:.1f}%)",
            stats_after=stats_after,
            delta=delta,
        )
    return ValidationDecision(
        status=current_status,
        note=f"Win rate change: {'+' if delta >= 0 else ''}{delta:.1f}% (not significant yet)",
        stats_after=stats_after,
        delta=delta,
    )

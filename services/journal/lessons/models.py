"""Typed lesson structures: conditions, statistics snapshots and lesson rows.

Conditions and snapshots are persisted as JSON documents on the lesson row.
``to_dict``/``from_dict`` are exact inverses so a stored baseline compares
field-by-field with a freshly computed one.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Iterable

from errors import ValidationError

# Relevance weight per attribute. Dict order is the evaluation order and the
# order of ``matched_on`` in scorer output.
ATTRIBUTE_WEIGHTS: dict[str, int] = {
    "setup": 3,
    "session": 2,
    "trigger": 3,
    "emotion": 2,
    "location": 2,
}

# Lesson attribute -> trades column.
TRADE_COLUMNS: dict[str, str] = {
    "setup": "setup",
    "session": "session",
    "trigger": "trigger",
    "emotion": "initial_emotion",
    "location": "location",
}


class LessonStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    VALIDATED = "validated"
    INVALIDATED = "invalidated"
    ARCHIVED = "archived"


# Statuses a caller may set by hand; the rest belong to the validator.
MANUAL_STATUSES = frozenset({LessonStatus.DRAFT, LessonStatus.ACTIVE, LessonStatus.ARCHIVED})


def _value_tuple(attr: str, raw: Any) -> tuple[str, ...] | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, (list, tuple, set, frozenset)):
        raise ValidationError(
            f"Condition '{attr}' must be a list of strings",
            error="Invalid conditions",
        )
    values: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            raise ValidationError(
                f"Condition '{attr}' must only contain strings",
                error="Invalid conditions",
            )
        item = item.strip()
        if item and item not in values:
            values.append(item)
    return tuple(values) or None


@dataclass(frozen=True)
class Conditions:
    """Which trades a lesson applies to.

    Each attribute holds the accepted values; ``None`` means "don't care".
    Values keep their input order (deduplicated) so JSON round-trips are stable.
    """

    setup: tuple[str, ...] | None = None
    session: tuple[str, ...] | None = None
    trigger: tuple[str, ...] | None = None
    emotion: tuple[str, ...] | None = None
    location: tuple[str, ...] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Conditions | None:
        if data is None:
            return None
        if isinstance(data, Conditions):
            return data
        if not isinstance(data, dict):
            raise ValidationError("Conditions must be an object", error="Invalid conditions")
        unknown = set(data) - set(ATTRIBUTE_WEIGHTS)
        if unknown:
            raise ValidationError(
                f"Unknown condition attribute(s): {', '.join(sorted(unknown))}",
                error="Invalid conditions",
            )
        return cls(**{attr: _value_tuple(attr, data.get(attr)) for attr in ATTRIBUTE_WEIGHTS})

    def to_dict(self) -> dict[str, list[str]]:
        return {attr: list(values) for attr, values in self.items()}

    def items(self) -> Iterable[tuple[str, tuple[str, ...]]]:
        """Non-empty (attribute, values) pairs in evaluation order."""
        for attr in ATTRIBUTE_WEIGHTS:
            values = getattr(self, attr)
            if values:
                yield attr, values

    def allows(self, attr: str, value: str | None) -> bool:
        values = getattr(self, attr)
        return bool(values) and bool(value) and value in values

    def to_trade_filter(self) -> dict[str, list[str]]:
        return {TRADE_COLUMNS[attr]: list(values) for attr, values in self.items()}

    def is_empty(self) -> bool:
        return not any(True for _ in self.items())


@dataclass(frozen=True)
class StatisticsSnapshot:
    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    total_pnl: float = 0.0
    avg_pnl: float = 0.0

    @classmethod
    def from_trades(cls, trades: Iterable[dict]) -> StatisticsSnapshot:
        total = wins = losses = 0
        total_pnl = 0.0
        for trade in trades:
            total += 1
            if trade.get("outcome") == "win":
                wins += 1
            elif trade.get("outcome") == "loss":
                losses += 1
            total_pnl += trade.get("pnl") or 0
        if total == 0:
            return cls()
        return cls(
            total_trades=total,
            wins=wins,
            losses=losses,
            win_rate=wins / total * 100,
            total_pnl=total_pnl,
            avg_pnl=total_pnl / total,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> StatisticsSnapshot | None:
        if data is None:
            return None
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known and v is not None}
        for key in ("total_trades", "wins", "losses"):
            if key in values:
                values[key] = int(values[key])
        for key in ("win_rate", "total_pnl", "avg_pnl"):
            if key in values:
                values[key] = float(values[key])
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_trades": self.total_trades,
            "wins": self.wins,
            "losses": self.losses,
            "win_rate": self.win_rate,
            "total_pnl": self.total_pnl,
            "avg_pnl": self.avg_pnl,
        }


@dataclass
class Lesson:
    id: int
    title: str
    content: str
    learned_at: str
    status: LessonStatus = LessonStatus.ACTIVE
    category_id: int | None = None
    category_name: str | None = None
    conditions: Conditions | None = None
    stats_before: StatisticsSnapshot | None = None
    stats_after: StatisticsSnapshot | None = None
    trade_count_before: int | None = None
    trade_count_after: int | None = None
    validation_note: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Lesson:
        return cls(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            learned_at=row["learned_at"],
            status=LessonStatus(row.get("status") or "active"),
            category_id=row.get("category_id"),
            category_name=row.get("category_name"),
            conditions=Conditions.from_dict(row.get("conditions")),
            stats_before=StatisticsSnapshot.from_dict(row.get("stats_before")),
            stats_after=StatisticsSnapshot.from_dict(row.get("stats_after")),
            trade_count_before=row.get("trade_count_before"),
            trade_count_after=row.get("trade_count_after"),
            validation_note=row.get("validation_note"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "conditions": self.conditions.to_dict() if self.conditions else None,
            "learned_at": self.learned_at,
            "stats_before": self.stats_before.to_dict() if self.stats_before else None,
            "stats_after": self.stats_after.to_dict() if self.stats_after else None,
            "trade_count_before": self.trade_count_before,
            "trade_count_after": self.trade_count_after,
            "status": self.status.value,
            "validation_note": self.validation_note,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        data.update(self.extra)
        return data


@dataclass(frozen=True)
class LessonContext:
    """Trade attributes a lesson is scored against. Blank values never match."""

    setup: str | None = None
    session: str | None = None
    trigger: str | None = None
    emotion: str | None = None
    location: str | None = None

    @classmethod
    def from_trade(cls, trade: dict[str, Any]) -> LessonContext:
        return cls(
            setup=trade.get("setup"),
            session=trade.get("session"),
            trigger=trade.get("trigger"),
            emotion=trade.get("initial_emotion"),
            location=trade.get("location"),
        )

    @classmethod
    def from_query(cls, query: dict[str, Any]) -> LessonContext:
        return cls(**{attr: (query.get(attr) or None) for attr in ATTRIBUTE_WEIGHTS})


@dataclass(frozen=True)
class RelevantLesson:
    id: int
    title: str
    content: str
    category_name: str | None
    relevance_score: int
    matched_on: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "category_name": self.category_name,
            "relevance_score": self.relevance_score,
            "matched_on": list(self.matched_on),
        }

import aiosqlite
import functools
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from errors import StoreError

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]
DB_PATH = Path(os.getenv("JOURNAL_SQLITE_PATH", str(PROJECT_ROOT / "db" / "journal.db")))

# Singleton connection
_db: aiosqlite.Connection | None = None

# Trade columns that may be used as equality/IN filters.
TRADE_FILTER_COLUMNS = (
    "setup", "session", "trigger", "location", "initial_emotion",
    "direction", "asset", "outcome", "status",
)

TRADE_EDITABLE_COLUMNS = (
    "asset", "direction", "entry_price", "exit_price", "position_size", "collateral",
    "leverage", "liquidation_price", "setup", "location", "trigger", "session",
    "pnl", "pnl_percentage", "roi", "outcome", "initial_emotion", "planned_in_outlook",
    "is_scaled_trade", "parent_trade_id", "status", "opened_at", "closed_at",
)

LESSON_JSON_COLUMNS = ("conditions", "stats_before", "stats_after")
OUTLOOK_JSON_COLUMNS = (
    "key_levels", "setups", "no_trade_zone", "contingency", "invalidation",
    "bull_arguments", "bear_arguments",
)
REVIEW_JSON_COLUMNS = ("lessons", "hindsight", "action_items")

DEFAULT_LESSON_CATEGORIES = [
    # (name, description, parent, sort_order)
    ("Trading", "Trading-related lessons", None, 1),
    ("Setups", "Trade setup patterns", "Trading", 1),
    ("Sessions", "Session timing lessons", "Trading", 2),
    ("Triggers", "Entry triggers and signals", "Trading", 3),
    ("Locations", "Price levels and zones", "Trading", 4),
    ("Risk Management", "Position sizing and risk", "Trading", 5),
    ("Psychology", "Mental and emotional lessons", None, 2),
    ("Emotions", "Emotional patterns", "Psychology", 1),
    ("Discipline", "Rule following and patience", "Psychology", 2),
    ("Reflection", "Self-analysis and growth", "Psychology", 3),
]


def _guard(func):
    """Re-raise SQLite failures as StoreError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except aiosqlite.Error as e:
            logger.error(f"[STORE] {func.__name__} failed: {e}")
            raise StoreError(f"{func.__name__} failed: {e}", original_error=e) from e

    return wrapper


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _dumps(value) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def _loads(value: str | None):
    if value is None or value == "":
        return None
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError) as e:
        raise StoreError(f"Corrupt JSON document in database: {e}", original_error=e) from e


def _decode_row(row, json_columns: tuple[str, ...]) -> dict:
    item = dict(row)
    for col in json_columns:
        if col in item:
            item[col] = _loads(item[col])
    return item


async def _get_db() -> aiosqlite.Connection:
    global _db
    if _db is None:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        _db = await aiosqlite.connect(DB_PATH)
        _db.row_factory = aiosqlite.Row
        await _db.execute("PRAGMA journal_mode=WAL")
        await _db.execute("PRAGMA busy_timeout=5000")
        await _db.execute("PRAGMA foreign_keys=ON")
    return _db


async def close_db():
    global _db
    if _db:
        await _db.close()
        _db = None


@_guard
async def init_db():
    db = await _get_db()
    await db.executescript("""
        CREATE TABLE IF NOT EXISTS trading_days (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            date TEXT NOT NULL UNIQUE,
            has_outlook INTEGER NOT NULL DEFAULT 0,
            has_review INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS trades (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            trade_number TEXT NOT NULL UNIQUE,
            trading_day_id INTEGER REFERENCES trading_days(id) ON DELETE SET NULL,
            asset TEXT NOT NULL,
            direction TEXT NOT NULL,
            entry_price REAL,
            exit_price REAL,
            position_size REAL,
            collateral REAL,
            leverage REAL DEFAULT 1,
            liquidation_price REAL,
            setup TEXT,
            location TEXT,
            "trigger" TEXT,
            session TEXT,
            pnl REAL,
            pnl_percentage REAL,
            roi REAL,
            outcome TEXT,
            initial_emotion TEXT,
            planned_in_outlook INTEGER NOT NULL DEFAULT 0,
            is_scaled_trade INTEGER NOT NULL DEFAULT 0,
            parent_trade_id INTEGER REFERENCES trades(id),
            status TEXT NOT NULL DEFAULT 'open',
            opened_at TEXT NOT NULL,
            closed_at TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE INDEX IF NOT EXISTS idx_trades_status ON trades(status);
        CREATE INDEX IF NOT EXISTS idx_trades_trading_day ON trades(trading_day_id);
        CREATE INDEX IF NOT EXISTS idx_trades_opened ON trades(opened_at);
        CREATE INDEX IF NOT EXISTS idx_trades_closed ON trades(closed_at);

        CREATE TABLE IF NOT EXISTS trade_updates (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            trade_id INTEGER NOT NULL REFERENCES trades(id) ON DELETE CASCADE,
            update_type TEXT NOT NULL DEFAULT 'note',
            content TEXT,
            emotion TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE INDEX IF NOT EXISTS idx_trade_updates_trade ON trade_updates(trade_id);

        CREATE TABLE IF NOT EXISTS daily_outlooks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            trading_day_id INTEGER NOT NULL UNIQUE REFERENCES trading_days(id) ON DELETE CASCADE,
            bias TEXT NOT NULL,
            bias_reasoning TEXT,
            htf_bias TEXT,
            key_levels TEXT,
            setups TEXT,
            no_trade_zone TEXT,
            contingency TEXT,
            invalidation TEXT,
            bull_arguments TEXT,
            bear_arguments TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS daily_reviews (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            trading_day_id INTEGER NOT NULL UNIQUE REFERENCES trading_days(id) ON DELETE CASCADE,
            outlook_grade TEXT,
            execution_grade TEXT,
            emotional_grade TEXT,
            bias_correct INTEGER,
            reflection TEXT,
            lessons TEXT,
            hindsight TEXT,
            action_items TEXT,
            trades_won INTEGER DEFAULT 0,
            trades_lost INTEGER DEFAULT 0,
            total_pnl REAL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS lesson_categories (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            description TEXT,
            parent_id INTEGER REFERENCES lesson_categories(id),
            sort_order INTEGER DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS lessons (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            content TEXT NOT NULL,
            category_id INTEGER REFERENCES lesson_categories(id),
            conditions TEXT,
            learned_at TEXT NOT NULL,
            stats_before TEXT,
            stats_after TEXT,
            trade_count_before INTEGER,
            trade_count_after INTEGER,
            status TEXT NOT NULL DEFAULT 'active',
            validation_note TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE INDEX IF NOT EXISTS idx_lessons_status ON lessons(status);
        CREATE INDEX IF NOT EXISTS idx_lessons_category ON lessons(category_id);

        CREATE TABLE IF NOT EXISTS system_config (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS conversations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            source TEXT NOT NULL,
            role TEXT NOT NULL,
            agent_name TEXT,
            message TEXT NOT NULL,
            action_taken TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE INDEX IF NOT EXISTS idx_conversations_source ON conversations(source);
        CREATE INDEX IF NOT EXISTS idx_conversations_created ON conversations(created_at);
    """)
    # Migrations for databases created before collateral/roi/session existed
    for sql in (
        "ALTER TABLE trades ADD COLUMN collateral REAL",
        "ALTER TABLE trades ADD COLUMN roi REAL",
        "ALTER TABLE trades ADD COLUMN session TEXT",
    ):
        try:
            await db.execute(sql)
        except aiosqlite.OperationalError:
            pass  # Column already exists
    await _seed_lesson_categories(db)
    await db.commit()


async def _seed_lesson_categories(db: aiosqlite.Connection):
    cursor = await db.execute("SELECT COUNT(*) AS n FROM lesson_categories")
    row = await cursor.fetchone()
    if row["n"] > 0:
        return
    ids: dict[str, int] = {}
    for name, description, parent, sort_order in DEFAULT_LESSON_CATEGORIES:
        cursor = await db.execute(
            """INSERT INTO lesson_categories (name, description, parent_id, sort_order)
               VALUES (?, ?, ?, ?)""",
            (name, description, ids.get(parent) if parent else None, sort_order),
        )
        ids[name] = cursor.lastrowid
    logger.info(f"[STORE] Seeded {len(ids)} lesson categories")


@_guard
async def count_tables() -> int:
    db = await _get_db()
    cursor = await db.execute(
        "SELECT COUNT(*) AS n FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
    )
    row = await cursor.fetchone()
    return int(row["n"])


# ═══════════════════════════════════════════════════════════════════════
# TRADES
# ═══════════════════════════════════════════════════════════════════════

@_guard
async def insert_trade(trade: dict) -> int:
    db = await _get_db()
    now = _now()
    cursor = await db.execute(
        """INSERT INTO trades (trade_number, trading_day_id, asset, direction, entry_price,
           position_size, collateral, leverage, liquidation_price, setup, location, "trigger",
           session, initial_emotion, planned_in_outlook, is_scaled_trade, parent_trade_id,
           status, opened_at, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            trade["trade_number"], trade.get("trading_day_id"), trade["asset"], trade["direction"],
            trade.get("entry_price"), trade.get("position_size"), trade.get("collateral"),
            trade.get("leverage", 1), trade.get("liquidation_price"),
            trade.get("setup"), trade.get("location"), trade.get("trigger"), trade.get("session"),
            trade.get("initial_emotion"),
            1 if trade.get("planned_in_outlook") else 0,
            1 if trade.get("is_scaled_trade") else 0,
            trade.get("parent_trade_id"),
            trade.get("status", "open"),
            trade.get("opened_at") or now, now, now,
        ),
    )
    await db.commit()
    return cursor.lastrowid


@_guard
async def get_trade(trade_id: int) -> dict | None:
    db = await _get_db()
    cursor = await db.execute("SELECT * FROM trades WHERE id = ?", (trade_id,))
    row = await cursor.fetchone()
    return dict(row) if row else None


@_guard
async def get_trade_by_number(trade_number: str) -> dict | None:
    db = await _get_db()
    cursor = await db.execute("SELECT * FROM trades WHERE trade_number = ?", (trade_number,))
    row = await cursor.fetchone()
    return dict(row) if row else None


@_guard
async def count_trades_opened_on(date_str: str) -> int:
    db = await _get_db()
    cursor = await db.execute(
        "SELECT COUNT(*) AS n FROM trades WHERE DATE(opened_at) = ?", (date_str,)
    )
    row = await cursor.fetchone()
    return int(row["n"])


@_guard
async def get_max_trade_sequence(date_str: str) -> int:
    """Highest T-sequence used for trade numbers on the given date."""
    db = await _get_db()
    prefix = f"{date_str}-T"
    cursor = await db.execute(
        """SELECT MAX(CAST(SUBSTR(trade_number, ?) AS INTEGER)) AS n
           FROM trades WHERE trade_number LIKE ?""",
        (len(prefix) + 1, prefix + "%"),
    )
    row = await cursor.fetchone()
    return int(row["n"] or 0)


def _trade_where(filters: dict) -> tuple[str, list]:
    clauses = ["1=1"]
    params: list = []
    for col in TRADE_FILTER_COLUMNS:
        value = filters.get(col)
        if value in (None, ""):
            continue
        if col == "asset":
            clauses.append("asset LIKE ?")
            params.append(f"%{value}%")
        else:
            clauses.append(f'"{col}" = ?')
            params.append(value)
    if filters.get("from"):
        clauses.append("DATE(opened_at) >= ?")
        params.append(filters["from"])
    if filters.get("to"):
        clauses.append("DATE(opened_at) <= ?")
        params.append(filters["to"])
    return " AND ".join(clauses), params


@_guard
async def list_trades(filters: dict | None = None, limit: int = 100, offset: int = 0) -> tuple[list[dict], int]:
    """List trades newest first. Returns (page, total matching)."""
    db = await _get_db()
    where, params = _trade_where(filters or {})
    cursor = await db.execute(f"SELECT COUNT(*) AS n FROM trades WHERE {where}", params)
    total = int((await cursor.fetchone())["n"])
    cursor = await db.execute(
        f"SELECT * FROM trades WHERE {where} ORDER BY opened_at DESC, id DESC LIMIT ? OFFSET ?",
        (*params, limit, offset),
    )
    rows = await cursor.fetchall()
    return [dict(r) for r in rows], total


@_guard
async def get_trades_for_export(filters: dict | None = None) -> list[dict]:
    db = await _get_db()
    where, params = _trade_where(filters or {})
    cursor = await db.execute(
        f"SELECT * FROM trades WHERE {where} ORDER BY opened_at ASC, id ASC", params
    )
    rows = await cursor.fetchall()
    return [dict(r) for r in rows]


@_guard
async def get_open_trades() -> list[dict]:
    db = await _get_db()
    cursor = await db.execute(
        "SELECT * FROM trades WHERE status = 'open' ORDER BY opened_at DESC, id DESC"
    )
    rows = await cursor.fetchall()
    return [dict(r) for r in rows]


@_guard
async def get_trades_opened_on(date_str: str) -> list[dict]:
    db = await _get_db()
    cursor = await db.execute(
        "SELECT * FROM trades WHERE DATE(opened_at) = ? ORDER BY opened_at ASC, id ASC",
        (date_str,),
    )
    rows = await cursor.fetchall()
    return [dict(r) for r in rows]


@_guard
async def find_closed_trades(
    attribute_filters: dict[str, list[str]] | None = None,
    since: str | None = None,
    until: str | None = None,
) -> list[dict]:
    """Closed trades matching every non-empty value set (AND across columns, IN within).

    ``since``/``until`` are inclusive ``YYYY-MM-DD`` bounds on the close date.
    """
    db = await _get_db()
    clauses = ["status = 'closed'"]
    params: list = []
    for col, values in (attribute_filters or {}).items():
        if col not in TRADE_FILTER_COLUMNS:
            raise ValueError(f"Unsupported trade filter column: {col}")
        if not values:
            continue
        values = list(values)
        placeholders = ",".join(["?"] * len(values))
        clauses.append(f'"{col}" IN ({placeholders})')
        params.extend(values)
    if since:
        clauses.append("DATE(closed_at) >= ?")
        params.append(since)
    if until:
        clauses.append("DATE(closed_at) <= ?")
        params.append(until)
    cursor = await db.execute(
        f"SELECT * FROM trades WHERE {' AND '.join(clauses)} ORDER BY closed_at ASC, id ASC",
        params,
    )
    rows = await cursor.fetchall()
    return [dict(r) for r in rows]


@_guard
async def count_open_trades() -> int:
    db = await _get_db()
    cursor = await db.execute("SELECT COUNT(*) AS n FROM trades WHERE status = 'open'")
    row = await cursor.fetchone()
    return int(row["n"])


@_guard
async def update_trade(trade_id: int, fields: dict) -> bool:
    fields = {k: v for k, v in fields.items() if k in TRADE_EDITABLE_COLUMNS}
    if not fields:
        return False
    db = await _get_db()
    assignments = ", ".join(f'"{col}" = ?' for col in fields)
    cursor = await db.execute(
        f"UPDATE trades SET {assignments}, updated_at = ? WHERE id = ?",
        (*fields.values(), _now(), trade_id),
    )
    await db.commit()
    return cursor.rowcount > 0


@_guard
async def close_trade(trade_id: int, fields: dict) -> bool:
    """Apply closing fields only if the trade is still open."""
    db = await _get_db()
    cursor = await db.execute(
        """UPDATE trades
           SET exit_price = ?, pnl = ?, pnl_percentage = ?, roi = ?, outcome = ?,
               status = 'closed', closed_at = ?, updated_at = ?
           WHERE id = ? AND status = 'open'""",
        (
            fields["exit_price"], fields.get("pnl"), fields.get("pnl_percentage"),
            fields.get("roi"), fields["outcome"], fields["closed_at"], _now(), trade_id,
        ),
    )
    await db.commit()
    return cursor.rowcount > 0


@_guard
async def delete_trade(trade_id: int) -> bool:
    db = await _get_db()
    await db.execute("DELETE FROM trade_updates WHERE trade_id = ?", (trade_id,))
    cursor = await db.execute("DELETE FROM trades WHERE id = ?", (trade_id,))
    await db.commit()
    return cursor.rowcount > 0


@_guard
async def insert_trade_update(trade_id: int, content: str | None, emotion: str | None,
                              update_type: str = "note") -> int:
    db = await _get_db()
    cursor = await db.execute(
        """INSERT INTO trade_updates (trade_id, update_type, content, emotion)
           VALUES (?, ?, ?, ?)""",
        (trade_id, update_type, content, emotion),
    )
    await db.commit()
    return cursor.lastrowid


@_guard
async def get_trade_updates(trade_id: int) -> list[dict]:
    db = await _get_db()
    cursor = await db.execute(
        "SELECT * FROM trade_updates WHERE trade_id = ? ORDER BY created_at ASC, id ASC",
        (trade_id,),
    )
    rows = await cursor.fetchall()
    return [dict(r) for r in rows]


@_guard
async def count_recent_trade_updates(trade_id: int, minutes: int = 30) -> int:
    db = await _get_db()
    cursor = await db.execute(
        """SELECT COUNT(*) AS n FROM trade_updates
           WHERE trade_id = ? AND created_at >= datetime('now', ?)""",
        (trade_id, f"-{int(minutes)} minutes"),
    )
    row = await cursor.fetchone()
    return int(row["n"])


# ═══════════════════════════════════════════════════════════════════════
# TRADING DAYS (outlooks + reviews)
# ═══════════════════════════════════════════════════════════════════════

@_guard
async def get_or_create_trading_day(date_str: str) -> dict:
    db = await _get_db()
    await db.execute("INSERT OR IGNORE INTO trading_days (date) VALUES (?)", (date_str,))
    await db.commit()
    cursor = await db.execute("SELECT * FROM trading_days WHERE date = ?", (date_str,))
    return dict(await cursor.fetchone())


@_guard
async def get_trading_day(date_str: str) -> dict | None:
    db = await _get_db()
    cursor = await db.execute("SELECT * FROM trading_days WHERE date = ?", (date_str,))
    row = await cursor.fetchone()
    return dict(row) if row else None


@_guard
async def get_latest_trading_day() -> dict | None:
    db = await _get_db()
    cursor = await db.execute("SELECT * FROM trading_days ORDER BY date DESC LIMIT 1")
    row = await cursor.fetchone()
    return dict(row) if row else None


@_guard
async def list_trading_days(date_from: str | None = None, date_to: str | None = None,
                            limit: int = 30, offset: int = 0) -> tuple[list[dict], int]:
    db = await _get_db()
    clauses = ["1=1"]
    params: list = []
    if date_from:
        clauses.append("date >= ?")
        params.append(date_from)
    if date_to:
        clauses.append("date <= ?")
        params.append(date_to)
    where = " AND ".join(clauses)
    cursor = await db.execute(f"SELECT COUNT(*) AS n FROM trading_days WHERE {where}", params)
    total = int((await cursor.fetchone())["n"])
    cursor = await db.execute(
        f"""SELECT td.*,
               (SELECT COUNT(*) FROM trades t WHERE t.trading_day_id = td.id) AS trade_count
            FROM trading_days td WHERE {where}
            ORDER BY date DESC LIMIT ? OFFSET ?""",
        (*params, limit, offset),
    )
    rows = await cursor.fetchall()
    return [dict(r) for r in rows], total


@_guard
async def get_trading_days_for_export(date_from: str | None = None, date_to: str | None = None) -> list[dict]:
    """Trading days oldest first, each with its decoded outlook and review."""
    db = await _get_db()
    clauses = ["1=1"]
    params: list = []
    if date_from:
        clauses.append("date >= ?")
        params.append(date_from)
    if date_to:
        clauses.append("date <= ?")
        params.append(date_to)
    cursor = await db.execute(
        f"SELECT * FROM trading_days WHERE {' AND '.join(clauses)} ORDER BY date ASC", params
    )
    days = [dict(r) for r in await cursor.fetchall()]
    for day in days:
        day["outlook"] = await get_outlook(day["id"])
        day["review"] = await get_review(day["id"])
    return days


@_guard
async def delete_trading_day(date_str: str) -> bool:
    db = await _get_db()
    day = await get_trading_day(date_str)
    if not day:
        return False
    await db.execute("UPDATE trades SET trading_day_id = NULL WHERE trading_day_id = ?", (day["id"],))
    await db.execute("DELETE FROM daily_outlooks WHERE trading_day_id = ?", (day["id"],))
    await db.execute("DELETE FROM daily_reviews WHERE trading_day_id = ?", (day["id"],))
    await db.execute("DELETE FROM trading_days WHERE id = ?", (day["id"],))
    await db.commit()
    return True


@_guard
async def get_outlook(trading_day_id: int) -> dict | None:
    db = await _get_db()
    cursor = await db.execute(
        "SELECT * FROM daily_outlooks WHERE trading_day_id = ?", (trading_day_id,)
    )
    row = await cursor.fetchone()
    return _decode_row(row, OUTLOOK_JSON_COLUMNS) if row else None


@_guard
async def upsert_outlook(date_str: str, outlook: dict) -> dict:
    db = await _get_db()
    day = await get_or_create_trading_day(date_str)
    now = _now()
    values = (
        outlook["bias"], outlook.get("bias_reasoning"), outlook.get("htf_bias"),
        *(_dumps(outlook.get(col)) for col in OUTLOOK_JSON_COLUMNS),
    )
    await db.execute(
        """INSERT INTO daily_outlooks (trading_day_id, bias, bias_reasoning, htf_bias,
               key_levels, setups, no_trade_zone, contingency, invalidation,
               bull_arguments, bear_arguments, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
           ON CONFLICT(trading_day_id) DO UPDATE SET
               bias = excluded.bias,
               bias_reasoning = excluded.bias_reasoning,
               htf_bias = excluded.htf_bias,
               key_levels = excluded.key_levels,
               setups = excluded.setups,
               no_trade_zone = excluded.no_trade_zone,
               contingency = excluded.contingency,
               invalidation = excluded.invalidation,
               bull_arguments = excluded.bull_arguments,
               bear_arguments = excluded.bear_arguments,
               updated_at = excluded.updated_at""",
        (day["id"], *values, now, now),
    )
    await db.execute(
        "UPDATE trading_days SET has_outlook = 1, updated_at = ? WHERE id = ?", (now, day["id"])
    )
    await db.commit()
    return await get_outlook(day["id"])


@_guard
async def get_review(trading_day_id: int) -> dict | None:
    db = await _get_db()
    cursor = await db.execute(
        "SELECT * FROM daily_reviews WHERE trading_day_id = ?", (trading_day_id,)
    )
    row = await cursor.fetchone()
    return _decode_row(row, REVIEW_JSON_COLUMNS) if row else None


@_guard
async def upsert_review(date_str: str, review: dict) -> dict:
    db = await _get_db()
    day = await get_or_create_trading_day(date_str)
    now = _now()
    bias_correct = review.get("bias_correct")
    await db.execute(
        """INSERT INTO daily_reviews (trading_day_id, outlook_grade, execution_grade,
               emotional_grade, bias_correct, reflection, lessons, hindsight, action_items,
               trades_won, trades_lost, total_pnl, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
           ON CONFLICT(trading_day_id) DO UPDATE SET
               outlook_grade = excluded.outlook_grade,
               execution_grade = excluded.execution_grade,
               emotional_grade = excluded.emotional_grade,
               bias_correct = excluded.bias_correct,
               reflection = excluded.reflection,
               lessons = excluded.lessons,
               hindsight = excluded.hindsight,
               action_items = excluded.action_items,
               trades_won = excluded.trades_won,
               trades_lost = excluded.trades_lost,
               total_pnl = excluded.total_pnl,
               updated_at = excluded.updated_at""",
        (
            day["id"], review.get("outlook_grade"), review.get("execution_grade"),
            review.get("emotional_grade"),
            None if bias_correct is None else (1 if bias_correct else 0),
            review.get("reflection"),
            *(_dumps(review.get(col)) for col in REVIEW_JSON_COLUMNS),
            review.get("trades_won", 0), review.get("trades_lost", 0), review.get("total_pnl", 0),
            now, now,
        ),
    )
    await db.execute(
        "UPDATE trading_days SET has_review = 1, updated_at = ? WHERE id = ?", (now, day["id"])
    )
    await db.commit()
    return await get_review(day["id"])


# ═══════════════════════════════════════════════════════════════════════
# LESSONS
# ═══════════════════════════════════════════════════════════════════════

_LESSON_SELECT = """SELECT l.*, c.name AS category_name
                    FROM lessons l
                    LEFT JOIN lesson_categories c ON c.id = l.category_id"""


@_guard
async def insert_lesson(lesson: dict) -> int:
    db = await _get_db()
    now = _now()
    cursor = await db.execute(
        """INSERT INTO lessons (title, content, category_id, conditions, learned_at,
           stats_before, trade_count_before, status, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            lesson["title"], lesson["content"], lesson.get("category_id"),
            _dumps(lesson.get("conditions")), lesson["learned_at"],
            _dumps(lesson.get("stats_before")), lesson.get("trade_count_before"),
            lesson.get("status", "active"), now, now,
        ),
    )
    await db.commit()
    return cursor.lastrowid


@_guard
async def get_lesson(lesson_id: int) -> dict | None:
    db = await _get_db()
    cursor = await db.execute(f"{_LESSON_SELECT} WHERE l.id = ?", (lesson_id,))
    row = await cursor.fetchone()
    return _decode_row(row, LESSON_JSON_COLUMNS) if row else None


@_guard
async def list_lessons(category_id: int | None = None, status: str | None = None,
                       search: str | None = None, limit: int = 50,
                       offset: int = 0) -> tuple[list[dict], int]:
    db = await _get_db()
    clauses = ["1=1"]
    params: list = []
    if category_id is not None:
        clauses.append("l.category_id = ?")
        params.append(category_id)
    if status:
        clauses.append("l.status = ?")
        params.append(status)
    if search:
        clauses.append("(l.title LIKE ? OR l.content LIKE ?)")
        params.extend([f"%{search}%", f"%{search}%"])
    where = " AND ".join(clauses)
    cursor = await db.execute(f"SELECT COUNT(*) AS n FROM lessons l WHERE {where}", params)
    total = int((await cursor.fetchone())["n"])
    cursor = await db.execute(
        f"{_LESSON_SELECT} WHERE {where} ORDER BY l.learned_at DESC, l.id DESC LIMIT ? OFFSET ?",
        (*params, limit, offset),
    )
    rows = await cursor.fetchall()
    return [_decode_row(r, LESSON_JSON_COLUMNS) for r in rows], total


@_guard
async def get_lessons_for_export() -> list[dict]:
    db = await _get_db()
    cursor = await db.execute(f"{_LESSON_SELECT} ORDER BY l.learned_at ASC, l.id ASC")
    rows = await cursor.fetchall()
    return [_decode_row(r, LESSON_JSON_COLUMNS) for r in rows]


@_guard
async def get_active_lessons_with_conditions() -> list[dict]:
    db = await _get_db()
    cursor = await db.execute(
        f"""{_LESSON_SELECT}
            WHERE l.status = 'active' AND l.conditions IS NOT NULL
            ORDER BY l.id ASC"""
    )
    rows = await cursor.fetchall()
    return [_decode_row(r, LESSON_JSON_COLUMNS) for r in rows]


@_guard
async def update_lesson(lesson_id: int, fields: dict) -> bool:
    """Update one lesson row in a single statement. JSON columns are serialized here."""
    allowed = (
        "title", "content", "category_id", "conditions", "status", "validation_note",
        "stats_before", "stats_after", "trade_count_before", "trade_count_after",
    )
    fields = {k: v for k, v in fields.items() if k in allowed}
    if not fields:
        return False
    values = [_dumps(v) if k in LESSON_JSON_COLUMNS else v for k, v in fields.items()]
    assignments = ", ".join(f"{col} = ?" for col in fields)
    db = await _get_db()
    cursor = await db.execute(
        f"UPDATE lessons SET {assignments}, updated_at = ? WHERE id = ?",
        (*values, _now(), lesson_id),
    )
    await db.commit()
    return cursor.rowcount > 0


@_guard
async def get_lesson_categories() -> list[dict]:
    db = await _get_db()
    cursor = await db.execute(
        """SELECT c.*, (SELECT COUNT(*) FROM lessons l
                        WHERE l.category_id = c.id AND l.status != 'archived') AS lesson_count
           FROM lesson_categories c
           ORDER BY COALESCE(c.parent_id, 0), c.sort_order, c.id"""
    )
    rows = await cursor.fetchall()
    return [dict(r) for r in rows]


@_guard
async def get_lesson_category(category_id: int) -> dict | None:
    db = await _get_db()
    cursor = await db.execute("SELECT * FROM lesson_categories WHERE id = ?", (category_id,))
    row = await cursor.fetchone()
    return dict(row) if row else None


# ═══════════════════════════════════════════════════════════════════════
# JOURNAL CONFIG (key -> JSON value)
# ═══════════════════════════════════════════════════════════════════════

DEFAULT_JOURNAL_CONFIG = {
    "setup_completed": False,
    "trading_style": {
        "name": "VWAP-Based Mean Reversion & Breakout",
        "description": (
            "Focus on VWAP levels (daily, weekly, monthly, quarterly, yearly) combined with "
            "volume analysis, clinic trends, and orderflow triggers."
        ),
    },
    "setups": ["Breakout", "Breakdown", "Mean Reversion", "CME Gap Fills", "Mean to Edge", "FOMO"],
    "locations": [
        *(f"{p}VWAP{s}" for p in "dwmqy" for s in (" VAH 2SD", " VAH", "", " VAL", " VAL 2SD")),
        "cVAH", "cVAL", "POC",
        "H4 Clinic Trend (EMA 100)", "H4 Clinic Trend (EMA 200)",
        "Daily Clinic Trend (EMA 100)", "Daily Clinic Trend (EMA 200)",
        "Weekly Clinic Trend (EMA 100)", "Weekly Clinic Trend (EMA 200)",
    ],
    "triggers": [
        "rejection", "reclaim", "expansion", "breaking through", "re-testing",
        "AGGR climax", "OI flush", "OI surge", "OI puke",
    ],
    "vocabulary": {
        "1D Trend": "Daily Clinic Trend",
        "1d trend": "Daily Clinic Trend",
        "daily trend": "Daily Clinic Trend",
        "H4 Trend": "H4 Clinic Trend",
        "h4 trend": "H4 Clinic Trend",
        "4h trend": "H4 Clinic Trend",
        "1W Trend": "Weekly Clinic Trend",
        "1w trend": "Weekly Clinic Trend",
        "weekly trend": "Weekly Clinic Trend",
        "dVAP": "dVWAP",
        "wVAP": "wVWAP",
        "mVAP": "mVWAP",
    },
}


@_guard
async def get_config_value(key: str):
    db = await _get_db()
    cursor = await db.execute("SELECT value FROM system_config WHERE key = ?", (key,))
    row = await cursor.fetchone()
    return _loads(row["value"]) if row else None


@_guard
async def config_key_exists(key: str) -> bool:
    db = await _get_db()
    cursor = await db.execute("SELECT 1 FROM system_config WHERE key = ?", (key,))
    return await cursor.fetchone() is not None


@_guard
async def get_all_config() -> dict:
    db = await _get_db()
    cursor = await db.execute("SELECT key, value FROM system_config ORDER BY key")
    rows = await cursor.fetchall()
    return {row["key"]: _loads(row["value"]) for row in rows}


@_guard
async def set_config_values(values: dict) -> dict:
    """Upsert one or many keys in a single transaction."""
    db = await _get_db()
    now = _now()
    for key, value in values.items():
        await db.execute(
            """INSERT INTO system_config (key, value, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at""",
            (key, json.dumps(value, ensure_ascii=False), now),
        )
    await db.commit()
    return values


@_guard
async def delete_config(key: str) -> bool:
    db = await _get_db()
    cursor = await db.execute("DELETE FROM system_config WHERE key = ?", (key,))
    await db.commit()
    return cursor.rowcount > 0


async def init_journal_config() -> bool:
    """Seed default journal config once. Returns True when defaults were written."""
    if await config_key_exists("setup_completed"):
        return False
    await set_config_values(DEFAULT_JOURNAL_CONFIG)
    logger.info(f"[STORE] Seeded {len(DEFAULT_JOURNAL_CONFIG)} default config keys")
    return True


# ═══════════════════════════════════════════════════════════════════════
# CONVERSATIONS
# ═══════════════════════════════════════════════════════════════════════

@_guard
async def insert_conversation_turn(turn: dict) -> int:
    db = await _get_db()
    cursor = await db.execute(
        """INSERT INTO conversations (source, role, agent_name, message, action_taken)
           VALUES (?, ?, ?, ?, ?)""",
        (
            turn["source"],
            turn["role"],
            turn.get("agent_name", "journal"),
            turn["message"],
            turn.get("action_taken"),
        ),
    )
    await db.commit()
    return cursor.lastrowid


@_guard
async def get_recent_conversations(source: str, limit: int = 20) -> list[dict]:
    db = await _get_db()
    cursor = await db.execute(
        """SELECT * FROM conversations
           WHERE source = ?
           ORDER BY created_at DESC, id DESC LIMIT ?""",
        (source, limit),
    )
    rows = await cursor.fetchall()
    items = [dict(r) for r in rows]
    items.reverse()  # chronological order
    return items

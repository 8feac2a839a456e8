"""Shared fixtures for the trading journal test suite."""

import os
import sys
from pathlib import Path

import pytest

# Ensure journal package is on sys.path
JOURNAL_DIR = Path(__file__).resolve().parents[1]
if str(JOURNAL_DIR) not in sys.path:
    sys.path.insert(0, str(JOURNAL_DIR))

# Set dummy env vars BEFORE importing config so __post_init__ does not rely on real secrets
os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")
os.environ.setdefault("ANTHROPIC_BASE_URL", "https://test.anthropic.com")
os.environ.setdefault("ANTHROPIC_MODEL", "claude-opus-4-6")
os.environ.setdefault("ANTHROPIC_MODEL_SONNET", "claude-sonnet-4-6")
os.environ.setdefault("ANTHROPIC_MODEL_HAIKU", "claude-haiku-4-5")
os.environ.setdefault("JOURNAL_HOST", "127.0.0.1")
os.environ.setdefault("JOURNAL_PORT", "3001")


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def anthropic_config():
    from config import AnthropicConfig
    cfg = AnthropicConfig()
    cfg.api_key = "test-key"
    return cfg


@pytest.fixture
def offline_anthropic_config():
    """Anthropic config without a key: every Claude path falls back."""
    from config import AnthropicConfig
    cfg = AnthropicConfig()
    cfg.api_key = ""
    return cfg


@pytest.fixture
def chat_config():
    from config import ChatConfig
    cfg = ChatConfig()
    cfg.conversation_enabled = True
    cfg.conversation_max_history = 20
    cfg.llm_enabled = False
    return cfg


@pytest.fixture
def app_config(offline_anthropic_config, chat_config):
    from config import AppConfig, ServerConfig
    return AppConfig(
        server=ServerConfig(),
        anthropic=offline_anthropic_config,
        chat=chat_config,
    )


# ---------------------------------------------------------------------------
# Database fixtures: each test gets its own fresh SQLite DB
# ---------------------------------------------------------------------------

@pytest.fixture
async def test_db(tmp_path):
    """Provide a fresh SQLite database for each test."""
    import db.store as store

    db_file = tmp_path / "test.db"
    # Override the module-level DB_PATH and reset singleton
    store.DB_PATH = db_file
    store._db = None

    await store.init_db()
    yield store
    await store.close_db()


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

@pytest.fixture
def lesson_service():
    from lessons.service import LessonService
    return LessonService()


@pytest.fixture
def journal(lesson_service):
    from trading.trades import TradeJournal
    return TradeJournal(lesson_service)


# ---------------------------------------------------------------------------
# Sample data factories
# ---------------------------------------------------------------------------

def sample_trade(**overrides) -> dict:
    base = {
        "asset": "BTC",
        "direction": "long",
        "entry_price": 100.0,
        "position_size": 1000.0,
        "leverage": 1,
        "setup": "Breakout",
        "location": "dVWAP",
        "trigger": "reclaim",
        "session": "London",
        "initial_emotion": "calm",
    }
    base.update(overrides)
    return base


@pytest.fixture
def closed_trade(test_db):
    """Factory inserting a trade and closing it with a given outcome on a given date."""
    counter = {"n": 0}

    async def _make(outcome: str = "win", closed_on: str = "2026-01-05", pnl: float | None = None,
                    **overrides) -> dict:
        counter["n"] += 1
        opened_on = overrides.pop("opened_on", closed_on)
        trade = sample_trade(**overrides)
        trade["trade_number"] = f"{opened_on}-T{counter['n']}"
        trade["opened_at"] = f"{opened_on}T09:00:00+00:00"
        trade_id = await test_db.insert_trade(trade)
        if pnl is None:
            pnl = {"win": 50.0, "loss": -30.0}.get(outcome, 0.0)
        await test_db.close_trade(trade_id, {
            "exit_price": 105.0 if outcome == "win" else 97.0,
            "pnl": pnl,
            "pnl_percentage": pnl / 10,
            "outcome": outcome,
            "closed_at": f"{closed_on}T15:00:00+00:00",
        })
        return await test_db.get_trade(trade_id)

    return _make

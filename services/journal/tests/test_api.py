"""HTTP tests for the aiohttp journal API."""

import pytest
from aiohttp.test_utils import TestClient, TestServer

from api.server import JournalServer

pytestmark = pytest.mark.asyncio


@pytest.fixture
async def client(test_db, app_config):
    server = JournalServer(app_config)
    async with TestClient(TestServer(server.create_app())) as client:
        yield client


async def _create_breakout_lesson(client, **overrides) -> dict:
    body = {
        "title": "Wait for the retest",
        "content": "Breakouts without a retest fail too often",
        "conditions": {"setup": ["Breakout"]},
        "learned_at": "2026-01-03",
    }
    body.update(overrides)
    resp = await client.post("/api/lessons", json=body)
    assert resp.status == 201
    return await resp.json()


# ====================================================================
# Health
# ====================================================================

class TestHealth:
    async def test_healthy(self, client):
        resp = await client.get("/api/health")
        assert resp.status == 200
        body = await resp.json()
        assert body["status"] == "healthy"
        assert body["database"] == {"connected": True, "tables": 9}
        assert "success" not in body


# ====================================================================
# Lessons
# ====================================================================

class TestLessonsApi:
    async def test_create_returns_envelope(self, client):
        body = await _create_breakout_lesson(client)
        assert body["success"] is True
        assert body["data"]["status"] == "active"
        assert body["data"]["stats_before"]["total_trades"] == 0
        assert body["message"] == 'Lesson "Wait for the retest" created. Tracking performance from 2026-01-03.'

    async def test_create_requires_title(self, client):
        resp = await client.post("/api/lessons", json={"content": "no title"})
        assert resp.status == 400
        body = await resp.json()
        assert body == {"success": False, "error": "Missing required fields",
                        "message": "Title and content are required"}

    async def test_unknown_condition_rejected(self, client):
        resp = await client.post("/api/lessons", json={
            "title": "t", "content": "c", "conditions": {"weather": ["rain"]},
        })
        assert resp.status == 400
        assert (await resp.json())["error"] == "Invalid conditions"

    async def test_malformed_json(self, client):
        resp = await client.post("/api/lessons", data="{not json",
                                 headers={"Content-Type": "application/json"})
        assert resp.status == 400
        assert (await resp.json())["error"] == "Invalid JSON"

    async def test_get_missing_lesson(self, client):
        resp = await client.get("/api/lessons/999")
        assert resp.status == 404
        assert (await resp.json())["success"] is False

    async def test_invalid_lesson_id(self, client):
        resp = await client.get("/api/lessons/abc")
        assert resp.status == 400

    async def test_list_and_search(self, client):
        await _create_breakout_lesson(client)
        await _create_breakout_lesson(client, title="Size down on tilt", content="Losses make me oversize")

        resp = await client.get("/api/lessons", params={"search": "tilt"})
        body = await resp.json()
        assert [l["title"] for l in body["data"]] == ["Size down on tilt"]
        assert body["meta"]["total"] == 1

    async def test_categories(self, client):
        resp = await client.get("/api/lesson-categories")
        assert resp.status == 200
        assert (await resp.json())["success"] is True

    async def test_relevant(self, client):
        await _create_breakout_lesson(client)
        resp = await client.get("/api/lessons/relevant", params={"setup": "Breakout", "session": "London"})
        body = await resp.json()
        assert len(body["data"]) == 1
        assert body["data"][0]["relevance_score"] == 3
        assert body["data"][0]["matched_on"] == ["setup"]
        assert body["context"]["session"] == "London"

    async def test_validate(self, client, closed_trade):
        await closed_trade("loss", closed_on="2026-01-02", setup="Breakout")
        await closed_trade("loss", closed_on="2026-01-02", setup="Breakout")
        lesson = (await _create_breakout_lesson(client))["data"]
        assert lesson["stats_before"]["win_rate"] == 0.0

        for _ in range(5):
            await closed_trade("win", closed_on="2026-01-05", setup="Breakout")

        resp = await client.post(f"/api/lessons/{lesson['id']}/validate")
        assert resp.status == 200
        body = await resp.json()
        assert body["data"]["status"] == "validated"
        assert body["data"]["previous_status"] == "active"
        assert body["message"] == "Win rate improved by 100.0% (0.0% → 100.0%)"

    async def test_validate_without_conditions(self, client):
        resp = await client.post("/api/lessons", json={"title": "Journal daily", "content": "Every day"})
        lesson_id = (await resp.json())["data"]["id"]
        resp = await client.post(f"/api/lessons/{lesson_id}/validate")
        assert resp.status == 400
        assert (await resp.json())["error"] == "No conditions"

    async def test_archive(self, client):
        lesson = (await _create_breakout_lesson(client))["data"]
        resp = await client.delete(f"/api/lessons/{lesson['id']}")
        assert (await resp.json())["data"]["status"] == "archived"


# ====================================================================
# Trades
# ====================================================================

class TestTradesApi:
    async def test_create_attaches_relevant_lessons(self, client):
        await _create_breakout_lesson(client)
        resp = await client.post("/api/trades", json={
            "asset": "btc", "direction": "long", "entry_price": 97500, "setup": "Breakout",
        })
        assert resp.status == 201
        body = await resp.json()
        assert body["data"]["asset"] == "BTC"
        assert body["data"]["status"] == "open"
        assert [l["title"] for l in body["relevant_lessons"]] == ["Wait for the retest"]

    async def test_invalid_direction(self, client):
        resp = await client.post("/api/trades", json={"asset": "BTC", "direction": "sideways"})
        assert resp.status == 400

    async def test_close_twice_conflicts(self, client):
        created = await (await client.post("/api/trades", json={
            "asset": "ETH", "direction": "short", "entry_price": 3200, "position_size": 1000,
        })).json()
        trade_id = created["data"]["id"]

        resp = await client.post(f"/api/trades/{trade_id}/close", json={"exit_price": 3100})
        assert resp.status == 200
        body = await resp.json()
        assert body["data"]["outcome"] == "win"
        assert body["message"].startswith(f"Trade {created['data']['trade_number']} closed. WIN")

        resp = await client.post(f"/api/trades/{trade_id}/close", json={"exit_price": 3000})
        assert resp.status == 409
        assert (await resp.json())["error"] == "Trade is already closed"

    async def test_missing_trade(self, client):
        resp = await client.get("/api/trades/999")
        assert resp.status == 404
        assert await resp.json() == {"success": False, "error": "Trade not found",
                                     "message": "Trade 999 not found"}

    async def test_open_list(self, client):
        await client.post("/api/trades", json={"asset": "SOL", "direction": "long"})
        body = await (await client.get("/api/trades/open")).json()
        assert body["meta"]["count"] == 1

    async def test_add_update(self, client):
        created = await (await client.post("/api/trades", json={"asset": "SOL", "direction": "long"})).json()
        resp = await client.post(f"/api/trades/{created['data']['id']}/updates",
                                 json={"content": "moved stop to BE", "emotion": "calm"})
        assert resp.status == 201
        assert (await resp.json())["data"]["content"] == "moved stop to BE"


# ====================================================================
# Stats, config, export, chat
# ====================================================================

class TestStatsApi:
    async def test_by_setup(self, client, closed_trade):
        await closed_trade("win", setup="Breakout")
        await closed_trade("loss", setup="FOMO")
        body = await (await client.get("/api/stats/by-setup")).json()
        assert {row["setup"] for row in body["data"]} == {"Breakout", "FOMO"}

    async def test_by_invalid_field(self, client):
        resp = await client.get("/api/stats/by-pnl")
        assert resp.status == 400

    async def test_overview_bad_date(self, client):
        resp = await client.get("/api/stats/overview", params={"from": "yesterday"})
        assert resp.status == 400


class TestConfigApi:
    async def test_initialize_once(self, client):
        body = await (await client.post("/api/config/initialize")).json()
        assert body["initialized"] is True
        body = await (await client.post("/api/config/initialize")).json()
        assert body["initialized"] is False
        assert body["message"] == "Configuration already exists"

    async def test_get_and_delete_key(self, client):
        await client.post("/api/config", json={"setups": ["Breakout", "FOMO"]})
        body = await (await client.get("/api/config/setups")).json()
        assert body["data"] == {"setups": ["Breakout", "FOMO"]}

        resp = await client.delete("/api/config/setups")
        assert resp.status == 200
        resp = await client.get("/api/config/setups")
        assert resp.status == 404

    async def test_save_empty(self, client):
        resp = await client.post("/api/config", json={})
        assert resp.status == 400


class TestExportApi:
    async def test_csv(self, client, closed_trade):
        await closed_trade("win")
        resp = await client.get("/api/export/csv")
        assert resp.status == 200
        assert resp.content_type == "text/csv"
        lines = (await resp.text()).strip().splitlines()
        assert lines[0].startswith("trade_number,asset,direction")
        assert len(lines) == 2

    async def test_json(self, client, closed_trade):
        await closed_trade("win")
        await _create_breakout_lesson(client)
        body = await (await client.get("/api/export/json")).json()
        assert body["summary"]["total_trades"] == 1
        assert body["summary"]["total_lessons"] == 1
        assert body["trades"][0]["updates"] == []

    async def test_bad_date_filter(self, client):
        resp = await client.get("/api/export/csv", params={"from": "01/02/2026"})
        assert resp.status == 400


class TestChatApi:
    async def test_message(self, client):
        resp = await client.post("/api/chat/message", json={"message": "show stats"})
        assert resp.status == 200
        body = await resp.json()
        assert body["data"]["agent"] == "journal"
        assert body["data"]["intent"] == "show_stats"

        history = await (await client.get("/api/chat/history")).json()
        assert history["meta"]["count"] == 2

    async def test_empty_message(self, client):
        resp = await client.post("/api/chat/message", json={"message": "  "})
        assert resp.status == 400

    async def test_parse_only(self, client):
        body = await (await client.post("/api/chat/parse", json={"message": "close T1 at 98000"})).json()
        assert body["data"]["intent"] == "close_trade"
        assert body["data"]["data"]["exit_price"] == 98000.0

"""Tests for monitor/performance.py aggregate statistics."""

import pytest

from conftest import sample_trade
from errors import ValidationError
from monitor.performance import PerformanceTracker, expectancy, profit_ratio, win_rate

pytestmark = pytest.mark.asyncio


@pytest.fixture
def tracker():
    return PerformanceTracker()


class TestFormulas:
    def test_win_rate(self):
        assert win_rate([]) == 0.0
        assert win_rate([{"outcome": "win"}, {"outcome": "loss"}, {"outcome": "breakeven"}, {"outcome": "win"}]) == 50.0

    def test_profit_ratio(self):
        trades = [
            {"outcome": "win", "pnl_percentage": 6.0},
            {"outcome": "win", "pnl_percentage": 4.0},
            {"outcome": "loss", "pnl_percentage": -2.5},
        ]
        assert profit_ratio(trades) == pytest.approx(2.0)

    def test_profit_ratio_needs_both_sides(self):
        assert profit_ratio([{"outcome": "win", "pnl_percentage": 5.0}]) is None

    def test_expectancy(self):
        assert expectancy(50.0, 2.0) == pytest.approx(0.5)
        assert expectancy(50.0, None) is None


class TestOverview:
    async def test_empty(self, test_db, tracker):
        stats = await tracker.overview()
        assert stats["total_trades"] == 0
        assert stats["best_trade"] is None
        assert "No closed trades yet." in tracker.format_stats(stats)

    async def test_totals(self, test_db, tracker, closed_trade):
        await closed_trade("win", closed_on="2026-03-02", pnl=100.0)
        worst = await closed_trade("loss", closed_on="2026-03-02", pnl=-50.0)
        await closed_trade("breakeven", closed_on="2026-03-03", pnl=0.0)
        await test_db.insert_trade(sample_trade(trade_number="2026-03-04-T1", opened_at="2026-03-04T10:00:00+00:00"))

        stats = await tracker.overview()
        assert stats["total_trades"] == 3
        assert stats["wins"] == 1
        assert stats["losses"] == 1
        assert stats["breakeven"] == 1
        assert stats["open_trades"] == 1
        assert stats["total_pnl"] == pytest.approx(50.0)
        assert stats["win_rate"] == pytest.approx(100 / 3)
        assert stats["worst_trade"]["trade_number"] == worst["trade_number"]
        assert stats["profit_ratio"] == pytest.approx(2.0)

        text = tracker.format_stats(stats)
        assert "Trades: 3 closed / 1 open" in text
        assert "Total P&L: $+50.00" in text

    async def test_date_range(self, test_db, tracker, closed_trade):
        await closed_trade("win", closed_on="2026-03-01")
        await closed_trade("loss", closed_on="2026-03-05")
        stats = await tracker.overview(date_from="2026-03-02")
        assert stats["total_trades"] == 1
        assert stats["losses"] == 1

    async def test_invalid_range(self, test_db, tracker):
        with pytest.raises(ValidationError):
            await tracker.overview(date_from="last week")


class TestBreakdowns:
    async def test_by_setup(self, test_db, tracker, closed_trade):
        await closed_trade("win", setup="Breakout")
        await closed_trade("loss", setup="Breakout")
        await closed_trade("win", setup="Breakout")
        await closed_trade("win", setup="FOMO")

        rows = await tracker.by_field("setup")
        assert [r["setup"] for r in rows] == ["Breakout", "FOMO"]
        assert rows[0]["total_trades"] == 3
        assert rows[0]["win_rate"] == pytest.approx(200 / 3)

    async def test_by_invalid_field(self, test_db, tracker):
        with pytest.raises(ValidationError):
            await tracker.by_field("pnl")

    async def test_setup_detail(self, test_db, tracker, closed_trade):
        await closed_trade("win", setup="Breakout", location="dVWAP", closed_on="2026-03-01")
        await closed_trade("loss", setup="Breakout", location="wVWAP", closed_on="2026-03-02")
        await closed_trade("win", setup="Breakout", location="dVWAP", closed_on="2026-03-03")

        detail = await tracker.setup_detail("Breakout")
        assert detail["total_trades"] == 3
        assert detail["avg_position_size"] == pytest.approx(1000.0)
        assert detail["location_breakdown"][0] == {
            "location": "dVWAP", "total_trades": 2, "wins": 2, "win_rate": 100.0, "total_pnl": 100.0,
        }
        assert detail["recent_trades"][0]["closed_at"].startswith("2026-03-03")

    async def test_setup_detail_empty(self, test_db, tracker):
        detail = await tracker.setup_detail("Nothing")
        assert detail["total_trades"] == 0
        assert detail["message"] == "No closed trades found for this setup"

    async def test_emotions(self, test_db, tracker, closed_trade):
        await closed_trade("loss", initial_emotion="FOMO")
        await closed_trade("loss", initial_emotion="FOMO")
        await closed_trade("win", initial_emotion="calm")

        rows = await tracker.emotions()
        assert rows[0]["emotion"] == "FOMO"
        assert rows[0]["win_rate"] == 0.0
        assert rows[1] == {"emotion": "calm", "total_trades": 1, "wins": 1, "win_rate": 100.0, "total_pnl": 50.0}

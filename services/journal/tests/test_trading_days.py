"""Tests for trading/days.py (outlooks, reviews, review reminders)."""

import pytest

from conftest import sample_trade
from errors import NotFoundError, ValidationError
from trading.days import TradingDays
from trading.sessions import today_str

pytestmark = pytest.mark.asyncio


@pytest.fixture
def days():
    return TradingDays()


class TestOutlook:
    async def test_save_and_get(self, test_db, days):
        outlook = await days.save_outlook("2026-03-02", {
            "bias": "bullish",
            "bias_reasoning": "Reclaimed wVWAP",
            "key_levels": [{"price": 97000, "label": "dVAL"}],
            "setups": ["Breakout"],
        })
        assert outlook["bias"] == "bullish"
        assert outlook["setups"] == ["Breakout"]

        day = await days.get_day("2026-03-02")
        assert day["has_outlook"] == 1
        assert day["outlook"]["key_levels"][0]["label"] == "dVAL"
        assert day["review"] is None
        assert day["trades"] == []

    async def test_bias_required(self, test_db, days):
        with pytest.raises(ValidationError):
            await days.save_outlook("2026-03-02", {"bias_reasoning": "no bias"})

    async def test_bad_date(self, test_db, days):
        with pytest.raises(ValidationError):
            await days.save_outlook("March 2", {"bias": "bullish"})


class TestReview:
    async def test_totals_from_closed_trades(self, test_db, days, closed_trade):
        await closed_trade("win", closed_on="2026-03-02", pnl=120.0)
        await closed_trade("loss", closed_on="2026-03-02", pnl=-40.0)
        await closed_trade("win", closed_on="2026-03-03", pnl=999.0)

        review = await days.save_review("2026-03-02", {
            "execution_grade": "B",
            "emotional_grade": "a",
            "reflection": "Good patience",
            "trades_won": 99,
        })
        assert review["trades_won"] == 1
        assert review["trades_lost"] == 1
        assert review["total_pnl"] == pytest.approx(80.0)
        assert review["reflection"] == "Good patience"

    async def test_invalid_grade(self, test_db, days):
        with pytest.raises(ValidationError):
            await days.save_review("2026-03-02", {"execution_grade": "E"})

    async def test_check_review_needed(self, test_db, days):
        trade = sample_trade(trade_number="2026-03-01-T1", opened_at="2026-03-01T10:00:00+00:00")
        await test_db.insert_trade(trade)

        status = await days.check_review("2026-03-02")
        assert status["previous_date"] == "2026-03-01"
        assert status["had_trades"] is True
        assert status["needs_review"] is True
        assert "1 trade(s) on 2026-03-01" in status["message"]

        await days.save_review("2026-03-01", {"reflection": "done"})
        status = await days.check_review("2026-03-02")
        assert status["has_review"] is True
        assert status["needs_review"] is False

    async def test_check_review_no_trades(self, test_db, days):
        status = await days.check_review("2026-03-02")
        assert status["had_trades"] is False
        assert status["needs_review"] is False


class TestDays:
    async def test_today_placeholder_not_persisted(self, test_db, days):
        today = await days.today()
        assert today["date"] == today_str()
        assert today["id"] is None
        assert today["outlook"] is None
        assert await test_db.get_trading_day(today_str()) is None

    async def test_today_after_outlook(self, test_db, days):
        await days.save_outlook(today_str(), {"bias": "neutral"})
        today = await days.today()
        assert today["id"] is not None
        assert today["outlook"]["bias"] == "neutral"

    async def test_latest(self, test_db, days):
        assert await days.latest() is None
        await days.save_outlook("2026-03-01", {"bias": "bullish"})
        await days.save_outlook("2026-03-05", {"bias": "bearish"})
        latest = await days.latest()
        assert latest["date"] == "2026-03-05"
        assert latest["outlook"]["bias"] == "bearish"

    async def test_list_range(self, test_db, days):
        for d in ("2026-03-01", "2026-03-02", "2026-03-03"):
            await days.save_outlook(d, {"bias": "neutral"})
        items, total = await days.list_days("2026-03-02", "2026-03-03")
        assert total == 2
        assert [i["date"] for i in items] == ["2026-03-03", "2026-03-02"]

    async def test_get_missing(self, test_db, days):
        with pytest.raises(NotFoundError):
            await days.get_day("2026-03-02")

    async def test_delete(self, test_db, days):
        await days.save_outlook("2026-03-02", {"bias": "neutral"})
        await days.delete_day("2026-03-02")
        with pytest.raises(NotFoundError):
            await days.delete_day("2026-03-02")

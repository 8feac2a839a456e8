"""Natural-language chat router for the journal dashboard."""

from __future__ import annotations

import json
import logging
import re
from datetime import date, timedelta
from typing import Any

from ai.claude_caller import ModelTier, call_claude, is_configured
from config import AnthropicConfig, ChatConfig
from conversation import formatters as fmt
from conversation.intents import Intent, IntentParser
from db import store
from errors import ConflictError, NotFoundError, ValidationError
from lessons.service import LessonService, creation_message
from monitor.performance import PerformanceTracker
from trading.days import TradingDays
from trading.sessions import today_str
from trading.trades import TradeJournal

logger = logging.getLogger(__name__)

AGENT_NAME = "journal"
PERIOD_DAYS = {"week": 7, "month": 30}
LESSON_TITLE_CHARS = 50
SCREENSHOT_UNSUPPORTED = (
    "Screenshot analysis is not supported. Describe the trade instead, "
    "e.g. `open BTC long at 97500 10x`."
)


class ConversationRouter:
    """Parse chat messages, dispatch them to journal services and persist both turns."""

    def __init__(
        self,
        lessons: LessonService,
        trades: TradeJournal,
        days: TradingDays,
        performance: PerformanceTracker,
        anthropic_config: AnthropicConfig,
        chat_config: ChatConfig,
    ):
        self.lessons = lessons
        self.trades = trades
        self.days = days
        self.performance = performance
        self.anthropic = anthropic_config
        self.chat = chat_config
        self.parser = IntentParser(anthropic_config, chat_config)
        # Numbered suggestions offered on the last unmatched message, per source.
        self._last_suggestions: dict[str, list[str]] = {}

    async def handle_message(
        self,
        message: str,
        source: str = "dashboard",
        has_image: bool = False,
    ) -> dict[str, Any]:
        """Route one user message and persist both user/agent turns."""
        text = (message or "").strip()
        if not text and not has_image:
            return {"agent": AGENT_NAME, "intent": Intent.UNKNOWN.value,
                    "response": "Empty message.", "action_taken": None}

        await self._persist_turn(source, "user", text or "[image]")

        if not self.chat.conversation_enabled:
            out = {
                "agent": AGENT_NAME,
                "intent": Intent.UNKNOWN.value,
                "response": "Chat is disabled. Set CONVERSATION_ENABLED=true to turn it back on.",
                "action_taken": None,
            }
            await self._persist_turn(source, "agent", out["response"])
            return out

        text = self._resolve_suggestion(text, source)
        parsed = await self.parser.parse(text, has_image)
        try:
            result = await self._route(parsed, text, source)
        except (ValidationError, NotFoundError, ConflictError) as e:
            logger.info(f"[CHAT] {parsed['intent']} rejected: {e.message}")
            result = {"response": fmt.error(e.message), "action_taken": None}

        out = {"agent": AGENT_NAME, "intent": parsed["intent"], **result}
        await self._persist_turn(source, "agent", out["response"], out.get("action_taken"))
        return out

    async def history(self, source: str = "dashboard", limit: int | None = None) -> list[dict]:
        return await store.get_recent_conversations(source, limit or self.chat.conversation_max_history)

    async def _route(self, parsed: dict[str, Any], text: str, source: str) -> dict[str, Any]:
        intent = parsed["intent"]
        data = parsed.get("data") or {}

        if intent == Intent.OPEN_TRADE.value:
            return await self._open_trade(data)
        if intent == Intent.CLOSE_TRADE.value:
            return await self._close_trade(data)
        if intent == Intent.SHOW_OPEN_TRADES.value:
            return self._reply(fmt.open_trades(await self.trades.open_trades()))
        if intent == Intent.SHOW_TRADE_HISTORY.value:
            limit = self._as_int(data.get("limit"), 10)
            items, total = await self.trades.list_trades({"status": "closed"}, limit=limit)
            return self._reply(fmt.trade_history(items, total))
        if intent == Intent.SHOW_STATS.value:
            period = data.get("period") or "all"
            stats = await self.performance.overview(date_from=self._period_start(period))
            return self._reply(fmt.stats(stats, period))
        if intent == Intent.SHOW_TRADE.value:
            if not data.get("trade_id"):
                return self._reply(fmt.error("Please specify a trade ID (e.g., T1, T2)"))
            return self._reply(fmt.trade(await self.trades.get_trade(self._trade_ref(data["trade_id"]))))
        if intent == Intent.ADD_LESSON.value:
            return await self._add_lesson(data.get("content") or "")
        if intent == Intent.SHOW_LESSONS.value:
            items, _ = await self.lessons.list_lessons(limit=self._as_int(data.get("limit"), 10))
            return self._reply(fmt.lessons([i.to_dict() for i in items]))
        if intent == Intent.SEARCH_LESSONS.value:
            query = (data.get("query") or "").strip()
            items, _ = await self.lessons.list_lessons(search=query)
            if not items:
                return self._reply(f'No lessons found for "{query}"')
            return self._reply(fmt.lessons([i.to_dict() for i in items]))
        if intent == Intent.SHOW_SETUPS.value:
            return self._reply(fmt.setups(await store.get_config_value("setups") or []))
        if intent == Intent.SHOW_OUTLOOK.value:
            return self._reply(fmt.outlook(await self.days.today()))
        if intent == Intent.ANALYZE_SCREENSHOT.value:
            return self._reply(SCREENSHOT_UNSUPPORTED)
        if intent == Intent.LLM_QUERY.value:
            return await self._answer_question(data.get("query") or text, source)
        return self._reply(self._suggestions_text(text, source))

    # ── Trade actions ──────────────────────────────────────────────────

    async def _open_trade(self, data: dict[str, Any]) -> dict[str, Any]:
        if not data.get("asset"):
            return self._reply(fmt.error("Please specify the asset (e.g., BTC, ETH)"))
        if not data.get("direction"):
            return self._reply(fmt.error("Please specify direction (long or short)"))

        fields = {k: data.get(k) for k in ("asset", "direction", "entry_price", "position_size",
                                           "leverage", "setup", "location", "trigger", "initial_emotion")}
        trade, relevant = await self.trades.open_trade(fields)
        return {
            "response": fmt.trade_opened(trade, relevant),
            "action_taken": {"type": "open_trade", "trade_id": trade["id"], "trade_number": trade["trade_number"]},
        }

    async def _close_trade(self, data: dict[str, Any]) -> dict[str, Any]:
        if data.get("trade_id"):
            ref = self._trade_ref(data["trade_id"])
        else:
            open_trades = await self.trades.open_trades()
            if not open_trades:
                return self._reply(fmt.error("No open trades to close."))
            if len(open_trades) > 1:
                listing = "\n".join(
                    f"- {t['trade_number']}: {t['asset']} {t['direction']}" for t in open_trades
                )
                return self._reply(fmt.error(f"Multiple open trades. Please specify which one:\n{listing}"))
            ref = open_trades[0]["id"]

        if not data.get("exit_price"):
            return self._reply(fmt.error("Please specify the exit price (e.g., close T1 at 98000)"))

        trade, relevant, message = await self.trades.close_trade(ref, data["exit_price"])
        return {
            "response": fmt.trade_closed(message, relevant),
            "action_taken": {"type": "close_trade", "trade_id": trade["id"], "trade_number": trade["trade_number"]},
        }

    async def _add_lesson(self, content: str) -> dict[str, Any]:
        content = content.strip()
        if len(content) < 5:
            return self._reply(fmt.error("Please provide a lesson to save."))
        title = content[:LESSON_TITLE_CHARS] + ("..." if len(content) > LESSON_TITLE_CHARS else "")
        lesson = await self.lessons.create_lesson(title, content)
        return {
            "response": fmt.success(creation_message(lesson)),
            "action_taken": {"type": "add_lesson", "lesson_id": lesson.id},
        }

    # ── Open-ended questions ───────────────────────────────────────────

    async def _answer_question(self, question: str, source: str) -> dict[str, Any]:
        if not (self.chat.llm_enabled and is_configured(self.anthropic)):
            return self._reply(self._suggestions_text(question, source))

        try:
            context = await self._build_context()
            history = await self._prior_turns(source)
            system = (
                "You are a trading journal assistant. Answer the trader's question using only "
                "the journal data provided. Be concise and concrete; cite trade numbers, setups "
                "and lessons where relevant. If the data is insufficient, say so."
            )
            prompt = (
                f"QUESTION:\n{question}\n\n"
                "JOURNAL_CONTEXT_JSON:\n"
                f"{json.dumps(context, ensure_ascii=False, default=str)[:12000]}"
            )
            answer = await call_claude(self.anthropic, ModelTier.SONNET, prompt, system,
                                       max_tokens=1200, history=history)
        except Exception as exc:
            logger.warning(f"[CHAT] Claude answer failed, falling back to suggestions: {exc}")
            return self._reply(self._suggestions_text(question, source))

        return self._reply(self._sanitize_response(answer) if answer else self._suggestions_text(question, source))

    async def _prior_turns(self, source: str) -> list[dict]:
        """Recent turns before the message being answered, trimmed for the prompt."""
        rows = await store.get_recent_conversations(source, limit=min(12, self.chat.conversation_max_history))
        if rows and rows[-1].get("role") == "user":
            rows = rows[:-1]
        return [{"role": row.get("role"), "message": (row.get("message") or "")[:500]} for row in rows]

    async def _build_context(self) -> dict[str, Any]:
        active, _ = await self.lessons.list_lessons(status="active", limit=20)
        return {
            "today": today_str(),
            "overview": await self.performance.overview(),
            "by_setup": await self.performance.by_field("setup"),
            "by_session": await self.performance.by_field("session"),
            "emotions": await self.performance.emotions(),
            "open_trades": [
                {k: t.get(k) for k in ("trade_number", "asset", "direction", "entry_price", "setup", "session")}
                for t in await self.trades.open_trades()
            ],
            "active_lessons": [
                {"title": lesson.title, "conditions": lesson.conditions.to_dict() if lesson.conditions else None}
                for lesson in active
            ],
        }

    def _suggestions_text(self, query: str, source: str) -> str:
        q = (query or "").lower()
        if re.search(r"\b(trade|position|entry|exit|buy|sell|long|short)\b", q):
            context = "It sounds like you're asking about trades."
            suggestions = [
                ("show open trades", "see your current positions"),
                ("trade history", "see your past trades"),
                ("open BTC long at 97500", "enter a new trade"),
                ("close T1 at 98000", "close an existing trade"),
            ]
        elif re.search(r"\b(performance|stats|win|loss|profit|pnl)\b|how.*(doing|am i)", q):
            context = "It sounds like you want to check your performance."
            suggestions = [
                ("show stats", "see overall statistics"),
                ("win rate this week", "check recent win rate"),
                ("trade history", "review past trades"),
            ]
        elif re.search(r"\b(plan|outlook|today|tomorrow|bias|level|setup)\b", q):
            context = "It sounds like you're asking about your trading plan."
            suggestions = [
                ("outlook", "see today's trading plan"),
                ("key levels", "view important price levels"),
                ("show setups", "see available setup types"),
            ]
        elif re.search(r"\b(lesson|learn|remember|note|insight)\b", q):
            context = "It sounds like you want to work with lessons."
            suggestions = [
                ("show lessons", "see saved lessons"),
                ("lesson: [your insight]", "save a new lesson"),
                ("lessons about FOMO", "search for specific lessons"),
            ]
        else:
            context = "I'm not sure what you're looking for, but I can help with:"
            suggestions = [
                ("open trades", "see current positions"),
                ("outlook", "today's trading plan"),
                ("stats", "your performance"),
                ("show lessons", "see saved lessons"),
            ]

        self._last_suggestions[source] = [cmd for cmd, _ in suggestions]
        lines = [context, "", "Did you mean one of these?"]
        lines += [f'**{i}.** "{cmd}" - {desc}' for i, (cmd, desc) in enumerate(suggestions, 1)]
        lines += ["", f"Type a number (1-{len(suggestions)}) or rephrase your question!"]
        return "\n".join(lines)

    def _resolve_suggestion(self, text: str, source: str) -> str:
        """A bare number picks from the last suggestions; anything else clears them."""
        suggestions = self._last_suggestions.pop(source, [])
        if text.isdigit() and 1 <= int(text) <= len(suggestions):
            selected = suggestions[int(text) - 1]
            logger.debug(f"[CHAT] Suggestion {text} selected: {selected}")
            return selected
        return text

    # ── Helpers ────────────────────────────────────────────────────────

    async def _persist_turn(
        self,
        source: str,
        role: str,
        message: str,
        action_taken: dict[str, Any] | None = None,
    ) -> None:
        try:
            await store.insert_conversation_turn(
                {
                    "source": source,
                    "role": role,
                    "agent_name": AGENT_NAME,
                    "message": message,
                    "action_taken": json.dumps(action_taken, ensure_ascii=False) if action_taken else None,
                }
            )
        except Exception as exc:
            logger.debug(f"Failed to persist conversation turn: {exc}")

    @staticmethod
    def _reply(response: str) -> dict[str, Any]:
        return {"response": response, "action_taken": None}

    @staticmethod
    def _trade_ref(trade_id: Any) -> str:
        """Chat ids are today's sequence numbers: 3 -> ``T3``."""
        ref = str(trade_id).strip()
        return f"T{ref}" if ref.isdigit() else ref

    @staticmethod
    def _period_start(period: str) -> str | None:
        if period == "today":
            return today_str()
        if period in PERIOD_DAYS:
            return (date.fromisoformat(today_str()) - timedelta(days=PERIOD_DAYS[period])).isoformat()
        return None

    @staticmethod
    def _as_int(raw: Any, default: int) -> int:
        try:
            value = int(raw)
        except (TypeError, ValueError):
            return default
        return value if value > 0 else default

    @staticmethod
    def _sanitize_response(text: str) -> str:
        cleaned = (text or "").strip()
        if len(cleaned) > 3200:
            return cleaned[:3197] + "..."
        return cleaned

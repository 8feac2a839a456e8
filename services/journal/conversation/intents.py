"""Chat intent parsing: Claude first, regex rules and keywords as fallback."""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from ai.claude_caller import ModelTier, call_claude_json, is_configured
from config import AnthropicConfig, ChatConfig
from errors import ValidationError

logger = logging.getLogger(__name__)


class Intent(str, Enum):
    OPEN_TRADE = "open_trade"
    CLOSE_TRADE = "close_trade"
    SHOW_OPEN_TRADES = "show_open_trades"
    SHOW_TRADE_HISTORY = "show_trade_history"
    SHOW_STATS = "show_stats"
    SHOW_TRADE = "show_trade"
    ADD_LESSON = "add_lesson"
    SHOW_LESSONS = "show_lessons"
    SEARCH_LESSONS = "search_lessons"
    SHOW_SETUPS = "show_setups"
    SHOW_OUTLOOK = "show_outlook"
    ANALYZE_SCREENSHOT = "analyze_screenshot"
    LLM_QUERY = "llm_query"
    UNKNOWN = "unknown"


INTENT_VALUES = {i.value for i in Intent}

ASSET_ALIASES = {
    "bitcoin": "BTC",
    "btc": "BTC",
    "ethereum": "ETH",
    "eth": "ETH",
    "solana": "SOL",
    "sol": "SOL",
}

DIRECTION_ALIASES = {
    "long": "long",
    "buy": "long",
    "bought": "long",
    "short": "short",
    "sell": "short",
    "sold": "short",
}

# Uppercase tokens that look like tickers but are not.
_NOT_ASSETS = {"PNL", "TP", "SL", "OI", "MR", "PA", "HTF", "LTF", "VWAP", "USD", "USDT", "USDC", "ROI"}
_NUMBER = r"([\d,]+\.?\d*k?)"


def _result(intent: Intent, data: dict | None = None, confidence: float = 0.9) -> dict[str, Any]:
    return {"intent": intent.value, "data": data or {}, "confidence": confidence}


# ═══════════════════════════════════════════════════════════════════════
# EXTRACTORS
# ═══════════════════════════════════════════════════════════════════════

def parse_number(raw: str | None) -> float | None:
    """``97.5k`` -> 97500.0; strips ``$`` and thousands separators."""
    if not raw:
        return None
    cleaned = raw.lower().replace(",", "").replace("$", "")
    multiplier = 1000 if cleaned.endswith("k") else 1
    try:
        return float(cleaned.rstrip("k")) * multiplier
    except ValueError:
        return None


def extract_asset(text: str) -> str | None:
    lower = text.lower()
    for alias, asset in ASSET_ALIASES.items():
        if re.search(rf"\b{alias}\b", lower):
            return asset
    for match in re.finditer(r"\b([A-Z]{2,5})(?:-?PERP|-?USDT?|-?USD)?\b", text):
        if match.group(1) not in _NOT_ASSETS:
            return match.group(1)
    return None


def extract_direction(text: str) -> str | None:
    lower = text.lower()
    for alias, direction in DIRECTION_ALIASES.items():
        if re.search(rf"\b{alias}\b", lower):
            return direction
    return None


def extract_price(text: str, keyword: str = "at") -> float | None:
    match = re.search(rf"\b{keyword}\s*\$?{_NUMBER}", text, re.IGNORECASE)
    if match:
        return parse_number(match.group(1))
    # Any number that looks like a price
    for raw in re.findall(rf"\$?{_NUMBER}", text):
        value = parse_number(raw)
        if value is not None and value > 100:
            return value
    return None


def extract_trade_id(text: str) -> int | None:
    match = re.search(r"\bT(\d+)\b", text, re.IGNORECASE) or re.search(r"trade\s*#?(\d+)", text, re.IGNORECASE)
    return int(match.group(1)) if match else None


def extract_size(text: str) -> float | None:
    match = (
        re.search(rf"\b(?:size|for)\s*\$?{_NUMBER}", text, re.IGNORECASE)
        or re.search(rf"\$?{_NUMBER}\s*(?:usd|usdt|usdc|dollars?)\b", text, re.IGNORECASE)
    )
    if match:
        size = parse_number(match.group(1))
        if size and size < 1_000_000:
            return size
    return None


def extract_leverage(text: str) -> int | None:
    match = re.search(r"\b(\d+)x\b", text, re.IGNORECASE)
    return int(match.group(1)) if match else None


def _extract_open(text: str) -> dict:
    return {
        "asset": extract_asset(text),
        "direction": extract_direction(text),
        "entry_price": extract_price(text, "at") or extract_price(text, "entry"),
        "position_size": extract_size(text),
        "leverage": extract_leverage(text),
    }


def _extract_close(text: str) -> dict:
    return {
        "trade_id": extract_trade_id(text),
        "exit_price": extract_price(text, "at") or extract_price(text, "exit"),
    }


def _extract_limit(text: str) -> dict:
    match = re.search(r"last\s+(\d+)", text, re.IGNORECASE)
    return {"limit": int(match.group(1)) if match else 10}


def _extract_period(text: str) -> dict:
    if re.search(r"\btoday\b", text, re.IGNORECASE):
        return {"period": "today"}
    if re.search(r"\bweek\b", text, re.IGNORECASE):
        return {"period": "week"}
    if re.search(r"\bmonth\b", text, re.IGNORECASE):
        return {"period": "month"}
    return {"period": "all"}


def _extract_lesson(text: str) -> dict:
    match = re.search(r"(?:lesson|learned?|note to self|remember)\s*:?\s*(.+)", text, re.IGNORECASE)
    return {"content": match.group(1).strip() if match else text}


def _extract_query(text: str) -> dict:
    match = re.search(r"(?:about|for|on)\s+(.+)", text, re.IGNORECASE)
    return {"query": match.group(1).strip() if match else ""}


# ═══════════════════════════════════════════════════════════════════════
# RULES
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class IntentRule:
    intent: Intent
    patterns: tuple[re.Pattern, ...]
    extract: Callable[[str], dict] = lambda text: {}
    validate: Callable[[dict], bool] = lambda data: True
    requires_image: bool = False


def _rx(*patterns: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


RULES: list[IntentRule] = [
    IntentRule(
        Intent.OPEN_TRADE,
        _rx(
            r"\b(open|enter|buy|long|short|bought|sold)\b",
            r"\bnew trade\b",
            r"\bopened?\s+(?:a\s+)?(?:new\s+)?(long|short)",
        ),
        _extract_open,
        lambda d: bool(d["asset"] and d["direction"]),
    ),
    IntentRule(
        Intent.CLOSE_TRADE,
        _rx(
            r"\b(close|closed|exit|exited|tp|sl|stopped)\b.*\b(trade|position|T\d+)",
            r"\bclose\s+(T\d+|trade\s*#?\d+)",
            r"\b(T\d+|trade\s*#?\d+)\s+(?:hit\s+)?(tp|sl|stopped|closed)",
        ),
        _extract_close,
        lambda d: bool(d["trade_id"] or d["exit_price"]),
    ),
    IntentRule(
        Intent.SHOW_OPEN_TRADES,
        _rx(
            r"\b(show|list|get|what(?:'s| is| are)?|display)\s+(?:my\s+)?open\s+(?:trades?|positions?)",
            r"\bopen\s+(?:trades?|positions?)\b",
            r"\bcurrent\s+(?:trades?|positions?)\b",
            r"\bwhat(?:'s| am i)?\s+(?:in|holding|trading)",
        ),
    ),
    IntentRule(
        Intent.SHOW_TRADE_HISTORY,
        _rx(
            r"\b(show|list|get|display)\s+(?:my\s+)?(?:trade\s+)?history",
            r"\b(show|list|get|display)\s+(?:my\s+)?(?:past|closed|recent)\s+trades?",
            r"\blast\s+(\d+)?\s*trades?",
            r"\brecent\s+trades?\b",
            r"\btrade\s+history\b",
        ),
        _extract_limit,
    ),
    IntentRule(
        Intent.SHOW_STATS,
        _rx(
            r"\b(show|get|what(?:'s| is| are)?)\s+(?:my\s+)?(?:stats?|statistics?|performance|metrics?)",
            r"\bwin\s*rate\b",
            r"\bpnl\b",
            r"\bp&l\b",
            r"\bhow\s+(?:am i|did i)\s+(?:doing|perform)",
            r"\boverall\s+(?:stats?|performance)\b",
        ),
        _extract_period,
    ),
    IntentRule(
        Intent.SHOW_TRADE,
        _rx(
            r"\bshow\s+(?:me\s+)?(?:trade\s+)?#?T?(\d+)\b",
            r"\bT(\d+)\s+(?:details?|info)\b",
            r"\bdetails?\s+(?:for\s+)?(?:trade\s+)?#?T?(\d+)\b",
        ),
        lambda text: {"trade_id": extract_trade_id(text) or _first_int(text)},
        lambda d: bool(d["trade_id"]),
    ),
    IntentRule(
        Intent.ADD_LESSON,
        _rx(
            r"\b(?:add|save|create|new)\s+(?:a\s+)?lesson\b",
            r"\blesson\s*:\s*",
            r"\blearned?\s*:\s*",
            r"\bnote\s+to\s+self\b",
            r"\bremember\s*:\s*",
        ),
        _extract_lesson,
        lambda d: len(d["content"] or "") > 3,
    ),
    IntentRule(
        Intent.SEARCH_LESSONS,
        _rx(
            r"\b(?:search|find)\s+lessons?\s+(?:about|for|on)\s+(.+)",
            r"\blessons?\s+(?:about|for|on)\s+(.+)",
        ),
        _extract_query,
        lambda d: len(d["query"]) > 2,
    ),
    IntentRule(
        Intent.SHOW_LESSONS,
        _rx(
            r"\b(show|list|get|display)\s+(?:my\s+)?lessons?\b",
            r"\bwhat\s+(?:have i|did i)\s+learn",
            r"\bmy\s+lessons?\b",
        ),
        _extract_limit,
    ),
    IntentRule(
        Intent.SHOW_OUTLOOK,
        _rx(
            r"\boutlook\b",
            r"\b(?:today'?s\s+)?bias\b",
            r"\bkey\s+levels?\b",
            r"\bplan\s+(?:for\s+)?today\b",
        ),
    ),
    IntentRule(
        Intent.SHOW_SETUPS,
        _rx(
            r"\b(show|list|get|display)\s+(?:my\s+)?setups?\b",
            r"\bwhat\s+setups?\b",
            r"\bavailable\s+setups?\b",
        ),
    ),
    IntentRule(
        Intent.ANALYZE_SCREENSHOT,
        _rx(r"\b(analyze|extract|read|parse)\s+(?:this\s+)?(?:screenshot|image|chart)"),
        requires_image=True,
    ),
]

# Open-ended questions that need reasoning rather than a lookup
LLM_TRIGGERS = _rx(
    r"\bwhy\s+did\s+i\b",
    r"\bwhy\s+do\s+i\b",
    r"\bwhat\s+(?:setups?|patterns?)\s+work",
    r"\bwhen\s+(?:do i|should i)\b",
    r"\banalyze\s+my\b",
    r"\bcompare\b",
    r"\bcorrelation\b",
    r"\bpattern\b",
    r"\btrend\s+in\s+my\b",
    r"\badvice\b",
    r"\bsuggest\b",
    r"\bhelp\s+me\s+understand\b",
)


def _first_int(text: str) -> int | None:
    match = re.search(r"#?(\d+)", text)
    return int(match.group(1)) if match else None


def parse_rules(text: str | None, has_image: bool = False) -> dict[str, Any]:
    """Regex rule parser. Unmatched text becomes a low-confidence llm_query."""
    if not text or not text.strip():
        if has_image:
            return _result(Intent.ANALYZE_SCREENSHOT, confidence=0.9)
        return _result(Intent.UNKNOWN, confidence=0)

    normalized = text.strip()
    if any(trigger.search(normalized) for trigger in LLM_TRIGGERS):
        return _result(Intent.LLM_QUERY, {"query": normalized}, 0.8)

    for rule in RULES:
        if rule.requires_image and not has_image:
            continue
        if any(p.search(normalized) for p in rule.patterns):
            data = rule.extract(normalized)
            if rule.validate(data):
                return _result(rule.intent, data, 0.9)

    if has_image:
        return _result(Intent.ANALYZE_SCREENSHOT, {"text": normalized}, 0.8)
    return _result(Intent.LLM_QUERY, {"query": normalized}, 0.5)


def keyword_parse(message: str | None) -> dict[str, Any]:
    """Loose keyword matching for short messages like ``stats?`` or ``outlook``."""
    if not message:
        return _result(Intent.UNKNOWN, confidence=0)

    lower = message.lower()
    if re.search(r"\bopen\s+(trades?|positions?)\b", lower):
        return _result(Intent.SHOW_OPEN_TRADES, confidence=0.7)
    if re.search(r"\b(open|buy|bought|long|short|enter)\b", lower):
        return _result(Intent.OPEN_TRADE, confidence=0.5)
    if re.search(r"\b(close|exit|sold)\b", lower):
        return _result(Intent.CLOSE_TRADE, confidence=0.5)
    if re.search(r"\bhistory\b|\bpast\s+trades?\b", lower):
        return _result(Intent.SHOW_TRADE_HISTORY, {"limit": 10}, 0.7)
    if re.search(r"\b(stats?|win\s*rate|performance|pnl|p&l)\b", lower):
        return _result(Intent.SHOW_STATS, {"period": "all"}, 0.7)
    if re.search(r"\b(outlook|plans?|bias|levels?)\b", lower):
        return _result(Intent.SHOW_OUTLOOK, confidence=0.7)
    if re.search(r"\b(setups?|plans?)\s+(for|today|later|planned)\b", lower):
        return _result(Intent.SHOW_OUTLOOK, confidence=0.7)
    if re.search(r"\b(lessons?|learned?|remember|note)\b", lower):
        if re.search(r"\b(show|list|my)\b", lower):
            return _result(Intent.SHOW_LESSONS, {"limit": 10}, 0.6)
        return _result(Intent.ADD_LESSON, {"content": message}, 0.6)
    if re.search(r"\bsetups?\b", lower):
        return _result(Intent.SHOW_SETUPS, confidence=0.7)
    return _result(Intent.LLM_QUERY, {"query": message}, 0.5)


def fallback_parse(message: str | None, has_image: bool = False) -> dict[str, Any]:
    """Rules first; keywords only when no rule matched."""
    parsed = parse_rules(message, has_image)
    if parsed["intent"] == Intent.LLM_QUERY.value and parsed["confidence"] < 0.8:
        return keyword_parse(message)
    return parsed


# ═══════════════════════════════════════════════════════════════════════
# CLAUDE
# ═══════════════════════════════════════════════════════════════════════

INTENT_SCHEMA = """You are an intent parser for a trading journal application. Parse the user's message and return a JSON object with the intent and extracted data.

AVAILABLE INTENTS:

1. "open_trade" - User wants to open/enter a new trade
   Data: { asset: string, direction: "long"|"short", entry_price?: number, position_size?: number, leverage?: number }
   Examples: "open BTC long at 97500", "bought ETH", "entered a short on SOL"

2. "close_trade" - User wants to close/exit a trade
   Data: { trade_id?: number, exit_price?: number }
   Examples: "close T1 at 98000", "closed my BTC trade", "exited at 95k"

3. "show_open_trades" - User wants to see current open positions
   Data: {}
   Examples: "show open trades", "what am I holding?", "my positions"

4. "show_trade_history" - User wants to see past closed trades
   Data: { limit?: number }
   Examples: "trade history", "last 5 trades", "recent trades"

5. "show_stats" - User wants to see trading statistics/performance
   Data: { period?: "today"|"week"|"month"|"all" }
   Examples: "what's my win rate?", "show stats", "performance this week"

6. "show_trade" - User wants details on a specific trade
   Data: { trade_id: number }
   Examples: "show T1", "details for trade 5", "T3 info"

7. "add_lesson" - User wants to save a trading lesson/insight
   Data: { content: string }
   Examples: "lesson: don't chase price", "note to self: size down when anxious"

8. "show_lessons" - User wants to see saved lessons
   Data: { limit?: number }
   Examples: "show my lessons", "what have I learned?"

9. "search_lessons" - User wants to find specific lessons
   Data: { query: string }
   Examples: "lessons about FOMO", "find lessons on breakouts"

10. "show_setups" - User wants to see available trading setups
    Data: {}
    Examples: "show setups", "what setups do I have?"

11. "show_outlook" - User wants to see the daily outlook/plan
    Data: {}
    Examples: "daily outlook", "outlook?", "today's bias", "key levels"

12. "analyze_screenshot" - User wants to analyze an attached screenshot
    Data: {}

13. "llm_query" - Complex analysis question that needs reasoning
    Data: { query: string }
    Examples: "why do I keep losing on breakouts?", "what setups work best for me?"

14. "unknown" - Cannot determine intent
    Data: {}

PARSING RULES:
- Asset codes: BTC, ETH, SOL, etc. Expand "bitcoin" to BTC, "ethereum" to ETH
- Direction: "long"/"buy"/"bought" = long, "short"/"sell"/"sold" = short
- Price: Parse "97.5k" as 97500, remove $ and commas
- Trade IDs: "T1", "trade 1", "#1" all mean trade_id: 1
- Be generous with matching: "outlook?" is show_outlook, "stats?" is show_stats

RESPOND WITH ONLY valid JSON in this format:
{"intent": "intent_name", "data": { ... }, "confidence": 0.0-1.0}
"""


@dataclass
class IntentParser:
    anthropic: AnthropicConfig
    chat: ChatConfig
    tier: ModelTier = field(default=ModelTier.SONNET)

    @property
    def llm_ready(self) -> bool:
        return bool(self.chat.llm_enabled and is_configured(self.anthropic))

    async def parse(self, message: str | None, has_image: bool = False) -> dict[str, Any]:
        """Parse ``message`` into ``{intent, data, confidence}``."""
        text = (message or "").strip()
        if not text and not has_image:
            raise ValidationError("Message or image required", error="Missing message")
        if not text:
            return _result(Intent.ANALYZE_SCREENSHOT, confidence=0.9)

        if not self.llm_ready:
            logger.debug("[CHAT] Claude not configured, using fallback parsing")
            return fallback_parse(text, has_image)

        prompt = f'Parse this message: "{text}"' + (" (user has attached an image)" if has_image else "")
        try:
            parsed = await call_claude_json(self.anthropic, self.tier, prompt, INTENT_SCHEMA, max_tokens=256)
        except Exception as e:
            logger.error(f"[CHAT] Claude intent parse failed, using fallback: {e}")
            return fallback_parse(text, has_image)

        if not parsed or parsed.get("intent") not in INTENT_VALUES:
            logger.warning(f"[CHAT] Unusable intent from Claude ({parsed!r:.120}), using fallback")
            return fallback_parse(text, has_image)

        try:
            confidence = float(parsed.get("confidence") or 0.5)
        except (TypeError, ValueError):
            confidence = 0.5
        result = {
            "intent": parsed["intent"],
            "data": parsed.get("data") if isinstance(parsed.get("data"), dict) else {},
            "confidence": confidence,
        }
        logger.info(f"[CHAT] Parsed intent: {result['intent']} (confidence: {result['confidence']})")
        return result

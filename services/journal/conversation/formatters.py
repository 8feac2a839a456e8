"""Markdown replies for the journal chat."""

import re

_LESSON_MARKS = {"active": "✅", "validated": "🎯", "invalidated": "⚠️", "archived": "📦", "draft": "📝"}
_ABBREVIATIONS = {
    "MR": "Mean Reversion",
    "OI": "Open Interest",
    "PA": "Price Action",
    "HTF": "Higher Timeframe",
    "LTF": "Lower Timeframe",
    "SFP": "Swing Failure Pattern",
}


def currency(value, signed: bool = False) -> str:
    if value is None:
        return "-"
    sign = "+" if signed and value > 0 else ("-" if value < 0 else "")
    return f"{sign}${abs(value):,.2f}"


def percent(value, signed: bool = False) -> str:
    if value is None:
        return "-"
    return f"{value:+.1f}%" if signed else f"{value:.1f}%"


def short_time(iso: str | None) -> str:
    """``2026-03-01T14:32:10+00:00`` -> ``2026-03-01 14:32``."""
    if not iso:
        return "-"
    return iso.replace("T", " ")[:16]


def _direction(trade: dict) -> str:
    return "🟢 Long" if trade.get("direction") == "long" else "🔴 Short"


def error(message: str) -> str:
    return f"**Error:** {message}"


def success(message: str) -> str:
    return f"✅ {message}"


def trade(t: dict) -> str:
    pnl = (
        f"{currency(t['pnl'], True)} ({percent(t.get('pnl_percentage'), True)})"
        if t.get("pnl") is not None
        else ("Open" if t.get("status") == "open" else percent(t.get("pnl_percentage"), True))
    )
    lines = [
        f"## {t['trade_number']} {t['asset']} {_direction(t)}",
        "",
        "| Field | Value |",
        "|-------|-------|",
        f"| Entry | {currency(t.get('entry_price'))} |",
        f"| Size | {currency(t.get('position_size'))} |",
        f"| Leverage | {t.get('leverage') or '-'}x |",
        f"| Setup | {t.get('setup') or '-'} |",
        f"| Location | {t.get('location') or '-'} |",
        f"| Trigger | {t.get('trigger') or '-'} |",
        f"| Session | {t.get('session') or '-'} |",
        f"| Status | {t['status']} |",
        f"| P&L | {pnl} |",
        f"| Opened | {short_time(t.get('opened_at'))} |",
    ]
    if t.get("closed_at"):
        lines.append(f"| Closed | {short_time(t['closed_at'])} |")
    for update in t.get("updates") or []:
        note = update.get("content") or ""
        if update.get("emotion"):
            note = f"{note} ({update['emotion']})".strip()
        lines.append(f"- {short_time(update.get('created_at'))}: {note}")
    return "\n".join(lines)


def open_trades(trades: list[dict]) -> str:
    if not trades:
        return "No open trades right now."
    lines = [
        f"## Open Trades ({len(trades)})",
        "",
        "| # | Asset | Dir | Entry | Size | Setup |",
        "|---|-------|-----|-------|------|-------|",
    ]
    for t in trades:
        dir_mark = "🟢" if t["direction"] == "long" else "🔴"
        lines.append(
            f"| {t['trade_number']} | {t['asset']} | {dir_mark} | {currency(t.get('entry_price'))} | "
            f"{currency(t.get('position_size'))} | {t.get('setup') or '-'} |"
        )
    return "\n".join(lines)


def trade_history(trades: list[dict], total: int) -> str:
    if not trades:
        return "No trade history found."
    lines = [
        f"## Recent Trades ({len(trades)}/{total})",
        "",
        "| # | Asset | Dir | Entry | Exit | P&L | Closed |",
        "|---|-------|-----|-------|------|-----|--------|",
    ]
    for t in trades:
        dir_mark = "🟢" if t["direction"] == "long" else "🔴"
        mark = {"win": "✅", "loss": "❌"}.get(t.get("outcome"), "")
        lines.append(
            f"| {t['trade_number']} | {t['asset']} | {dir_mark} | {currency(t.get('entry_price'))} | "
            f"{currency(t.get('exit_price'))} | {currency(t.get('pnl'), True)} {mark} | "
            f"{short_time(t.get('closed_at'))} |"
        )
    return "\n".join(lines)


def stats(s: dict, period: str = "all") -> str:
    if not s or s.get("total_trades", 0) == 0:
        return "No closed trades yet. Start trading to see your performance!"
    title = "Trading Statistics" if period == "all" else f"Trading Statistics ({period})"
    lines = [
        f"## {title}",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Closed Trades | {s['total_trades']} |",
        f"| Open Trades | {s['open_trades']} |",
        f"| Win Rate | {percent(s['win_rate'])} |",
        f"| Wins / Losses / BE | {s['wins']} / {s['losses']} / {s['breakeven']} |",
        f"| Total P&L | {currency(s['total_pnl'], True)} |",
    ]
    if s.get("profit_ratio") is not None:
        lines.append(f"| Profit Ratio | {s['profit_ratio']:.2f}:1 |")
    if s.get("expectancy") is not None:
        lines.append(f"| Expectancy | {s['expectancy']:+.2f}R |")
    if s.get("best_trade"):
        lines.append(f"| Best Trade | {s['best_trade']['trade_number']} {currency(s['best_trade']['pnl'], True)} |")
    if s.get("worst_trade"):
        lines.append(f"| Worst Trade | {s['worst_trade']['trade_number']} {currency(s['worst_trade']['pnl'], True)} |")
    return "\n".join(lines)


def lesson(item: dict) -> str:
    mark = _LESSON_MARKS.get(item.get("status"), "")
    heading = " ".join(part for part in ("###", mark, item.get("title") or "Lesson") if part)
    lines = [heading, "", item.get("content") or ""]
    if item.get("category_name"):
        lines.append(f"**Category:** {item['category_name']}")
    conditions = item.get("conditions") or {}
    parts = [
        f"{key.capitalize()}: {', '.join(values)}"
        for key, values in conditions.items()
        if values
    ]
    if parts:
        lines.append(f"**Applies to:** {' | '.join(parts)}")
    if item.get("validation_note"):
        lines.append(f"**Validation:** {item['validation_note']}")
    lines.append(f"*Learned: {item.get('learned_at') or '-'}*")
    return "\n".join(lines)


def lessons(items: list[dict]) -> str:
    if not items:
        return "No lessons saved yet. Add lessons with: `lesson: [your insight]`"
    body = "\n\n---\n\n".join(lesson(i) for i in items)
    return f"## Your Lessons ({len(items)})\n\n{body}"


def relevant_lessons(items: list[dict]) -> str:
    if not items:
        return ""
    lines = ["**Relevant lessons:**"]
    for item in items:
        matched = ", ".join(item.get("matched_on") or [])
        lines.append(f"- {item['title']} (score {item['relevance_score']}: {matched})")
    return "\n".join(lines)


def setups(names: list) -> str:
    if not names:
        return "No setups configured yet."
    lines = ["## Available Setups", ""]
    for i, setup in enumerate(names, 1):
        lines.append(f"{i}. {setup if isinstance(setup, str) else setup.get('name')}")
    return "\n".join(lines)


def expand_abbreviations(text: str | None) -> str | None:
    if not text:
        return text
    for short, full in _ABBREVIATIONS.items():
        text = re.sub(rf"\b{short}\b", full, text)
    return text


def _levels(raw) -> dict:
    """Key levels as {name: price}; lists of {label, price} are accepted too."""
    if isinstance(raw, dict):
        return raw
    levels = {}
    for i, item in enumerate(raw or [], 1):
        if isinstance(item, dict):
            levels[item.get("label") or item.get("name") or f"level_{i}"] = item.get("price")
        else:
            levels[f"level_{i}"] = item
    return levels


def outlook(day: dict | None) -> str:
    data = (day or {}).get("outlook")
    if not data:
        return "No daily outlook set for today. Create one with your bias and key levels!"

    bias = (data.get("bias") or "").lower()
    bias_mark = {"bullish": "🟢", "bearish": "🔴"}.get(bias, "⚪")
    header = f"**Bias:** {bias_mark} {bias.upper() or 'Not set'}"
    if data.get("htf_bias"):
        header += f" (HTF: {data['htf_bias']})"
    lines = [f"## Daily Outlook ({day['date']})", "", header]
    if data.get("bias_reasoning"):
        lines.append(f"> {data['bias_reasoning']}")

    key_levels = _levels(data.get("key_levels"))
    if key_levels:
        lines += ["", "### Key Levels", "| Level | Price |", "|-------|-------|"]
        for name, price in key_levels.items():
            display = name.replace("_", " ").title()
            price_str = currency(price) if isinstance(price, (int, float)) else str(price)
            lines.append(f"| {display} | {price_str} |")

    planned = data.get("setups") or []
    if planned:
        lines += ["", "### Planned Setups"]
        for i, setup in enumerate(planned, 1):
            if isinstance(setup, str):
                lines.append(f"{i}. **{expand_abbreviations(setup)}**")
                continue
            line = f"{i}. **{expand_abbreviations(setup.get('name'))}**"
            if setup.get("location"):
                line += f" @ {setup['location']}"
            if setup.get("price"):
                line += f" ({currency(setup['price'])})"
            lines.append(line)
            if setup.get("pa_trigger"):
                lines.append(f"   - PA: {expand_abbreviations(setup['pa_trigger'])}")
            if setup.get("flow_trigger"):
                lines.append(f"   - Flow: {expand_abbreviations(setup['flow_trigger'])}")

    no_trade = data.get("no_trade_zone")
    if isinstance(no_trade, dict) and no_trade:
        line = f"**{no_trade.get('level', '-')}**"
        if no_trade.get("reason"):
            line += f" - {no_trade['reason']}"
        lines += ["", "### No Trade Zone", line]

    invalidation = data.get("invalidation")
    if isinstance(invalidation, dict) and invalidation:
        lines += ["", "### Invalidation"]
        if invalidation.get("range_to_bearish"):
            lines.append(f"- Bearish below: {currency(invalidation['range_to_bearish'])}")
        if invalidation.get("range_to_bullish"):
            lines.append(f"- Bullish above: {currency(invalidation['range_to_bullish'])}")
    return "\n".join(lines).strip()


def trade_opened(t: dict, relevant: list[dict]) -> str:
    text = (
        f"**Trade Opened** {_direction(t)}\n\n"
        f"| | |\n|---|---|\n"
        f"| Asset | **{t['asset']}** |\n"
        f"| Entry | {currency(t.get('entry_price'))} |\n"
        f"| Size | {currency(t.get('position_size'))} |\n"
        f"| Leverage | {t.get('leverage') or '-'}x |\n"
        f"| Session | {t.get('session') or '-'} |\n\n"
        f"Trade: {t['trade_number']}"
    )
    if relevant:
        text += "\n\n" + relevant_lessons(relevant)
    return text


def trade_closed(message: str, relevant: list[dict]) -> str:
    text = f"**{message}**"
    if relevant:
        text += "\n\n" + relevant_lessons(relevant)
    return text

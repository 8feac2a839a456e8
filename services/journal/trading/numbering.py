import re

from db import store

TRADE_NUMBER_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})-T(\d+)$")
SHORT_REF_RE = re.compile(r"^T(\d+)$", re.IGNORECASE)


async def next_trade_number(date_str: str) -> str:
    """``YYYY-MM-DD-T{n}`` with n one past the highest used that day."""
    sequence = await store.get_max_trade_sequence(date_str) + 1
    return f"{date_str}-T{sequence}"


def is_valid_trade_number(trade_number: str) -> bool:
    return bool(TRADE_NUMBER_RE.match(trade_number or ""))


def expand_short_ref(ref: str, date_str: str) -> str | None:
    """``T3`` -> ``{date}-T3``; anything else -> None."""
    match = SHORT_REF_RE.match((ref or "").strip())
    return f"{date_str}-T{int(match.group(1))}" if match else None

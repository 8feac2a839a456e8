"""Claude access for the journal chat.

Intent parsing and open-ended journal questions both go through
call_claude() / call_claude_json(). Prior chat turns can be passed as
``history`` and are sent as real user/assistant messages.
"""

import asyncio
import json
import logging
import re
from enum import Enum

import anthropic

from config import AnthropicConfig

logger = logging.getLogger(__name__)

# Stored conversation roles -> Messages API roles.
_ROLE_MAP = {"user": "user", "agent": "assistant", "assistant": "assistant"}


class ModelTier(str, Enum):
    OPUS = "opus"
    SONNET = "sonnet"
    HAIKU = "haiku"


def _resolve_model(config: AnthropicConfig, tier: ModelTier) -> str:
    """Map a ModelTier to the concrete model name from config."""
    if tier == ModelTier.SONNET:
        return config.model_sonnet
    elif tier == ModelTier.HAIKU:
        return config.model_haiku
    return config.model


def is_configured(anthropic_config: AnthropicConfig) -> bool:
    return bool(anthropic_config.api_key)


def build_messages(history: list[dict] | None, user_prompt: str) -> list[dict]:
    """Chat turns plus the new prompt as an alternating message list.

    Turns are ``{role, message}`` rows (``agent`` becomes ``assistant``).
    Unknown roles and empty turns are skipped, consecutive turns with the same
    role are merged, and leading assistant turns are dropped because the
    list must start with the user.
    """
    messages: list[dict] = []
    turns = [(row.get("role"), row.get("message") or row.get("content")) for row in history or []]
    turns.append(("user", user_prompt))
    for role, text in turns:
        role = _ROLE_MAP.get(role)
        if not role or not text:
            continue
        if not messages and role == "assistant":
            continue
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"] += f"\n\n{text}"
        else:
            messages.append({"role": role, "content": text})
    return messages


def _extract_json(text: str) -> dict | None:
    """Extract a JSON object from a Claude response, with regex fallback."""
    try:
        parsed = json.loads(text)
        return parsed if isinstance(parsed, dict) else None
    except (json.JSONDecodeError, TypeError):
        pass

    # Fenced code block first, then the outermost bare object
    for pattern in (r"```(?:json)?\s*\n?(.*?)\n?```", r"(\{.*\})"):
        match = re.search(pattern, text, re.DOTALL)
        if not match:
            continue
        try:
            parsed = json.loads(match.group(1))
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


async def call_claude(
    anthropic_config: AnthropicConfig,
    tier: ModelTier,
    user_prompt: str,
    system_prompt: str = "",
    max_tokens: int = 1024,
    history: list[dict] | None = None,
) -> str:
    """Single Messages API call; returns the concatenated text blocks.

    Returns "" without a key. SDK errors propagate to the caller, which
    decides on its own fallback. The synchronous client runs in a thread so
    the event loop keeps serving HTTP requests.
    """
    if not is_configured(anthropic_config):
        logger.warning("[CLAUDE] No Anthropic API key configured")
        return ""

    client_kwargs = {"api_key": anthropic_config.api_key}
    if anthropic_config.base_url:
        client_kwargs["base_url"] = anthropic_config.base_url
    client = anthropic.Anthropic(**client_kwargs)

    kwargs = {
        "model": _resolve_model(anthropic_config, tier),
        "max_tokens": max_tokens,
        "messages": build_messages(history, user_prompt),
    }
    if system_prompt:
        kwargs["system"] = system_prompt

    response = await asyncio.to_thread(client.messages.create, **kwargs)
    text = "".join(getattr(block, "text", "") or "" for block in response.content or [])
    logger.debug(f"[CLAUDE] {kwargs['model']}: {len(kwargs['messages'])} messages -> {len(text)} chars")
    return text


async def call_claude_json(
    anthropic_config: AnthropicConfig,
    tier: ModelTier,
    user_prompt: str,
    system_prompt: str = "",
    max_tokens: int = 1024,
) -> dict | None:
    """Call Claude and parse the reply as a JSON object (None if it is not one)."""
    text = await call_claude(anthropic_config, tier, user_prompt, system_prompt, max_tokens)
    if not text:
        return None
    return _extract_json(text)

"""Tests for the ai/claude_caller.py shared module."""

from unittest.mock import MagicMock, patch

import pytest

pytestmark = pytest.mark.asyncio


def _mock_client(text: str) -> MagicMock:
    mock_response = MagicMock()
    mock_response.content = [MagicMock(text=text)]
    mock_client = MagicMock()
    mock_client.messages.create = MagicMock(return_value=mock_response)
    return mock_client


# ====================================================================
# _extract_json
# ====================================================================

class TestExtractJson:
    def test_direct_json(self):
        from ai.claude_caller import _extract_json
        assert _extract_json('{"intent": "show_stats"}') == {"intent": "show_stats"}

    def test_json_in_code_block(self):
        from ai.claude_caller import _extract_json
        text = 'Sure:\n```json\n{"intent": "show_outlook", "data": {}}\n```\nDone'
        assert _extract_json(text) == {"intent": "show_outlook", "data": {}}

    def test_bare_json_object(self):
        from ai.claude_caller import _extract_json
        text = 'Parsed: {"intent": "close_trade", "data": {"trade_id": 1}, "confidence": 0.9}'
        result = _extract_json(text)
        assert result is not None
        assert result["data"]["trade_id"] == 1

    def test_list_is_not_an_object(self):
        from ai.claude_caller import _extract_json
        assert _extract_json('["show_stats"]') is None

    def test_invalid_json_returns_none(self):
        from ai.claude_caller import _extract_json
        assert _extract_json("no json here") is None

    def test_empty_string(self):
        from ai.claude_caller import _extract_json
        assert _extract_json("") is None


# ====================================================================
# build_messages
# ====================================================================

class TestBuildMessages:
    def test_prompt_only(self):
        from ai.claude_caller import build_messages
        assert build_messages(None, "hi") == [{"role": "user", "content": "hi"}]

    def test_agent_turns_become_assistant(self):
        from ai.claude_caller import build_messages
        history = [
            {"role": "user", "message": "show stats"},
            {"role": "agent", "message": "Win rate 55%"},
        ]
        assert build_messages(history, "why?") == [
            {"role": "user", "content": "show stats"},
            {"role": "assistant", "content": "Win rate 55%"},
            {"role": "user", "content": "why?"},
        ]

    def test_leading_assistant_dropped_and_same_roles_merged(self):
        from ai.claude_caller import build_messages
        history = [
            {"role": "agent", "message": "stale reply"},
            {"role": "user", "message": "first"},
            {"role": "system", "message": "ignored"},
            {"role": "user", "message": ""},
        ]
        assert build_messages(history, "second") == [{"role": "user", "content": "first\n\nsecond"}]


# ====================================================================
# _resolve_model
# ====================================================================

class TestResolveModel:
    def test_opus(self, anthropic_config):
        from ai.claude_caller import _resolve_model, ModelTier
        assert _resolve_model(anthropic_config, ModelTier.OPUS) == anthropic_config.model

    def test_sonnet(self, anthropic_config):
        from ai.claude_caller import _resolve_model, ModelTier
        assert _resolve_model(anthropic_config, ModelTier.SONNET) == anthropic_config.model_sonnet

    def test_haiku(self, anthropic_config):
        from ai.claude_caller import _resolve_model, ModelTier
        assert _resolve_model(anthropic_config, ModelTier.HAIKU) == anthropic_config.model_haiku


# ====================================================================
# call_claude
# ====================================================================

class TestCallClaude:
    async def test_returns_text(self, anthropic_config):
        from ai.claude_caller import call_claude, ModelTier

        mock_client = _mock_client("Hello trader")
        with patch("ai.claude_caller.anthropic") as mock_anthropic:
            mock_anthropic.Anthropic.return_value = mock_client
            result = await call_claude(anthropic_config, ModelTier.SONNET, "test prompt")

        assert result == "Hello trader"
        kwargs = mock_client.messages.create.call_args.kwargs
        assert kwargs["model"] == anthropic_config.model_sonnet
        assert kwargs["messages"] == [{"role": "user", "content": "test prompt"}]
        assert "system" not in kwargs

    async def test_base_url_passed_to_client(self, anthropic_config):
        from ai.claude_caller import call_claude, ModelTier

        anthropic_config.base_url = "https://proxy.example.com"
        with patch("ai.claude_caller.anthropic") as mock_anthropic:
            mock_anthropic.Anthropic.return_value = _mock_client("ok")
            await call_claude(anthropic_config, ModelTier.HAIKU, "test")

        mock_anthropic.Anthropic.assert_called_once_with(
            api_key="test-key", base_url="https://proxy.example.com",
        )

    async def test_no_api_key_returns_empty(self, offline_anthropic_config):
        from ai.claude_caller import call_claude, ModelTier

        with patch("ai.claude_caller.anthropic") as mock_anthropic:
            result = await call_claude(offline_anthropic_config, ModelTier.OPUS, "test")
        assert result == ""
        mock_anthropic.Anthropic.assert_not_called()

    async def test_system_prompt_passed(self, anthropic_config):
        from ai.claude_caller import call_claude, ModelTier

        mock_client = _mock_client("response")
        with patch("ai.claude_caller.anthropic") as mock_anthropic:
            mock_anthropic.Anthropic.return_value = mock_client
            await call_claude(
                anthropic_config, ModelTier.OPUS,
                "user msg", system_prompt="system msg", max_tokens=64,
            )

        kwargs = mock_client.messages.create.call_args.kwargs
        assert kwargs["system"] == "system msg"
        assert kwargs["max_tokens"] == 64

    async def test_history_sent_as_messages(self, anthropic_config):
        from ai.claude_caller import call_claude, ModelTier

        mock_client = _mock_client("ok")
        history = [{"role": "user", "message": "show stats"}, {"role": "agent", "message": "55%"}]
        with patch("ai.claude_caller.anthropic") as mock_anthropic:
            mock_anthropic.Anthropic.return_value = mock_client
            await call_claude(anthropic_config, ModelTier.SONNET, "why?", history=history)

        messages = mock_client.messages.create.call_args.kwargs["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]

    async def test_empty_content(self, anthropic_config):
        from ai.claude_caller import call_claude, ModelTier

        mock_response = MagicMock()
        mock_response.content = []
        mock_client = MagicMock()
        mock_client.messages.create = MagicMock(return_value=mock_response)
        with patch("ai.claude_caller.anthropic") as mock_anthropic:
            mock_anthropic.Anthropic.return_value = mock_client
            assert await call_claude(anthropic_config, ModelTier.OPUS, "test") == ""

    async def test_sdk_error_propagates(self, anthropic_config):
        from ai.claude_caller import call_claude, ModelTier

        mock_client = MagicMock()
        mock_client.messages.create = MagicMock(side_effect=RuntimeError("overloaded"))
        with patch("ai.claude_caller.anthropic") as mock_anthropic:
            mock_anthropic.Anthropic.return_value = mock_client
            with pytest.raises(RuntimeError):
                await call_claude(anthropic_config, ModelTier.OPUS, "test")


# ====================================================================
# call_claude_json
# ====================================================================

class TestCallClaudeJson:
    async def test_returns_parsed_json(self, anthropic_config):
        from ai.claude_caller import call_claude_json, ModelTier

        with patch("ai.claude_caller.anthropic") as mock_anthropic:
            mock_anthropic.Anthropic.return_value = _mock_client('{"intent": "show_stats", "confidence": 0.8}')
            result = await call_claude_json(anthropic_config, ModelTier.HAIKU, "test")

        assert result == {"intent": "show_stats", "confidence": 0.8}

    async def test_invalid_json_returns_none(self, anthropic_config):
        from ai.claude_caller import call_claude_json, ModelTier

        with patch("ai.claude_caller.anthropic") as mock_anthropic:
            mock_anthropic.Anthropic.return_value = _mock_client("not json at all")
            result = await call_claude_json(anthropic_config, ModelTier.HAIKU, "test")

        assert result is None

    async def test_no_api_key_returns_none(self, offline_anthropic_config):
        from ai.claude_caller import call_claude_json, ModelTier

        result = await call_claude_json(offline_anthropic_config, ModelTier.OPUS, "test")
        assert result is None

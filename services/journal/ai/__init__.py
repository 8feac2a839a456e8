"""Claude helpers for the journal chat."""

from ai.claude_caller import ModelTier, call_claude, call_claude_json, is_configured

__all__ = ["ModelTier", "call_claude", "call_claude_json", "is_configured"]

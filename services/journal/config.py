import os
from pathlib import Path
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()
PROJECT_ROOT = Path(__file__).resolve().parents[2]


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3001
    log_file: str = "logs/journal.log"

    def __post_init__(self):
        self.host = os.getenv("JOURNAL_HOST", "0.0.0.0")
        self.port = int(os.getenv("JOURNAL_PORT", 3001))
        self.log_file = os.getenv("JOURNAL_LOG_FILE", "logs/journal.log")


@dataclass
class AnthropicConfig:
    api_key: str = ""
    base_url: str = ""
    model: str = "claude-opus-4-6"
    model_sonnet: str = "claude-sonnet-4-6"
    model_haiku: str = "claude-haiku-4-5"

    def __post_init__(self):
        self.api_key = os.getenv("ANTHROPIC_API_KEY", "")
        self.base_url = os.getenv("ANTHROPIC_BASE_URL", "")
        self.model = os.getenv("ANTHROPIC_MODEL", "claude-opus-4-6")
        self.model_sonnet = os.getenv("ANTHROPIC_MODEL_SONNET", "claude-sonnet-4-6")
        self.model_haiku = os.getenv("ANTHROPIC_MODEL_HAIKU", "claude-haiku-4-5")
        # Placeholder keys from .env.example are treated as missing.
        if self.api_key == "your_api_key_here":
            self.api_key = ""


@dataclass
class ChatConfig:
    """Chat front-door parameters.

    The rule parser always runs; Claude is only consulted for intent parsing
    and open-ended questions when ``llm_enabled`` is set and a key exists.
    """
    conversation_enabled: bool = True
    conversation_max_history: int = 20
    llm_enabled: bool = True

    def __post_init__(self):
        self.conversation_enabled = os.getenv("CONVERSATION_ENABLED", "true").lower() in ("true", "1", "yes")
        self.conversation_max_history = int(os.getenv("CONVERSATION_MAX_HISTORY", 20))
        self.llm_enabled = os.getenv("CHAT_LLM_ENABLED", "true").lower() in ("true", "1", "yes")


@dataclass
class AppConfig:
    server: ServerConfig
    anthropic: AnthropicConfig
    chat: ChatConfig

    @classmethod
    def load(cls) -> "AppConfig":
        return cls(
            server=ServerConfig(),
            anthropic=AnthropicConfig(),
            chat=ChatConfig(),
        )

"""
Application settings with Pydantic validation.
Supports .env file and environment variable overrides.

Supported AI backends (one competition participant per backend):
    - claude    (Anthropic)
    - chatgpt   (OpenAI)
    - gemini    (Google)
    - deepseek  (OpenAI-compatible endpoint)
    - grok      (xAI, OpenAI-compatible endpoint)
    - kimi      (Moonshot, OpenAI-compatible endpoint)
    - qwen      (Alibaba DashScope, OpenAI-compatible endpoint)
    - ollama    (local open-source models, opt-in)
"""

from __future__ import annotations

from datetime import datetime, time, timezone
from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMProvider(str, Enum):
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    OPENAI = "openai"
    OPENAI_COMPATIBLE = "openai_compatible"
    OLLAMA = "ollama"


DEFAULT_UNIVERSE = {
    "1155.KL": "Maybank",
    "1023.KL": "CIMB",
    "5347.KL": "Tenaga Nasional",
    "1295.KL": "Public Bank",
    "5183.KL": "Petronas Chemicals",
    "6888.KL": "Axiata",
    "4863.KL": "Telekom Malaysia",
    "5225.KL": "IHH Healthcare",
    "7113.KL": "Top Glove",
    "4707.KL": "Nestle Malaysia",
    "1961.KL": "IOI Corp",
    "2445.KL": "Kuala Lumpur Kepong",
    "5819.KL": "Hong Leong Bank",
    "6033.KL": "Petronas Gas",
    "3182.KL": "Genting",
    "0166.KL": "Inari Amertron",
}


class Settings(BaseSettings):
    """Global application settings loaded from environment / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Anthropic (Claude) ---
    anthropic_api_key: str | None = Field(default=None, description="Anthropic API key")
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Anthropic model name",
    )

    # --- OpenAI (ChatGPT) ---
    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    openai_model: str = Field(default="gpt-4o", description="OpenAI model name")

    # --- Google (Gemini) ---
    google_api_key: str | None = Field(default=None, description="Google AI API key")
    google_model: str = Field(default="gemini-2.0-flash", description="Google Gemini model name")

    # --- DeepSeek ---
    deepseek_api_key: str | None = Field(default=None, description="DeepSeek API key")
    deepseek_model: str = Field(default="deepseek-chat")
    deepseek_base_url: str = Field(default="https://api.deepseek.com/v1")

    # --- xAI (Grok) ---
    xai_api_key: str | None = Field(default=None, description="xAI API key")
    xai_model: str = Field(default="grok-3")
    xai_base_url: str = Field(default="https://api.x.ai/v1")

    # --- Moonshot (Kimi) ---
    moonshot_api_key: str | None = Field(default=None, description="Moonshot API key")
    moonshot_model: str = Field(default="moonshot-v1-32k")
    moonshot_base_url: str = Field(default="https://api.moonshot.ai/v1")

    # --- Alibaba DashScope (Qwen) ---
    dashscope_api_key: str | None = Field(default=None, description="DashScope API key")
    dashscope_model: str = Field(default="qwen-plus")
    dashscope_base_url: str = Field(
        default="https://dashscope-intl.aliyuncs.com/compatible-mode/v1",
    )

    # --- Ollama (local open-source) ---
    ollama_enabled: bool = Field(
        default=False,
        description="Register a local Ollama participant backend",
    )
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server URL",
    )
    ollama_model: str = Field(
        default="llama3.1:8b",
        description="Ollama model name (must be pulled first)",
    )

    # --- Generation Parameters ---
    max_tokens: int = Field(default=4096, ge=256, description="Token budget per decision call")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="LLM temperature")

    # --- LLM Call Timeout ---
    model_timeout_seconds: float = Field(
        default=120.0, ge=0.0,
        description="Timeout in seconds for individual LLM calls (0 = no timeout)",
    )

    # --- Persistence ---
    db_path: str = Field(default="store/arena.db", description="SQLite ledger path")

    # --- Market ---
    market_data_provider: str = Field(default="Yahoo Finance", description="Quote, index and fundamentals source")
    market_timezone: str = Field(default="Asia/Kuala_Lumpur")
    market_open: time = Field(default=time(9, 0))
    lunch_start: time = Field(default=time(12, 30))
    lunch_end: time = Field(default=time(14, 30))
    market_close: time = Field(default=time(17, 0))
    stock_universe: list[str] = Field(default_factory=lambda: list(DEFAULT_UNIVERSE))
    stock_names: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_UNIVERSE))
    index_symbol: str = Field(default="^KLSE", description="FBM KLCI ticker")
    index_name: str = Field(default="FBM KLCI")
    default_index_level: float = Field(default=1580.0, description="Used when the index fetch fails")
    currency: str = Field(default="RM")
    news_feed_url: str = Field(
        default=(
            "https://news.google.com/rss/search?"
            "q=Bursa+Malaysia+stocks&hl=en-MY&gl=MY&ceid=MY:en"
        ),
    )
    news_limit: int = Field(default=5, ge=0, description="Headlines rendered into prompts")

    # --- Competition defaults (used by `init`) ---
    competition_name: str = Field(default="AI Trading Arena: Bursa Malaysia")
    initial_capital: float = Field(default=10_000.0, gt=0)
    trading_fee_pct: float = Field(default=0.15, ge=0, description="Fee as percent of gross value")
    min_trade_value: float = Field(default=100.0, ge=0)
    max_position_pct: float = Field(default=30.0, gt=0, le=100)
    competition_start: datetime = Field(
        default=datetime(2025, 12, 16, 1, 0, tzinfo=timezone.utc),
    )
    competition_end: datetime = Field(
        default=datetime(2026, 12, 15, 9, 0, tzinfo=timezone.utc),
    )

    # --- Prompt shaping ---
    competitor_limit: int = Field(default=6, ge=0, description="Competitors shown in awareness mode")
    recent_trades_limit: int = Field(default=10, ge=0, description="Trades loaded into context")

    # --- Application ---
    log_level: str = Field(default="INFO", description="Logging level")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    def api_key_for(self, env_name: str) -> str | None:
        """Return the configured key for an environment variable name, e.g. ``XAI_API_KEY``."""
        return getattr(self, env_name.lower(), None)


# Singleton instance
settings = Settings()

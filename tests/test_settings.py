"""Tests for settings loading and the model-config registry."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from config.settings import LLMProvider, Settings
from providers.base import build_model_configs


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        s = Settings(_env_file=None)
        assert s.trading_fee_pct == 0.15
        assert s.initial_capital == 10_000.0
        assert s.market_timezone == "Asia/Kuala_Lumpur"
        assert "1155.KL" in s.stock_universe
        assert s.ollama_enabled is False
        assert s.anthropic_api_key is None

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("XAI_API_KEY", "xai-test")
        monkeypatch.setenv("TRADING_FEE_PCT", "0.1")
        s = Settings(_env_file=None)
        assert s.api_key_for("XAI_API_KEY") == "xai-test"
        assert s.trading_fee_pct == 0.1

    def test_api_key_for_unknown(self):
        assert Settings(_env_file=None).api_key_for("NOPE_API_KEY") is None

    def test_rejects_out_of_range(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, max_position_pct=150)
        with pytest.raises(ValidationError):
            Settings(_env_file=None, temperature=3.0)


class TestModelConfigs:
    def test_cloud_backends(self):
        configs = build_model_configs(Settings(_env_file=None))
        assert set(configs) == {"claude", "chatgpt", "deepseek", "gemini", "grok", "kimi", "qwen"}
        assert configs["claude"].backend == LLMProvider.ANTHROPIC
        assert configs["grok"].backend == LLMProvider.OPENAI_COMPATIBLE
        assert configs["grok"].base_url == "https://api.x.ai/v1"
        assert configs["qwen"].api_key_env == "DASHSCOPE_API_KEY"

    def test_ollama_is_opt_in(self):
        configs = build_model_configs(Settings(_env_file=None, ollama_enabled=True))
        assert configs["ollama"].backend == LLMProvider.OLLAMA
        assert configs["ollama"].api_key_env is None

    def test_generation_params_flow_through(self):
        configs = build_model_configs(Settings(_env_file=None, max_tokens=1024, temperature=0.2))
        assert all(c.max_tokens == 1024 and c.temperature == 0.2 for c in configs.values())

"""
Tests for the provider adapters and router.

No network: vendor clients are replaced with MagicMocks, and router tests
use scripted fakes.
"""

from __future__ import annotations

import threading
import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from config.settings import LLMProvider, Settings
from conftest import FakeProvider, make_router
from orchestrator.__main__ import _cmd_providers
from providers.anthropic_provider import AnthropicProvider
from providers.base import ModelConfig, ProviderTimeoutError, call_with_timeout
from providers.google_provider import GoogleProvider
from providers.ollama_provider import OllamaProvider
from providers.openai_provider import OpenAIProvider
from providers.router import ProviderRouter, total_tokens


def _config(backend: LLMProvider, **kw) -> ModelConfig:
    defaults = dict(id="m", name="Model", provider="Vendor", backend=backend, model="model-1",
                    api_key_env="VENDOR_API_KEY")
    defaults.update(kw)
    return ModelConfig(**defaults)


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------

class TestAnthropicProvider:
    def test_chat_success(self):
        provider = AnthropicProvider(_config(LLMProvider.ANTHROPIC), api_key="sk-ant-test")
        client = MagicMock()
        client.messages.create.return_value = SimpleNamespace(
            content=[SimpleNamespace(type="text", text='{"actions": []}')],
            usage=SimpleNamespace(input_tokens=1200, output_tokens=300),
        )
        provider._client = client

        response = provider.chat("system", "user")

        assert response.success
        assert response.content == '{"actions": []}'
        assert response.tokens_used == 1500
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["system"] == "system"
        assert kwargs["messages"] == [{"role": "user", "content": "user"}]

    def test_sdk_error_becomes_failed_response(self):
        provider = AnthropicProvider(_config(LLMProvider.ANTHROPIC), api_key="sk-ant-test")
        provider._client = MagicMock()
        provider._client.messages.create.side_effect = RuntimeError("overloaded")

        response = provider.chat("system", "user")

        assert not response.success
        assert response.error == "overloaded"
        assert response.content == ""

    def test_missing_key_not_configured(self):
        provider = AnthropicProvider(_config(LLMProvider.ANTHROPIC, api_key_env="ANTHROPIC_API_KEY"))
        assert not provider.is_available()
        response = provider.chat("system", "user")
        assert not response.success
        assert response.error == "ANTHROPIC_API_KEY not configured"


class TestOpenAIProvider:
    def test_chat_success(self):
        provider = OpenAIProvider(
            _config(LLMProvider.OPENAI_COMPATIBLE, base_url="https://api.x.ai/v1"),
            api_key="xai-test",
        )
        client = MagicMock()
        client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="hello"))],
            usage=SimpleNamespace(total_tokens=42),
        )
        provider._client = client

        response = provider.chat("sys", "usr")

        assert response.success
        assert response.content == "hello"
        assert response.tokens_used == 42
        messages = client.chat.completions.create.call_args.kwargs["messages"]
        assert [m["role"] for m in messages] == ["system", "user"]

    def test_empty_choices(self):
        provider = OpenAIProvider(_config(LLMProvider.OPENAI), api_key="sk-test")
        provider._client = MagicMock()
        provider._client.chat.completions.create.return_value = SimpleNamespace(choices=[], usage=None)
        response = provider.chat("sys", "usr")
        assert response.success
        assert response.content == ""
        assert response.tokens_used == 0


class TestGoogleProvider:
    def test_chat_success(self):
        provider = GoogleProvider(_config(LLMProvider.GOOGLE), api_key="g-test")
        client = MagicMock()
        client.models.generate_content.return_value = SimpleNamespace(
            text="{}", usage_metadata=SimpleNamespace(total_token_count=77),
        )
        provider._client = client

        response = provider.chat("sys", "usr")

        assert response.tokens_used == 77
        config = client.models.generate_content.call_args.kwargs["config"]
        assert config["system_instruction"] == "sys"


class TestOllamaProvider:
    def test_available_without_key(self):
        provider = OllamaProvider(_config(LLMProvider.OLLAMA, api_key_env=None))
        assert provider.is_available()
        assert provider.credential_name == "OLLAMA_ENABLED"

    def test_chat_json_mode(self):
        provider = OllamaProvider(_config(LLMProvider.OLLAMA, api_key_env=None))
        client = MagicMock()
        client.chat.return_value = {
            "message": {"content": '{"actions": []}'},
            "prompt_eval_count": 900,
            "eval_count": 100,
        }
        provider._client = client

        response = provider.chat("sys", "usr")

        assert response.success
        assert response.tokens_used == 1000
        assert client.chat.call_args.kwargs["format"] == "json"


# ---------------------------------------------------------------------------
# Timeouts
# ---------------------------------------------------------------------------

class TestTimeout:
    def test_call_with_timeout_raises(self):
        release = threading.Event()
        with pytest.raises(ProviderTimeoutError):
            call_with_timeout(release.wait, 0.05, 5)
        release.set()

    def test_zero_means_no_deadline(self):
        assert call_with_timeout(lambda x: x * 2, 0, 21) == 42

    def test_slow_provider_reports_error(self):
        release = threading.Event()

        class SlowProvider(FakeProvider):
            def _complete(self, system_prompt, user_prompt):
                release.wait(5)
                return "late", 10

        provider = SlowProvider()
        provider.timeout_seconds = 0.05
        start = time.perf_counter()
        response = provider.chat("sys", "usr")
        elapsed = time.perf_counter() - start
        release.set()

        assert not response.success
        assert "timed out" in response.error
        assert elapsed < 2


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class TestProviderRouter:
    def test_unknown_model_raises(self):
        router = ProviderRouter(app_settings=Settings(_env_file=None))
        with pytest.raises(KeyError, match="Model not found: nope"):
            router.get("nope")

    def test_adapter_cached_per_id(self):
        router = ProviderRouter(app_settings=Settings(_env_file=None))
        assert router.get("claude") is router.get("claude")
        assert isinstance(router.get("claude"), AnthropicProvider)
        assert isinstance(router.get("grok"), OpenAIProvider)

    def test_keys_resolved_from_settings(self):
        router = ProviderRouter(app_settings=Settings(_env_file=None, xai_api_key="xai-test"))
        assert router.get("grok").is_available()
        assert router.get("grok").api_key == "xai-test"

    def test_status(self):
        router = make_router(FakeProvider("claude"), FakeProvider("gemini", available=False))
        status = {s.model_id: s.available for s in router.status()}
        assert status == {"claude": True, "gemini": False}

    def test_fan_out_preserves_order_and_failures(self):
        router = make_router(
            FakeProvider("claude", reply="a", tokens=10),
            FakeProvider("chatgpt", error=RuntimeError("rate limited")),
            FakeProvider("gemini", reply="c", tokens=30),
            FakeProvider("grok", available=False),
        )

        results = router.fan_out("sys", "usr")

        assert [r.model_id for r in results] == ["claude", "chatgpt", "gemini"]
        assert [r.response.success for r in results] == [True, False, True]
        assert results[1].response.error == "rate limited"
        assert total_tokens(results) == 40

    def test_fan_out_with_nothing_available(self):
        router = make_router(FakeProvider("claude", available=False))
        assert router.fan_out("sys", "usr") == []

    def test_connectivity_test(self):
        fake = FakeProvider("claude", reply='{"status": "OK"}', tokens=5)
        router = make_router(fake)
        response = router.test("claude")
        assert response.success
        assert "connectivity check" in fake.calls[0][0]

    def test_test_all_checks_every_available_backend(self):
        claude = FakeProvider("claude", reply='{"status": "OK"}', tokens=5)
        gemini = FakeProvider("gemini", error=RuntimeError("bad key"))
        router = make_router(claude, gemini, FakeProvider("grok", available=False))

        results = router.test_all()

        assert [r.model_id for r in results] == ["claude", "gemini"]
        assert [r.response.success for r in results] == [True, False]
        assert "connectivity check" in claude.calls[0][0]
        assert "connectivity check" in gemini.calls[0][0]

    def test_cli_connectivity_report(self, capsys):
        router = make_router(
            FakeProvider("claude", reply='{"status": "OK"}'),
            FakeProvider("gemini", error=RuntimeError("bad key")),
            FakeProvider("grok", available=False),
        )

        _cmd_providers(router, test=True)

        lines = capsys.readouterr().out.splitlines()
        assert " | OK " in lines[0]
        assert lines[1].endswith("FAILED: bad key")
        assert lines[2].rstrip().endswith("not configured")

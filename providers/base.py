"""
Provider contract shared by every AI backend.

Every adapter exposes the same two calls:
    is_available() → bool           credential present (no network)
    chat(system, user) → ProviderResponse   never raises

Vendor SDK details (auth, endpoints, payload shapes) live in the concrete
adapters. Failures of any kind, including a call running past the configured
timeout, come back as ``ProviderResponse(success=False, error=...)``.
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from pydantic import BaseModel

from config.settings import LLMProvider, Settings

logger = logging.getLogger(__name__)


class ProviderTimeoutError(Exception):
    """Raised inside an adapter when a call exceeds its deadline."""


class ProviderResponse(BaseModel):
    success: bool
    content: str = ""
    tokens_used: int = 0
    latency_ms: int = 0
    error: Optional[str] = None


class ModelConfig(BaseModel):
    """Static description of one competing backend."""

    id: str
    name: str
    provider: str
    backend: LLMProvider
    model: str
    api_key_env: Optional[str] = None
    base_url: Optional[str] = None
    max_tokens: int = 4096
    temperature: float = 0.7


def build_model_configs(s: Settings) -> dict[str, ModelConfig]:
    """The competing backends, keyed by model id, in registration order."""
    common = {"max_tokens": s.max_tokens, "temperature": s.temperature}
    configs = [
        ModelConfig(
            id="claude", name="Claude", provider="Anthropic",
            backend=LLMProvider.ANTHROPIC, model=s.anthropic_model,
            api_key_env="ANTHROPIC_API_KEY", **common,
        ),
        ModelConfig(
            id="chatgpt", name="ChatGPT", provider="OpenAI",
            backend=LLMProvider.OPENAI, model=s.openai_model,
            api_key_env="OPENAI_API_KEY", **common,
        ),
        ModelConfig(
            id="deepseek", name="DeepSeek", provider="DeepSeek",
            backend=LLMProvider.OPENAI_COMPATIBLE, model=s.deepseek_model,
            api_key_env="DEEPSEEK_API_KEY", base_url=s.deepseek_base_url, **common,
        ),
        ModelConfig(
            id="gemini", name="Gemini", provider="Google",
            backend=LLMProvider.GOOGLE, model=s.google_model,
            api_key_env="GOOGLE_API_KEY", **common,
        ),
        ModelConfig(
            id="grok", name="Grok", provider="xAI",
            backend=LLMProvider.OPENAI_COMPATIBLE, model=s.xai_model,
            api_key_env="XAI_API_KEY", base_url=s.xai_base_url, **common,
        ),
        ModelConfig(
            id="kimi", name="Kimi", provider="Moonshot",
            backend=LLMProvider.OPENAI_COMPATIBLE, model=s.moonshot_model,
            api_key_env="MOONSHOT_API_KEY", base_url=s.moonshot_base_url, **common,
        ),
        ModelConfig(
            id="qwen", name="Qwen", provider="Alibaba",
            backend=LLMProvider.OPENAI_COMPATIBLE, model=s.dashscope_model,
            api_key_env="DASHSCOPE_API_KEY", base_url=s.dashscope_base_url, **common,
        ),
    ]
    if s.ollama_enabled:
        configs.append(ModelConfig(
            id="ollama", name="Ollama", provider="Ollama (local)",
            backend=LLMProvider.OLLAMA, model=s.ollama_model,
            base_url=s.ollama_base_url, **common,
        ))
    return {c.id: c for c in configs}


def call_with_timeout(fn: Callable[..., Any], timeout_seconds: float, *args: Any) -> Any:
    """Run ``fn(*args)`` with a deadline. Raises ProviderTimeoutError on expiry.

    The worker thread is abandoned, not joined, when the deadline passes, so
    a hung backend cannot hold up the caller. ``timeout_seconds <= 0`` means
    no deadline.
    """
    if timeout_seconds <= 0:
        return fn(*args)

    pool = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    try:
        future = pool.submit(fn, *args)
        try:
            return future.result(timeout=timeout_seconds)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise ProviderTimeoutError(
                f"Call timed out after {timeout_seconds:.0f}s"
            ) from None
    finally:
        pool.shutdown(wait=False)


class AIProvider(ABC):
    """One AI backend behind the uniform chat contract."""

    def __init__(
        self,
        config: ModelConfig,
        api_key: str | None = None,
        timeout_seconds: float = 120.0,
    ):
        self.config = config
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._client: Any = None

    @property
    def name(self) -> str:
        return f"{self.config.name} ({self.config.provider})"

    @property
    def credential_name(self) -> str | None:
        """Environment variable holding this backend's credential, if it needs one."""
        return self.config.api_key_env

    def is_available(self) -> bool:
        return bool(self.api_key)

    def chat(self, system_prompt: str, user_prompt: str) -> ProviderResponse:
        """Send one system/user prompt pair. Never raises."""
        if not self.is_available():
            return ProviderResponse(
                success=False,
                error=f"{self.credential_name} not configured",
            )

        start = time.perf_counter()
        try:
            content, tokens = call_with_timeout(
                self._complete, self.timeout_seconds, system_prompt, user_prompt,
            )
        except Exception as e:
            latency_ms = int((time.perf_counter() - start) * 1000)
            error = str(e) or type(e).__name__
            logger.warning(f"{self.name} call failed after {latency_ms}ms: {error}")
            return ProviderResponse(success=False, latency_ms=latency_ms, error=error)

        latency_ms = int((time.perf_counter() - start) * 1000)
        logger.info(f"{self.name}: {tokens} tokens in {latency_ms}ms")
        return ProviderResponse(
            success=True,
            content=content or "",
            tokens_used=tokens or 0,
            latency_ms=latency_ms,
        )

    def client(self) -> Any:
        """The vendor SDK client, created on first use."""
        if self._client is None:
            self._client = self._create_client()
        return self._client

    @abstractmethod
    def _create_client(self) -> Any:
        ...

    @abstractmethod
    def _complete(self, system_prompt: str, user_prompt: str) -> tuple[str, int]:
        """Issue the vendor request. Returns (content, total tokens). May raise."""

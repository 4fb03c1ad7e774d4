"""
Provider router: model id → adapter instance.

A router is an ordinary object that callers create and pass around. Each
router builds an adapter at most once per model id, so tests can construct
their own router (or ``register`` fakes) without touching shared state.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

from pydantic import BaseModel

from config.settings import LLMProvider, Settings, settings
from providers.anthropic_provider import AnthropicProvider
from providers.base import AIProvider, ModelConfig, ProviderResponse, build_model_configs
from providers.google_provider import GoogleProvider
from providers.ollama_provider import OllamaProvider
from providers.openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[LLMProvider, type[AIProvider]] = {
    LLMProvider.ANTHROPIC: AnthropicProvider,
    LLMProvider.OPENAI: OpenAIProvider,
    LLMProvider.OPENAI_COMPATIBLE: OpenAIProvider,
    LLMProvider.GOOGLE: GoogleProvider,
    LLMProvider.OLLAMA: OllamaProvider,
}

CONNECTIVITY_SYSTEM_PROMPT = "You are a connectivity check. Answer with a single word."
CONNECTIVITY_USER_PROMPT = 'Reply with the JSON object {"status": "OK"} and nothing else.'


class ProviderStatus(BaseModel):
    model_id: str
    name: str
    provider: str
    model: str
    available: bool


class RoutedResponse(BaseModel):
    """One backend's answer in a fan-out."""

    model_id: str
    model_name: str
    provider: str
    response: ProviderResponse


class ProviderRouter:
    """Resolves model ids to cached adapters and fans prompts out to them."""

    def __init__(
        self,
        app_settings: Settings | None = None,
        configs: dict[str, ModelConfig] | None = None,
    ):
        self.settings = app_settings or settings
        self.configs = configs if configs is not None else build_model_configs(self.settings)
        self._cache: dict[str, AIProvider] = {}
        self._lock = threading.Lock()

    @property
    def model_ids(self) -> list[str]:
        return list(self.configs)

    def config(self, model_id: str) -> ModelConfig:
        """Raises KeyError for an unknown model id."""
        try:
            return self.configs[model_id]
        except KeyError:
            raise KeyError(f"Model not found: {model_id}") from None

    def get(self, model_id: str) -> AIProvider:
        """Return the adapter for ``model_id``, constructing it on first use."""
        with self._lock:
            provider = self._cache.get(model_id)
            if provider is None:
                provider = self._create(self.config(model_id))
                self._cache[model_id] = provider
            return provider

    def register(self, provider: AIProvider) -> None:
        """Install a ready-made adapter (replaces any cached one for its id)."""
        with self._lock:
            self.configs[provider.config.id] = provider.config
            self._cache[provider.config.id] = provider

    def _create(self, config: ModelConfig) -> AIProvider:
        cls = PROVIDER_CLASSES[config.backend]
        api_key = self.settings.api_key_for(config.api_key_env) if config.api_key_env else None
        logger.debug(f"Creating {cls.__name__} for {config.id} ({config.model})")
        return cls(
            config,
            api_key=api_key,
            timeout_seconds=self.settings.model_timeout_seconds,
        )

    def all(self) -> list[AIProvider]:
        return [self.get(model_id) for model_id in self.configs]

    def available(self) -> list[AIProvider]:
        return [p for p in self.all() if p.is_available()]

    def status(self) -> list[ProviderStatus]:
        return [
            ProviderStatus(
                model_id=p.config.id,
                name=p.config.name,
                provider=p.config.provider,
                model=p.config.model,
                available=p.is_available(),
            )
            for p in self.all()
        ]

    def fan_out(self, system_prompt: str, user_prompt: str) -> list[RoutedResponse]:
        """Send the same prompts to every available backend concurrently.

        Results come back in registration order, successes and failures alike.
        """
        providers = self.available()
        if not providers:
            logger.warning("No AI providers available. Check API key configuration.")
            return []

        logger.info(f"Fanning out to {len(providers)} providers")
        with ThreadPoolExecutor(max_workers=len(providers)) as pool:
            futures = [
                pool.submit(p.chat, system_prompt, user_prompt) for p in providers
            ]
            results = [
                RoutedResponse(
                    model_id=p.config.id,
                    model_name=p.config.name,
                    provider=p.config.provider,
                    response=f.result(),
                )
                for p, f in zip(providers, futures)
            ]

        failed = [r for r in results if not r.response.success]
        logger.info(
            f"Fan-out complete: {len(results) - len(failed)} successful, {len(failed)} failed"
        )
        for r in failed:
            logger.warning(f"{r.model_name} failed: {r.response.error}")
        return results

    def test(self, model_id: str) -> ProviderResponse:
        """Connectivity check for one backend with a tiny prompt."""
        return self.get(model_id).chat(CONNECTIVITY_SYSTEM_PROMPT, CONNECTIVITY_USER_PROMPT)

    def test_all(self) -> list[RoutedResponse]:
        """Connectivity check against every available backend at once."""
        return self.fan_out(CONNECTIVITY_SYSTEM_PROMPT, CONNECTIVITY_USER_PROMPT)


def total_tokens(results: list[RoutedResponse]) -> int:
    return sum(r.response.tokens_used for r in results)

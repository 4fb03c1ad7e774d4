"""
AI provider gateway: one adapter per competing backend behind a uniform
``is_available()`` / ``chat(system, user)`` contract, plus the router that
resolves model ids to adapters.
"""

from providers.base import (
    AIProvider,
    ModelConfig,
    ProviderResponse,
    ProviderTimeoutError,
    build_model_configs,
)
from providers.router import ProviderRouter, ProviderStatus, RoutedResponse

__all__ = [
    "AIProvider",
    "ModelConfig",
    "ProviderResponse",
    "ProviderRouter",
    "ProviderStatus",
    "ProviderTimeoutError",
    "RoutedResponse",
    "build_model_configs",
]

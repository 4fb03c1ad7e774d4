"""Market data provider lookup.

The provider is chosen by ``Settings.market_data_provider``; constructor
keywords (index ticker, feed URL, display names) come from settings too.

    provider = get_provider("Yahoo Finance", index_symbol="^KLSE")
"""

from __future__ import annotations

import importlib
import logging
from typing import Any

from tools.data_providers.base import MarketDataProvider

logger = logging.getLogger(__name__)

# display name -> (module path, class name); modules import lazily
_PROVIDERS: dict[str, tuple[str, str]] = {
    "Yahoo Finance": ("tools.data_providers.yahoo_provider", "YahooProvider"),
}

_provider_cache: dict[str, MarketDataProvider] = {}


def available_providers() -> list[str]:
    return list(_PROVIDERS)


def get_provider(name: str = "Yahoo Finance", **kwargs: Any) -> MarketDataProvider:
    """Return the provider registered under ``name``.

    Instances built without keywords are cached per name.

    Raises:
        ValueError: If no provider is registered under ``name``.
    """
    if name not in _PROVIDERS:
        raise ValueError(f"Unknown provider '{name}'. Available: {available_providers()}")

    if not kwargs and name in _provider_cache:
        return _provider_cache[name]

    module_path, cls_name = _PROVIDERS[name]
    cls = getattr(importlib.import_module(module_path), cls_name)
    instance = cls(**kwargs)
    if not kwargs:
        _provider_cache[name] = instance
    logger.debug(f"Market data provider ready: {name}")
    return instance


def clear_cache() -> None:
    _provider_cache.clear()

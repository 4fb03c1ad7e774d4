"""
Market data sources for Bursa Malaysia.

Providers return the typed models in ``tools.models``; the aggregator only
ever sees ``MarketDataProvider``.
"""

from tools.data_providers.base import MarketDataProvider
from tools.data_providers.factory import available_providers, clear_cache, get_provider

__all__ = [
    "MarketDataProvider",
    "available_providers",
    "clear_cache",
    "get_provider",
]

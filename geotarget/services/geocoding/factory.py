"""Factory for reverse geocoding providers."""

from typing import Optional

from ...core.config import Settings, settings as default_settings
from .base import ReverseGeocodingProvider
from .mock_provider import MockReverseGeocodingProvider
from .nominatim_provider import NominatimProvider


def create_reverse_geocoding_provider(
    provider_override: Optional[str] = None, config: Optional[Settings] = None
) -> ReverseGeocodingProvider:
    cfg = config or default_settings
    name = (provider_override or cfg.geocoding_provider or "nominatim").lower()
    provider: ReverseGeocodingProvider
    if name == "mock":
        provider = MockReverseGeocodingProvider()
    else:
        provider = NominatimProvider(cfg)
    return provider

from .base import ReverseGeocodedAddress, ReverseGeocodingProvider
from .factory import create_reverse_geocoding_provider
from .mock_provider import MockReverseGeocodingProvider
from .nominatim_provider import NominatimProvider

__all__ = [
    "MockReverseGeocodingProvider",
    "NominatimProvider",
    "ReverseGeocodedAddress",
    "ReverseGeocodingProvider",
    "create_reverse_geocoding_provider",
]

"""Mock reverse geocoding provider for unit tests (no network calls)."""

from typing import Optional

from ...schemas.location import AddressComponents
from .base import ReverseGeocodedAddress, ReverseGeocodingProvider


class MockReverseGeocodingProvider(ReverseGeocodingProvider):
    def __init__(self, address: Optional[AddressComponents] = None) -> None:
        # Deterministic default: central Riyadh
        self.address = address or AddressComponents(
            city="Riyadh",
            state="Riyadh Region",
            country="Saudi Arabia",
            country_code="sa",
        )
        self.calls: list[tuple[float, float]] = []

    async def reverse_geocode(self, lat: float, lng: float) -> Optional[ReverseGeocodedAddress]:
        self.calls.append((lat, lng))
        return ReverseGeocodedAddress(
            latitude=lat,
            longitude=lng,
            formatted_address=", ".join(
                part for part in (self.address.city, self.address.state, self.address.country) if part
            ),
            address=self.address,
            provider_id="mock:reverse",
            provider_data={"source": "mock"},
        )

"""Provider-agnostic reverse geocoding interfaces."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, Field

from ...schemas.location import AddressComponents


class ReverseGeocodedAddress(BaseModel):
    latitude: float
    longitude: float
    formatted_address: str = ""
    address: AddressComponents = Field(default_factory=AddressComponents)
    provider_id: str
    provider_data: dict[str, Any] = Field(default_factory=dict)


class ReverseGeocodingProvider(ABC):
    @abstractmethod
    async def reverse_geocode(self, lat: float, lng: float) -> Optional[ReverseGeocodedAddress]:
        """
        Resolve coordinates into address components.

        Returns None when the provider knows nothing about the point; raises
        on transport or provider failures.
        """

    async def aclose(self) -> None:
        return None

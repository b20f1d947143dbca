"""OpenStreetMap Nominatim reverse geocoding provider."""

import logging
from typing import Any, Optional

import httpx

from ...core.config import Settings, settings as default_settings
from ...core.exceptions import ExternalServiceException
from ...schemas.location import AddressComponents
from ..search.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from .base import ReverseGeocodedAddress, ReverseGeocodingProvider

logger = logging.getLogger(__name__)

REVERSE_GEOCODE_CIRCUIT = CircuitBreaker(
    name="nominatim_reverse",
    config=CircuitBreakerConfig(failure_threshold=3, timeout_seconds=120.0),
)


class NominatimProvider(ReverseGeocodingProvider):
    def __init__(
        self,
        config: Optional[Settings] = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        cfg = config or default_settings
        self.base_url = cfg.nominatim_url
        self.user_agent = cfg.nominatim_user_agent
        self.timeout = cfg.reverse_geocode_timeout_seconds
        self._transport = transport
        self._breaker = breaker or REVERSE_GEOCODE_CIRCUIT

    async def reverse_geocode(self, lat: float, lng: float) -> Optional[ReverseGeocodedAddress]:
        return await self._breaker.call(self._reverse, lat, lng)

    async def _reverse(self, lat: float, lng: float) -> Optional[ReverseGeocodedAddress]:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"User-Agent": self.user_agent, "Accept": "application/json"},
        ) as client:
            resp = await client.get(
                f"{self.base_url}/reverse",
                params={"format": "json", "lat": str(lat), "lon": str(lng)},
            )
        if resp.status_code != 200:
            raise ExternalServiceException(
                f"Nominatim reverse geocode returned {resp.status_code}",
                status_code=resp.status_code,
            )
        data = resp.json()
        if not isinstance(data, dict) or data.get("error"):
            # Nominatim answers 200 + {"error": "Unable to geocode"} for points it cannot place
            logger.info("Nominatim could not place %.4f,%.4f: %s", lat, lng, data)
            return None
        return self._parse(data, lat, lng)

    @staticmethod
    def _parse(data: dict[str, Any], lat: float, lng: float) -> ReverseGeocodedAddress:
        raw_address = data.get("address") or {}
        fields = {
            key: value
            for key, value in raw_address.items()
            if key in AddressComponents.model_fields and isinstance(value, str)
        }

        def _coord(value: Any, fallback: float) -> float:
            try:
                return float(value)
            except (TypeError, ValueError):
                return fallback

        place_id = data.get("place_id")
        return ReverseGeocodedAddress(
            latitude=_coord(data.get("lat"), lat),
            longitude=_coord(data.get("lon"), lng),
            formatted_address=data.get("display_name") or "",
            address=AddressComponents.model_validate(fields),
            provider_id=f"nominatim:{place_id}" if place_id is not None else "nominatim:",
            provider_data=data,
        )

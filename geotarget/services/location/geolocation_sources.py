"""
Position sources for the geolocation bootstrap.

A source produces one `Coordinates` fix or raises
`GeolocationPermissionDenied` / `GeolocationUnavailable`. The IP source is the
server-side stand-in for a browser fix: it looks the client address up with
ipapi.co and falls back to ip-api.com.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import ipaddress
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple

import httpx
from pydantic import ValidationError

from ...core.config import Settings
from ...core.exceptions import GeolocationPermissionDenied, GeolocationUnavailable
from ...schemas.location import Coordinates
from ..base import BaseService

logger = logging.getLogger(__name__)


class GeolocationSource(ABC):
    @abstractmethod
    async def get_position(self) -> Coordinates:
        """Return a position fix or raise a GeolocationError subclass."""


class StaticGeolocationSource(GeolocationSource):
    """
    Fixed answer. `coordinates=None` behaves like an unsupported device;
    `denied=True` like a user refusing the permission prompt.
    """

    def __init__(self, coordinates: Optional[Coordinates] = None, *, denied: bool = False) -> None:
        self.coordinates = coordinates
        self.denied = denied

    async def get_position(self) -> Coordinates:
        if self.denied:
            raise GeolocationPermissionDenied("Geolocation permission denied")
        if self.coordinates is None:
            raise GeolocationUnavailable("No position available")
        return self.coordinates


@dataclass(frozen=True)
class IpLookupProvider:
    """One JSON IP lookup endpoint and where its answer keeps the coordinates."""

    name: str
    url: str
    latitude_key: str
    longitude_key: str
    failed: Callable[[Dict[str, Any]], Optional[str]]


def _ipapi_failed(data: Dict[str, Any]) -> Optional[str]:
    return (data.get("reason") or "Unknown error") if data.get("error") else None


def _ip_api_com_failed(data: Dict[str, Any]) -> Optional[str]:
    return None if data.get("status") == "success" else (data.get("message") or "Unknown error")


# ipapi.co first (1000/day free), ip-api.com as fallback (1000/hour free)
DEFAULT_IP_PROVIDERS: Tuple[IpLookupProvider, ...] = (
    IpLookupProvider("ipapi.co", "https://ipapi.co/{ip}/json/", "latitude", "longitude", _ipapi_failed),
    IpLookupProvider("ip-api.com", "http://ip-api.com/json/{ip}", "lat", "lon", _ip_api_com_failed),
)


class IpGeolocationSource(BaseService, GeolocationSource):
    """Approximate position of a client IP address."""

    def __init__(
        self,
        ip_address: str,
        *,
        config: Optional[Settings] = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 5.0,
        providers: Sequence[IpLookupProvider] = DEFAULT_IP_PROVIDERS,
    ) -> None:
        super().__init__(config)
        self.ip_address = (ip_address or "").strip()
        self.providers = tuple(providers)
        self._transport = transport
        self._timeout = timeout

    @BaseService.measure_operation("ip_get_position")
    async def get_position(self) -> Coordinates:
        if not self._is_valid_ip(self.ip_address):
            raise GeolocationUnavailable(f"Invalid IP address: {self.ip_address!r}")
        if self._is_private_ip(self.ip_address):
            # Local and private networks have no public location.
            raise GeolocationUnavailable("Private IP address has no location")

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            for provider in self.providers:
                try:
                    coords = await self._lookup(client, provider)
                except (httpx.HTTPError, ValueError) as exc:
                    logger.warning("%s lookup failed: %s", provider.name, exc)
                    continue
                if coords is not None:
                    return coords

        raise GeolocationUnavailable(f"No IP geolocation provider could place {self.ip_address}")

    async def _lookup(self, client: httpx.AsyncClient, provider: IpLookupProvider) -> Optional[Coordinates]:
        response = await client.get(provider.url.format(ip=self.ip_address))
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("unexpected payload")

        reason = provider.failed(data)
        if reason:
            logger.warning("%s error: %s", provider.name, reason)
            return None
        try:
            return Coordinates(latitude=data[provider.latitude_key], longitude=data[provider.longitude_key])
        except (KeyError, ValidationError):
            logger.warning("%s answered without usable coordinates", provider.name)
            return None

    @staticmethod
    def _is_valid_ip(ip_address: str) -> bool:
        try:
            ipaddress.ip_address(ip_address)
            return True
        except ValueError:
            return False

    @staticmethod
    def _is_private_ip(ip_address: str) -> bool:
        try:
            ip = ipaddress.ip_address(ip_address)
            return ip.is_private or ip.is_loopback or ip.is_link_local
        except ValueError:
            return True


def client_ip_from_headers(headers: Mapping[str, str], remote_host: Optional[str] = None) -> str:
    """
    Extract the real client IP, handling proxies.

    Checks headers in order of preference:
    1. X-Forwarded-For (first entry is the original client)
    2. X-Real-IP (nginx)
    3. CF-Connecting-IP (Cloudflare)
    4. Remote address
    """
    lowered = {k.lower(): v for k, v in headers.items()}
    forwarded_for = lowered.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = lowered.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    cf_ip = lowered.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()

    return remote_host or "127.0.0.1"

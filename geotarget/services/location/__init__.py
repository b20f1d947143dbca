"""
Location services.

Hierarchy cache, session location state, slug resolution and the one-shot
geolocation bootstrap.
"""

from .geolocation_bootstrapper import GeolocationBootstrapper
from .geolocation_sources import (
    GeolocationSource,
    IpGeolocationSource,
    IpLookupProvider,
    StaticGeolocationSource,
    client_ip_from_headers,
)
from .hierarchy_store import LocationHierarchyStore
from .location_resolver import LocationResolver, ResolvedLocation, humanize_slug, normalize_slug
from .session_state import LocationSession

__all__ = [
    "GeolocationBootstrapper",
    "GeolocationSource",
    "IpGeolocationSource",
    "IpLookupProvider",
    "LocationHierarchyStore",
    "LocationResolver",
    "LocationSession",
    "ResolvedLocation",
    "StaticGeolocationSource",
    "client_ip_from_headers",
    "humanize_slug",
    "normalize_slug",
]

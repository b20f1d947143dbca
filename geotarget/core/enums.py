# geotarget/core/enums.py
"""
Core enums for the geotarget engine.

String-valued so they compare equal to the raw values the directory API
sends and serialize back unchanged.
"""

from enum import Enum


class LocationType(str, Enum):
    """Granularity of a resolved location, most specific first."""

    CITY = "city"
    REGION = "region"
    COUNTRY = "country"
    GLOBAL = "global"

    @property
    def specificity(self) -> int:
        """Higher is more specific: city=3, region=2, country=1, global=0."""
        return _SPECIFICITY[self]

    def broader(self) -> "LocationType | None":
        """Next less specific level, or None for GLOBAL."""
        index = _BROADENING_ORDER.index(self)
        if index + 1 >= len(_BROADENING_ORDER):
            return None
        return _BROADENING_ORDER[index + 1]


_BROADENING_ORDER = (
    LocationType.CITY,
    LocationType.REGION,
    LocationType.COUNTRY,
    LocationType.GLOBAL,
)

_SPECIFICITY = {
    LocationType.CITY: 3,
    LocationType.REGION: 2,
    LocationType.COUNTRY: 1,
    LocationType.GLOBAL: 0,
}


class HierarchyCollection(str, Enum):
    COUNTRIES = "countries"
    REGIONS = "regions"
    CITIES = "cities"


class AdPlacement(str, Enum):
    """Advertisement slots a page can request."""

    CATEGORY = "CATEGORY"
    TOP = "TOP"
    FOOTER = "FOOTER"


class SuggestionType(str, Enum):
    CATEGORY = "category"
    BUSINESS = "business"
    CITY = "city"
    REGION = "region"
    COUNTRY = "country"


class BootstrapState(str, Enum):
    """States of the one-shot geolocation bootstrap pipeline."""

    IDLE = "idle"
    ATTEMPT_PERMISSION = "attempt_permission"
    DENIED = "denied"
    UNAVAILABLE = "unavailable"
    GRANTED = "granted"
    REVERSE_GEOCODE = "reverse_geocode"
    MATCH_HIERARCHY = "match_hierarchy"
    FAILED = "failed"
    APPLY_DEFAULT = "apply_default"
    RESOLVED = "resolved"

    @property
    def is_terminal(self) -> bool:
        return self in (BootstrapState.APPLY_DEFAULT, BootstrapState.RESOLVED)

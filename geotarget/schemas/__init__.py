from .advertisement import Advertisement
from .business import (
    Business,
    BusinessPage,
    BusinessSearchFilters,
    BusinessSearchResult,
    Pagination,
)
from .location import (
    AddressComponents,
    City,
    CityRef,
    Coordinates,
    Country,
    LocationContext,
    LocationDescriptor,
    LocationRef,
    Region,
)
from .search import BusinessSuggestions, PlaceSuggestions, SearchSuggestion

__all__ = [
    "AddressComponents",
    "Advertisement",
    "Business",
    "BusinessPage",
    "BusinessSearchFilters",
    "BusinessSearchResult",
    "BusinessSuggestions",
    "City",
    "CityRef",
    "Coordinates",
    "Country",
    "LocationContext",
    "LocationDescriptor",
    "LocationRef",
    "Pagination",
    "PlaceSuggestions",
    "Region",
    "SearchSuggestion",
]

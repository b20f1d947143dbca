"""Content targeting: advertisement selection and location-scoped business search."""

from .advertisement_service import AdvertisementService, is_eligible, rank_advertisements
from .business_search_service import BusinessSearchService
from .location_chain import build_location_chain

__all__ = [
    "AdvertisementService",
    "BusinessSearchService",
    "build_location_chain",
    "is_eligible",
    "rank_advertisements",
]

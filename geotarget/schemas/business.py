"""Schemas for business listings and location-scoped business search."""

from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from ..core.enums import LocationType
from .base import ApiModel
from .location import LocationContext


class CategoryRef(ApiModel):
    id: str
    name: str
    slug: str
    icon: Optional[str] = None


class PlaceRef(ApiModel):
    id: str
    name: str
    slug: str


class GalleryImage(ApiModel):
    url: str
    alt: Optional[str] = None


class Business(ApiModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    logo: Optional[str] = None
    cover_image: Optional[str] = None
    images: List[GalleryImage] = Field(default_factory=list)
    average_rating: float = 0.0
    total_reviews: int = 0
    is_verified: bool = False
    status: Optional[str] = None
    category: Optional[CategoryRef] = None
    city: Optional[PlaceRef] = None
    distance: Optional[float] = None

    @field_validator("images", mode="before")
    @classmethod
    def _normalize_images(cls, value: Any) -> Any:
        # Gallery entries arrive either as plain URLs or as {url, alt} objects.
        if value is None:
            return []
        if isinstance(value, list):
            out = []
            for item in value:
                if isinstance(item, str):
                    if item:
                        out.append({"url": item})
                elif isinstance(item, dict) and item.get("url"):
                    out.append(item)
            return out
        return value


class Pagination(ApiModel):
    total: int = 0
    page: int = 1
    limit: int = 10
    total_pages: int = 0


class BusinessSearchFilters(ApiModel):
    """Non-location filters forwarded to `GET /api/businesses`."""

    category_ids: List[str] = Field(default_factory=list)
    search: Optional[str] = None
    rating: Optional[float] = None
    sort_by: Optional[str] = None
    order: Optional[str] = None
    page: int = 1
    limit: int = 10

    def to_query_params(
        self, location_id: Optional[str] = None, location_type: Optional[LocationType] = None
    ) -> Dict[str, str]:
        params: Dict[str, str] = {"page": str(self.page), "limit": str(self.limit)}
        if self.category_ids:
            params["categoryIds"] = ",".join(self.category_ids)
        if self.search:
            params["search"] = self.search
        if self.rating is not None:
            params["rating"] = str(self.rating)
        if self.sort_by:
            params["sortBy"] = self.sort_by
        if self.order:
            params["order"] = self.order
        if location_id and location_type and location_type is not LocationType.GLOBAL:
            params["locationId"] = location_id
            params["locationType"] = location_type.value
        return params


class BusinessPage(ApiModel):
    """One page of `GET /api/businesses` as the API returns it."""

    businesses: List[Business] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)
    location_context: Optional[LocationContext] = None


class BusinessSearchResult(ApiModel):
    businesses: List[Business] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)
    location_context: LocationContext

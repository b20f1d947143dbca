"""Schemas for unified (multi-entity) search suggestions."""

from typing import Any, List, Optional

from pydantic import Field

from ..core.enums import SuggestionType
from .base import ApiModel
from .business import CategoryRef, PlaceRef


class SearchSuggestion(ApiModel):
    """Normalized envelope for one heterogeneous search hit."""

    type: SuggestionType
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    icon: Optional[str] = None
    logo: Optional[str] = None
    category: Optional[CategoryRef] = None
    city: Optional[PlaceRef] = None
    region: Optional[PlaceRef] = None
    country: Optional[PlaceRef] = None
    region_id: Optional[str] = None
    country_id: Optional[str] = None
    average_rating: Optional[float] = None
    total_reviews: Optional[int] = None
    is_verified: Optional[bool] = None

    @classmethod
    def from_api(cls, suggestion_type: SuggestionType, raw: Any) -> Optional["SearchSuggestion"]:
        """Build from a raw API hit, forcing the group's type; None for unusable rows."""
        if not isinstance(raw, dict) or raw.get("id") is None or not raw.get("name"):
            return None
        payload = {**raw, "type": suggestion_type.value}
        payload.setdefault("slug", "")
        return cls.model_validate(payload)


class BusinessSuggestions(ApiModel):
    """Categories + businesses for a free-text query."""

    query: str = ""
    categories: List[SearchSuggestion] = Field(default_factory=list)
    businesses: List[SearchSuggestion] = Field(default_factory=list)

    @property
    def items(self) -> List[SearchSuggestion]:
        """Flattened, grouped: categories before businesses."""
        return [*self.categories, *self.businesses]

    @property
    def is_empty(self) -> bool:
        return not (self.categories or self.businesses)


class PlaceSuggestions(ApiModel):
    """Cities, regions and countries for a free-text query."""

    query: str = ""
    cities: List[SearchSuggestion] = Field(default_factory=list)
    regions: List[SearchSuggestion] = Field(default_factory=list)
    countries: List[SearchSuggestion] = Field(default_factory=list)

    @property
    def items(self) -> List[SearchSuggestion]:
        return [*self.cities, *self.regions, *self.countries]

    @property
    def is_empty(self) -> bool:
        return not (self.cities or self.regions or self.countries)

"""Advertisement schemas (read-only to the engine)."""

from datetime import datetime
from typing import Optional

from pydantic import model_validator

from ..core.enums import LocationType
from .base import FrozenApiModel


class Advertisement(FrozenApiModel):
    id: str
    title: str = ""
    image_url: Optional[str] = None
    target_url: Optional[str] = None
    # Kept as the raw API string: unknown types stay listable, they just never match a placement.
    ad_type: str
    category_id: Optional[str] = None
    city_id: Optional[str] = None
    region_id: Optional[str] = None
    country_id: Optional[str] = None
    is_active: bool = True
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _single_location_scope(self) -> "Advertisement":
        scopes = [s for s in (self.city_id, self.region_id, self.country_id) if s]
        if len(scopes) > 1:
            raise ValueError("advertisement may target at most one of city, region, country")
        return self

    @property
    def scope_type(self) -> LocationType:
        if self.city_id:
            return LocationType.CITY
        if self.region_id:
            return LocationType.REGION
        if self.country_id:
            return LocationType.COUNTRY
        return LocationType.GLOBAL

    @property
    def scope_id(self) -> Optional[str]:
        return self.city_id or self.region_id or self.country_id or None

"""Schemas for the geographic hierarchy and resolved locations."""

from typing import Any, List, Optional

from pydantic import Field, model_validator

from ..core.enums import LocationType
from .base import ApiModel, FrozenApiModel


class Country(FrozenApiModel):
    id: str
    name: str
    slug: str
    code: Optional[str] = None


class CityRef(FrozenApiModel):
    id: str
    name: str
    slug: str
    region_id: Optional[str] = None


class RegionRef(FrozenApiModel):
    id: str
    name: str
    slug: str


class Region(FrozenApiModel):
    id: str
    name: str
    slug: str
    country_id: Optional[str] = None
    cities: List[CityRef] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _normalize_country(cls, data: Any) -> Any:
        # Some endpoints embed `country: {id, ...}` instead of `countryId`.
        if isinstance(data, dict) and not (data.get("countryId") or data.get("country_id")):
            country = data.get("country")
            if isinstance(country, dict) and country.get("id") is not None:
                data = {**data, "countryId": country["id"]}
        return data


class City(FrozenApiModel):
    id: str
    name: str
    slug: str
    region_id: Optional[str] = None
    region: Optional[RegionRef] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_region(cls, data: Any) -> Any:
        # Older payloads only carry the embedded `region` object.
        if isinstance(data, dict) and not (data.get("regionId") or data.get("region_id")):
            region = data.get("region")
            if isinstance(region, dict) and region.get("id") is not None:
                data = {**data, "regionId": region["id"]}
        return data


class LocationRef(FrozenApiModel):
    id: Optional[str] = None
    type: LocationType
    name: str


class LocationDescriptor(FrozenApiModel):
    """
    The resolved, typed location used for every downstream lookup.

    `GLOBAL` carries no id and means "no geographic restriction".
    """

    type: LocationType
    id: Optional[str] = None
    slug: Optional[str] = None
    name: str
    region_id: Optional[str] = None
    country_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_id(self) -> "LocationDescriptor":
        if self.type is LocationType.GLOBAL:
            if self.id is not None:
                raise ValueError("global location must not carry an id")
        elif not self.id:
            raise ValueError(f"{self.type.value} location requires an id")
        return self

    @classmethod
    def global_(cls) -> "LocationDescriptor":
        return cls(type=LocationType.GLOBAL, name="All locations")

    @classmethod
    def from_city(cls, city: City | CityRef, *, country_id: Optional[str] = None) -> "LocationDescriptor":
        return cls(
            type=LocationType.CITY,
            id=city.id,
            slug=city.slug,
            name=city.name,
            region_id=city.region_id,
            country_id=country_id,
        )

    @classmethod
    def from_region(cls, region: Region) -> "LocationDescriptor":
        return cls(
            type=LocationType.REGION,
            id=region.id,
            slug=region.slug,
            name=region.name,
            region_id=region.id,
            country_id=region.country_id,
        )

    @classmethod
    def from_country(cls, country: Country) -> "LocationDescriptor":
        return cls(
            type=LocationType.COUNTRY,
            id=country.id,
            slug=country.slug,
            name=country.name,
            country_id=country.id,
        )

    @property
    def is_global(self) -> bool:
        return self.type is LocationType.GLOBAL

    def ref(self) -> LocationRef:
        return LocationRef(id=self.id, type=self.type, name=self.name)


class LocationContext(ApiModel):
    """Records whether a location-scoped search had to broaden beyond the request."""

    requested: LocationRef
    applied: Optional[LocationRef] = None
    fallback_applied: bool = False


class Coordinates(FrozenApiModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: Optional[float] = None


class AddressComponents(FrozenApiModel):
    """Reverse-geocoded address fields, named as OpenStreetMap reports them."""

    city: Optional[str] = None
    town: Optional[str] = None
    village: Optional[str] = None
    municipality: Optional[str] = None
    county: Optional[str] = None
    state_district: Optional[str] = None
    state: Optional[str] = None
    region: Optional[str] = None
    province: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None

    @property
    def city_like(self) -> List[str]:
        return _present(
            self.city,
            self.town,
            self.village,
            self.municipality,
            self.county,
            self.state_district,
        )

    @property
    def region_like(self) -> List[str]:
        return _present(self.state, self.region, self.province)

    @property
    def country_like(self) -> List[str]:
        return _present(self.country)


def _present(*values: Optional[str]) -> List[str]:
    out: List[str] = []
    for value in values:
        cleaned = (value or "").strip()
        if cleaned and cleaned not in out:
            out.append(cleaned)
    return out

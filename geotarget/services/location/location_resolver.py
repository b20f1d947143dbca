"""
Location resolver for URL slugs.

Turns a path segment into a typed LocationDescriptor, most specific first:
1) City: hierarchy cache exact slug match, then one remote slug lookup
2) Region: exact slug match over all regions (fetched once), with a
   representative city for city-keyed features
3) Country: exact slug match over all countries (fetched once)

Notes:
- A slug present at several levels resolves to the most specific one.
- Successful resolutions are memoized per slug; concurrent calls for the
  same slug share one in-flight resolution.
- Lookup failures degrade to "not found", never raise.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Dict, Optional, Union
from urllib.parse import unquote

from ...core.config import Settings
from ...core.enums import HierarchyCollection, LocationType
from ...core.exceptions import DirectoryApiError
from ...integrations.directory_client import DirectoryClient
from ...monitoring.prometheus_metrics import prometheus_metrics
from ...schemas.location import City, CityRef, Country, LocationDescriptor, Region
from ..base import BaseService
from .hierarchy_store import LocationHierarchyStore

logger = logging.getLogger(__name__)

RepresentativeCity = Union[City, CityRef]


@dataclass(frozen=True)
class ResolvedLocation:
    """Result of slug resolution."""

    resolved: bool = False
    not_found: bool = False

    descriptor: Optional[LocationDescriptor] = None
    # City standing in for a region/country when a city-level key is required
    representative_city: Optional[RepresentativeCity] = None

    method: str = "none"  # 'city_cache', 'city_remote', 'region', 'country', 'default', 'none'

    @property
    def kind(self) -> Optional[LocationType]:
        return self.descriptor.type if self.descriptor else None

    @classmethod
    def from_city(
        cls, city: City, *, method: str, country_id: Optional[str] = None
    ) -> "ResolvedLocation":
        return cls(
            resolved=True,
            descriptor=LocationDescriptor.from_city(city, country_id=country_id),
            representative_city=city,
            method=method,
        )

    @classmethod
    def from_region(
        cls, region: Region, representative_city: Optional[RepresentativeCity]
    ) -> "ResolvedLocation":
        return cls(
            resolved=True,
            descriptor=LocationDescriptor.from_region(region),
            representative_city=representative_city,
            method="region",
        )

    @classmethod
    def from_country(
        cls, country: Country, representative_city: Optional[RepresentativeCity]
    ) -> "ResolvedLocation":
        return cls(
            resolved=True,
            descriptor=LocationDescriptor.from_country(country),
            representative_city=representative_city,
            method="country",
        )

    @classmethod
    def from_default(cls, city: City, *, country_id: Optional[str] = None) -> "ResolvedLocation":
        return cls(
            resolved=True,
            descriptor=LocationDescriptor.from_city(city, country_id=country_id),
            representative_city=city,
            method="default",
        )

    @classmethod
    def from_not_found(cls) -> "ResolvedLocation":
        return cls(not_found=True, method="none")


def normalize_slug(slug: Optional[str]) -> str:
    return unquote(slug or "").strip().strip("/").lower()


def humanize_slug(slug: Optional[str]) -> str:
    """`makkah-region` -> `Makkah Region` (for not-found messaging)."""
    words = normalize_slug(slug).replace("_", "-").split("-")
    return " ".join(word[:1].upper() + word[1:] for word in words if word)


class LocationResolver(BaseService):
    """Resolves URL slugs against the location hierarchy."""

    def __init__(
        self,
        store: LocationHierarchyStore,
        client: Optional[DirectoryClient] = None,
        config: Optional[Settings] = None,
    ) -> None:
        super().__init__(config)
        self.store = store
        self.client = client or store.client
        self._memo: Dict[str, ResolvedLocation] = {}
        self._inflight: Dict[str, asyncio.Task[ResolvedLocation]] = {}

    @BaseService.measure_operation("resolve")
    async def resolve(self, slug: Optional[str]) -> ResolvedLocation:
        """
        Resolve a slug to a city, region or country.

        Never raises for unknown slugs or network failures; those return a
        `not_found` result.
        """
        normalized = normalize_slug(slug)
        if not normalized:
            return ResolvedLocation.from_not_found()

        cached = self._memo.get(normalized)
        if cached is not None:
            return cached

        task = self._inflight.get(normalized)
        if task is None:
            task = asyncio.create_task(self._resolve(normalized))
            self._inflight[normalized] = task
            task.add_done_callback(lambda done, key=normalized: self._clear_inflight(key, done))
        return await asyncio.shield(task)

    async def resolve_for_route(
        self, slug: Optional[str], *, is_default_route: bool = False
    ) -> ResolvedLocation:
        """
        Resolve for page routing. Off the default route an unresolved slug
        stays not-found (the caller renders 404); on it the hard default
        city is substituted.
        """
        result = await self.resolve(slug)
        if result.resolved or not is_default_route:
            return result
        return await self.resolve_default()

    async def resolve_default(self) -> ResolvedLocation:
        """Configured home city, else the first city, else not-found."""
        await self._ensure_loaded(HierarchyCollection.CITIES)
        city = self.store.default_city()
        if city is None:
            logger.warning("No cities available for the default location")
            prometheus_metrics.inc_location_resolution("none")
            return ResolvedLocation.from_not_found()
        prometheus_metrics.inc_location_resolution("default")
        return ResolvedLocation.from_default(
            city, country_id=self.store.country_id_for_region(city.region_id)
        )

    def clear(self) -> None:
        """Forget memoized resolutions (e.g. after a forced hierarchy refetch)."""
        self._memo.clear()

    # ------------------------------------------------------------------

    def _clear_inflight(self, slug: str, task: asyncio.Task[ResolvedLocation]) -> None:
        if self._inflight.get(slug) is task:
            del self._inflight[slug]

    async def _resolve(self, slug: str) -> ResolvedLocation:
        result = (
            await self._resolve_city(slug)
            or await self._resolve_region(slug)
            or await self._resolve_country(slug)
            or ResolvedLocation.from_not_found()
        )
        if result.resolved:
            self._memo[slug] = result
            logger.debug("Resolved slug '%s' via %s", slug, result.method)
        else:
            logger.info("Slug '%s' matched no city, region or country", slug)
        prometheus_metrics.inc_location_resolution(result.method)
        return result

    async def _resolve_city(self, slug: str) -> Optional[ResolvedLocation]:
        city = self.store.lookup_by_slug(HierarchyCollection.CITIES, slug)
        method = "city_cache"
        if city is None:
            method = "city_remote"
            try:
                city = await self.client.get_city_by_slug(slug)
            except DirectoryApiError as exc:
                logger.warning("Remote city lookup for '%s' failed: %s", slug, exc.message)
                city = None
            if city is not None:
                self.store.remember(HierarchyCollection.CITIES, city)
        if city is None:
            return None
        return ResolvedLocation.from_city(
            city, method=method, country_id=self.store.country_id_for_region(city.region_id)
        )

    async def _resolve_region(self, slug: str) -> Optional[ResolvedLocation]:
        if not await self._ensure_loaded(HierarchyCollection.REGIONS):
            return None
        region = self.store.lookup_by_slug(HierarchyCollection.REGIONS, slug)
        if region is None:
            return None
        await self._ensure_loaded(HierarchyCollection.CITIES)
        return ResolvedLocation.from_region(region, self.store.representative_city(region))

    async def _resolve_country(self, slug: str) -> Optional[ResolvedLocation]:
        if not await self._ensure_loaded(HierarchyCollection.COUNTRIES):
            return None
        country = self.store.lookup_by_slug(HierarchyCollection.COUNTRIES, slug)
        if country is None:
            return None
        await self._ensure_loaded(HierarchyCollection.CITIES)
        return ResolvedLocation.from_country(
            country, self.store.representative_city_for_country(country)
        )

    async def _ensure_loaded(self, collection: HierarchyCollection) -> bool:
        if self.store.is_loaded(collection):
            return True
        try:
            if collection is HierarchyCollection.COUNTRIES:
                await self.store.fetch_countries()
            elif collection is HierarchyCollection.REGIONS:
                await self.store.fetch_regions()
            else:
                await self.store.fetch_cities()
        except DirectoryApiError as exc:
            logger.warning("Could not load %s: %s", collection.value, exc.message)
            return False
        return True

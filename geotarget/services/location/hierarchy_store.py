"""
Location Hierarchy Store.

Session-lifetime cache of Countries, Regions and Cities, indexed by id and by
lower-cased slug. Each collection is fetched once; concurrent first fetches of
the same (collection, parent filter) share a single in-flight request.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from ...core.config import Settings
from ...core.enums import HierarchyCollection
from ...integrations.directory_client import DirectoryClient
from ...schemas.location import City, CityRef, Country, Region
from ..base import BaseService

logger = logging.getLogger(__name__)

HierarchyEntity = Union[Country, Region, City]
CollectionArg = Union[HierarchyCollection, str]
_CacheKey = Tuple[HierarchyCollection, Optional[str]]


class LocationHierarchyStore(BaseService):
    """Process-wide, read-mostly cache of the geographic hierarchy."""

    def __init__(self, client: DirectoryClient, config: Optional[Settings] = None) -> None:
        super().__init__(config)
        self.client = client
        self._by_id: Dict[HierarchyCollection, Dict[str, Any]] = {c: {} for c in HierarchyCollection}
        self._by_slug: Dict[HierarchyCollection, Dict[str, str]] = {
            c: {} for c in HierarchyCollection
        }
        self._loaded: Dict[_CacheKey, List[Any]] = {}
        self._inflight: Dict[_CacheKey, asyncio.Task[List[Any]]] = {}

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    @BaseService.measure_operation("fetch_countries")
    async def fetch_countries(self, *, force: bool = False) -> List[Country]:
        return await self._fetch(HierarchyCollection.COUNTRIES, None, self.client.list_countries, force)

    @BaseService.measure_operation("fetch_regions")
    async def fetch_regions(
        self, country_id: Optional[str] = None, *, force: bool = False
    ) -> List[Region]:
        if country_id and not force and self.is_loaded(HierarchyCollection.REGIONS):
            return [r for r in self.all(HierarchyCollection.REGIONS) if r.country_id == country_id]
        return await self._fetch(
            HierarchyCollection.REGIONS,
            country_id,
            lambda: self.client.list_regions(country_id),
            force,
        )

    @BaseService.measure_operation("fetch_cities")
    async def fetch_cities(self, region_id: Optional[str] = None, *, force: bool = False) -> List[City]:
        if region_id and not force and self.is_loaded(HierarchyCollection.CITIES):
            return self.cities_in_region(region_id)
        return await self._fetch(
            HierarchyCollection.CITIES,
            region_id,
            lambda: self.client.list_cities(region_id),
            force,
        )

    async def _fetch(
        self,
        collection: HierarchyCollection,
        parent_id: Optional[str],
        loader: Callable[[], Awaitable[Sequence[Any]]],
        force: bool,
    ) -> List[Any]:
        key: _CacheKey = (collection, parent_id)
        if not force and key in self._loaded:
            return list(self._loaded[key])

        task = self._inflight.get(key)
        if task is None or task.done():
            task = asyncio.create_task(self._load(key, loader))
            self._inflight[key] = task
            task.add_done_callback(lambda done, k=key: self._clear_inflight(k, done))
        else:
            self.logger.debug("Joining in-flight %s fetch (parent=%s)", collection.value, parent_id)

        # Shield: one caller being cancelled must not cancel the shared fetch.
        return list(await asyncio.shield(task))

    def _clear_inflight(self, key: _CacheKey, task: asyncio.Task[List[Any]]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            # Awaiters re-raise it; marking it retrieved avoids a spurious asyncio warning.
            logger.debug("Hierarchy fetch %s failed: %s", key, task.exception())

    async def _load(
        self, key: _CacheKey, loader: Callable[[], Awaitable[Sequence[Any]]]
    ) -> List[Any]:
        collection, parent_id = key
        items = list(await loader())
        if parent_id is None:
            self._reset(collection)
        self._index(collection, items)
        self._loaded[key] = items
        logger.info(
            "Loaded %d %s (parent=%s)", len(items), collection.value, parent_id or "all"
        )
        return items

    def _reset(self, collection: HierarchyCollection) -> None:
        # The full list replaces everything known about the collection.
        self._by_id[collection].clear()
        self._by_slug[collection].clear()
        for key in [k for k in self._loaded if k[0] is collection]:
            del self._loaded[key]

    def remember(self, collection: CollectionArg, item: HierarchyEntity) -> None:
        """Add a record fetched outside the list endpoints to the cache."""
        self._index(HierarchyCollection(collection), [item])

    def _index(self, collection: HierarchyCollection, items: Sequence[Any]) -> None:
        by_id = self._by_id[collection]
        by_slug = self._by_slug[collection]
        for item in items:
            by_id[item.id] = item
            slug_key = (item.slug or "").lower()
            if not slug_key:
                continue
            existing = by_slug.get(slug_key)
            if existing is None:
                by_slug[slug_key] = item.id
            elif existing != item.id:
                logger.warning(
                    "Duplicate %s slug '%s' (ids %s, %s); keeping the first",
                    collection.value,
                    slug_key,
                    existing,
                    item.id,
                )

    # ------------------------------------------------------------------
    # Queries (cache only, never hit the network)
    # ------------------------------------------------------------------

    def is_loaded(self, collection: CollectionArg) -> bool:
        """True once the unfiltered list of `collection` has been fetched."""
        return (HierarchyCollection(collection), None) in self._loaded

    def all(self, collection: CollectionArg) -> List[Any]:
        return list(self._by_id[HierarchyCollection(collection)].values())

    def get(self, collection: CollectionArg, entity_id: Optional[str]) -> Optional[Any]:
        if not entity_id:
            return None
        return self._by_id[HierarchyCollection(collection)].get(entity_id)

    def lookup_by_slug(self, collection: CollectionArg, slug: Optional[str]) -> Optional[Any]:
        """Case-insensitive exact slug match against the cache."""
        if not slug:
            return None
        coll = HierarchyCollection(collection)
        entity_id = self._by_slug[coll].get(slug.strip().lower())
        return self._by_id[coll].get(entity_id) if entity_id else None

    def find_by_name(self, collection: CollectionArg, name: Optional[str]) -> Optional[Any]:
        """Case-insensitive exact match on name, then on slug."""
        if not name:
            return None
        normalized = name.strip().lower()
        if not normalized:
            return None
        for item in self.all(collection):
            if item.name.strip().lower() == normalized:
                return item
        return self.lookup_by_slug(collection, normalized)

    def cities_in_region(self, region_id: Optional[str]) -> List[City]:
        if not region_id:
            return []
        return [c for c in self.all(HierarchyCollection.CITIES) if c.region_id == region_id]

    def cities_in_country(self, country_id: Optional[str]) -> List[City]:
        if not country_id:
            return []
        region_ids = {
            r.id for r in self.all(HierarchyCollection.REGIONS) if r.country_id == country_id
        }
        return [c for c in self.all(HierarchyCollection.CITIES) if c.region_id in region_ids]

    def representative_city(self, region: Optional[Region]) -> Optional[Union[City, CityRef]]:
        """
        City standing in for a region: first cached city in the region, else the
        head of the region's embedded city list, else None.
        """
        if region is None:
            return None
        cities = self.cities_in_region(region.id)
        if cities:
            return cities[0]
        if region.cities:
            return region.cities[0]
        return None

    def representative_city_for_country(self, country: Optional[Country]) -> Optional[Union[City, CityRef]]:
        if country is None:
            return None
        cities = self.cities_in_country(country.id)
        if cities:
            return cities[0]
        for region in self.all(HierarchyCollection.REGIONS):
            if region.country_id == country.id and region.cities:
                return region.cities[0]
        return None

    def country_id_for_region(self, region_id: Optional[str]) -> Optional[str]:
        region = self.get(HierarchyCollection.REGIONS, region_id)
        return region.country_id if region else None

    def default_city(self) -> Optional[City]:
        """Configured home city (name substring match), else the first city."""
        cities = self.all(HierarchyCollection.CITIES)
        if not cities:
            return None
        names = [n.strip().lower() for n in self.settings.default_city_names if n.strip()]
        for city in cities:
            city_name = city.name.lower()
            if any(name in city_name for name in names):
                return city
        return cities[0]

"""Ancestor chain (city -> region -> country ids) of a LocationDescriptor."""

import logging
from typing import Dict, Optional

from ...core.enums import HierarchyCollection, LocationType
from ...core.exceptions import DirectoryApiError
from ...schemas.location import LocationDescriptor
from ..location.hierarchy_store import LocationHierarchyStore

logger = logging.getLogger(__name__)

LocationChain = Dict[LocationType, str]

_COLLECTIONS = {
    LocationType.CITY: HierarchyCollection.CITIES,
    LocationType.REGION: HierarchyCollection.REGIONS,
    LocationType.COUNTRY: HierarchyCollection.COUNTRIES,
}


async def build_location_chain(
    location: LocationDescriptor, store: Optional[LocationHierarchyStore] = None
) -> LocationChain:
    """
    Map each level at or above `location` to its id.

    Links missing from the descriptor are looked up in the store, fetching a
    collection at most once. Levels that still cannot be determined are
    left out.
    """
    chain: LocationChain = {}
    if location.is_global or not location.id:
        return chain
    chain[location.type] = location.id

    if location.type is LocationType.CITY:
        region_id = location.region_id
        if not region_id and store is not None:
            city = await _lookup(store, HierarchyCollection.CITIES, location.id)
            region_id = city.region_id if city else None
        if region_id:
            chain[LocationType.REGION] = region_id

    if location.type in (LocationType.CITY, LocationType.REGION):
        country_id = location.country_id
        region_id = chain.get(LocationType.REGION)
        if not country_id and region_id and store is not None:
            region = await _lookup(store, HierarchyCollection.REGIONS, region_id)
            country_id = region.country_id if region else None
        if country_id:
            chain[LocationType.COUNTRY] = country_id

    return chain


def location_name(
    store: Optional[LocationHierarchyStore],
    location_type: LocationType,
    location_id: Optional[str],
    default: str = "",
) -> str:
    if location_type is LocationType.GLOBAL:
        return LocationDescriptor.global_().name
    if store is None:
        return default
    entity = store.get(_COLLECTIONS[location_type], location_id)
    return entity.name if entity else default


async def _lookup(store: LocationHierarchyStore, collection: HierarchyCollection, entity_id: str):
    entity = store.get(collection, entity_id)
    if entity is not None or store.is_loaded(collection):
        return entity
    try:
        if collection is HierarchyCollection.CITIES:
            await store.fetch_cities()
        else:
            await store.fetch_regions()
    except DirectoryApiError as exc:
        logger.warning("Could not load %s for the location chain: %s", collection.value, exc.message)
        return None
    return store.get(collection, entity_id)

"""
Location-scoped business search with fallback broadening.

The requested location is applied as an exact filter. An empty result
broadens one level at a time (city -> region -> country -> global) and stops
at the first level with results. The returned LocationContext records what
was requested and what was applied.
"""

import logging
from typing import List, Optional, Tuple

from ...core.config import Settings
from ...core.enums import LocationType
from ...core.exceptions import DirectoryApiError
from ...integrations.directory_client import DirectoryClient
from ...monitoring.prometheus_metrics import prometheus_metrics
from ...schemas.business import BusinessPage, BusinessSearchFilters, BusinessSearchResult, Pagination
from ...schemas.location import LocationContext, LocationDescriptor, LocationRef
from ..base import BaseService
from ..location.hierarchy_store import LocationHierarchyStore
from .location_chain import LocationChain, build_location_chain, location_name

logger = logging.getLogger(__name__)

SearchLevel = Tuple[LocationType, Optional[str]]


class BusinessSearchService(BaseService):
    def __init__(
        self,
        client: DirectoryClient,
        store: Optional[LocationHierarchyStore] = None,
        config: Optional[Settings] = None,
    ) -> None:
        super().__init__(config)
        self.client = client
        self.store = store

    @BaseService.measure_operation("search_businesses")
    async def search_businesses(
        self,
        filters: Optional[BusinessSearchFilters] = None,
        location: Optional[LocationDescriptor] = None,
    ) -> BusinessSearchResult:
        filters = filters or BusinessSearchFilters()
        location = location or LocationDescriptor.global_()
        requested = location.ref()

        chain = await build_location_chain(location, self.store)
        levels = self._levels(location, chain)

        answered: Optional[Tuple[LocationType, Optional[str], BusinessPage]] = None
        for level_type, level_id in levels:
            try:
                page = await self.client.search_businesses(
                    filters, location_id=level_id, location_type=level_type
                )
            except DirectoryApiError as exc:
                self.logger.warning(
                    "Business search at %s %s failed, treating it as empty: %s",
                    level_type.value,
                    level_id,
                    exc.message,
                )
                continue

            answered = (level_type, level_id, page)
            has_results = page.pagination.total > 0 or bool(page.businesses)
            if has_results or level_type is LocationType.GLOBAL:
                return self._result(location, requested, level_type, level_id, page)

            self.logger.debug("No businesses at %s %s; broadening", level_type.value, level_id)

        if answered is not None:
            # The global search failed; report the broadest level that answered.
            return self._result(location, requested, *answered)

        self.logger.warning(
            "Business search failed at every level for %s '%s'", location.type.value, location.name
        )
        return BusinessSearchResult(
            businesses=[],
            pagination=Pagination(page=filters.page, limit=filters.limit),
            location_context=LocationContext(requested=requested, applied=None),
        )

    def _result(
        self,
        location: LocationDescriptor,
        requested: LocationRef,
        level_type: LocationType,
        level_id: Optional[str],
        page: BusinessPage,
    ) -> BusinessSearchResult:
        applied = self._applied_ref(location, level_type, level_id)
        fallback = (level_type, level_id) != (location.type, location.id)
        if fallback:
            prometheus_metrics.inc_search_fallback(location.type.value, level_type.value)
            self.logger.info(
                "Business search broadened from %s '%s' to %s '%s'",
                location.type.value,
                location.name,
                level_type.value,
                applied.name,
            )
        return BusinessSearchResult(
            businesses=page.businesses,
            pagination=page.pagination,
            location_context=LocationContext(
                requested=requested, applied=applied, fallback_applied=fallback
            ),
        )

    def _levels(self, location: LocationDescriptor, chain: LocationChain) -> List[SearchLevel]:
        levels: List[SearchLevel] = []
        level: Optional[LocationType] = location.type
        while level is not None:
            if level is LocationType.GLOBAL:
                levels.append((LocationType.GLOBAL, None))
            elif level in chain:
                levels.append((level, chain[level]))
            else:
                logger.warning(
                    "Cannot determine the %s of %s '%s'; skipping that level",
                    level.value,
                    location.type.value,
                    location.name,
                )
            level = level.broader()
        return levels

    def _applied_ref(
        self, location: LocationDescriptor, level_type: LocationType, level_id: Optional[str]
    ) -> LocationRef:
        if level_type is location.type and level_id == location.id:
            return location.ref()
        return LocationRef(
            id=level_id,
            type=level_type,
            name=location_name(self.store, level_type, level_id),
        )

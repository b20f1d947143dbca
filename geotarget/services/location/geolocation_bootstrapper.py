"""
Geolocation Bootstrapper.

One-shot background upgrade of the session's default location:

    IDLE -> ATTEMPT_PERMISSION -> DENIED | UNAVAILABLE -> APPLY_DEFAULT
    IDLE -> ATTEMPT_PERMISSION -> GRANTED -> REVERSE_GEOCODE -> MATCH_HIERARCHY -> RESOLVED
    any -> FAILED -> APPLY_DEFAULT

An explicit user selection made before the run short-circuits straight to
RESOLVED; one made while the run is in flight wins over its result because
the final write goes through `LocationSession.apply_bootstrap`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, List, Optional, Sequence, Union

import httpx

from ...core.config import Settings
from ...core.enums import BootstrapState, HierarchyCollection, SuggestionType
from ...core.exceptions import (
    DirectoryApiError,
    ExternalServiceException,
    GeolocationPermissionDenied,
    GeolocationUnavailable,
)
from ...integrations.directory_client import DirectoryClient
from ...monitoring.prometheus_metrics import prometheus_metrics
from ...schemas.location import AddressComponents, City, CityRef, LocationDescriptor
from ...schemas.search import SearchSuggestion
from ..base import BaseService
from ..geocoding import ReverseGeocodingProvider, create_reverse_geocoding_provider
from ..search.circuit_breaker import CircuitOpenError
from ..search.suggestion_aggregator import parse_suggestions
from .geolocation_sources import GeolocationSource
from .hierarchy_store import LocationHierarchyStore
from .session_state import LocationSession

logger = logging.getLogger(__name__)

CityLike = Union[City, CityRef]


class GeolocationBootstrapper(BaseService):
    """Runs the geolocation pipeline at most once per session."""

    def __init__(
        self,
        store: LocationHierarchyStore,
        session: LocationSession,
        source: GeolocationSource,
        *,
        geocoder: Optional[ReverseGeocodingProvider] = None,
        client: Optional[DirectoryClient] = None,
        config: Optional[Settings] = None,
    ) -> None:
        super().__init__(config)
        self.store = store
        self.session = session
        self.source = source
        self.geocoder = geocoder or create_reverse_geocoding_provider(config=self.settings)
        self.client = client or store.client

        self._state = BootstrapState.IDLE
        self._history: List[BootstrapState] = [BootstrapState.IDLE]
        self._task: Optional[asyncio.Task[Optional[LocationDescriptor]]] = None

        self.result: Optional[LocationDescriptor] = None
        self.reason: Optional[str] = None
        self.match_step: Optional[int] = None

    @property
    def state(self) -> BootstrapState:
        return self._state

    @property
    def history(self) -> List[BootstrapState]:
        return list(self._history)

    @property
    def started(self) -> bool:
        return self._task is not None

    def start(self) -> Optional[asyncio.Task[Optional[LocationDescriptor]]]:
        """
        Schedule the pipeline in the background and return its task.

        Returns the first task on repeat calls. Returns None (without using up
        the one run) while the city list is not loaded yet.
        """
        if self._task is not None:
            return self._task
        if not self.store.is_loaded(HierarchyCollection.CITIES):
            logger.debug("Geolocation bootstrap deferred: cities not loaded")
            return None
        self._task = asyncio.create_task(self._run())
        return self._task

    async def run(self) -> Optional[LocationDescriptor]:
        """Start (if needed) and wait for the pipeline; returns what it applied."""
        task = self.start()
        if task is None:
            return None
        return await task

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _transition(self, state: BootstrapState) -> None:
        logger.debug("Bootstrap %s -> %s", self._state.value, state.value)
        self._state = state
        self._history.append(state)

    def _finish(self, reason: str, descriptor: Optional[LocationDescriptor]) -> Optional[LocationDescriptor]:
        self.reason = reason
        self.result = descriptor
        prometheus_metrics.inc_bootstrap_outcome(self._state.value, reason)
        logger.info(
            "Geolocation bootstrap finished in %s (%s): %s",
            self._state.value,
            reason,
            descriptor.name if descriptor else "no change",
        )
        return descriptor

    async def _run(self) -> Optional[LocationDescriptor]:
        expected_version = self.session.version
        if not self.session.is_default:
            self._transition(BootstrapState.RESOLVED)
            return self._finish("explicit_selection", None)

        try:
            return await self._pipeline(expected_version)
        except Exception:
            logger.exception("Geolocation bootstrap failed unexpectedly")
            if not self._state.is_terminal:
                self._transition(BootstrapState.FAILED)
                return self._apply_default(expected_version, "error")
            return self._finish("error", None)

    async def _pipeline(self, expected_version: int) -> Optional[LocationDescriptor]:
        self._transition(BootstrapState.ATTEMPT_PERMISSION)
        try:
            coords = await asyncio.wait_for(
                self.source.get_position(), timeout=self.settings.geolocation_timeout_seconds
            )
        except GeolocationPermissionDenied:
            self._transition(BootstrapState.DENIED)
            return self._apply_default(expected_version, "denied")
        except GeolocationUnavailable as exc:
            logger.info("Geolocation unavailable: %s", exc.message)
            self._transition(BootstrapState.UNAVAILABLE)
            return self._apply_default(expected_version, "unavailable")
        except asyncio.TimeoutError:
            logger.info(
                "Geolocation timed out after %.1fs", self.settings.geolocation_timeout_seconds
            )
            self._transition(BootstrapState.UNAVAILABLE)
            return self._apply_default(expected_version, "timeout")

        self._transition(BootstrapState.GRANTED)
        self._transition(BootstrapState.REVERSE_GEOCODE)
        try:
            geocoded = await asyncio.wait_for(
                self.geocoder.reverse_geocode(coords.latitude, coords.longitude),
                timeout=self.settings.reverse_geocode_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Reverse geocode timed out")
            self._transition(BootstrapState.FAILED)
            return self._apply_default(expected_version, "reverse_geocode_timeout")
        except (ExternalServiceException, CircuitOpenError, httpx.HTTPError, ValueError) as exc:
            logger.warning("Reverse geocode failed: %s", exc)
            self._transition(BootstrapState.FAILED)
            return self._apply_default(expected_version, "reverse_geocode_failed")
        if geocoded is None:
            self._transition(BootstrapState.FAILED)
            return self._apply_default(expected_version, "no_address")

        self._transition(BootstrapState.MATCH_HIERARCHY)
        descriptor = await self._match_hierarchy(geocoded.address)
        if descriptor is None:
            self._transition(BootstrapState.FAILED)
            return self._apply_default(expected_version, "no_match")

        self._transition(BootstrapState.RESOLVED)
        if not self.session.apply_bootstrap(descriptor, expected_version):
            return self._finish("superseded", None)
        return self._finish("geolocated", descriptor)

    def _apply_default(self, expected_version: int, reason: str) -> Optional[LocationDescriptor]:
        self._transition(BootstrapState.APPLY_DEFAULT)
        city = self.store.default_city()
        if city is None:
            logger.warning("No default city available; keeping the current location")
            return self._finish(reason, None)
        descriptor = self._descriptor_for(city)
        if not self.session.apply_bootstrap(descriptor, expected_version):
            return self._finish(f"{reason}_superseded", None)
        return self._finish(reason, descriptor)

    # ------------------------------------------------------------------
    # MatchHierarchy cascade
    # ------------------------------------------------------------------

    async def _match_hierarchy(self, address: AddressComponents) -> Optional[LocationDescriptor]:
        steps: Sequence[Callable[[AddressComponents], Any]] = (
            self._match_local_city,
            self._match_remote_city,
            self._match_local_region,
            self._match_remote_region,
            self._match_local_country,
            self._match_remote_country,
        )
        for number, step in enumerate(steps, start=1):
            city = await step(address)
            if city is not None:
                self.match_step = number
                logger.info("Address matched city '%s' at cascade step %d", city.name, number)
                return self._descriptor_for(city)
        logger.info("Address %s matched nothing in the hierarchy", address.model_dump(exclude_none=True))
        return None

    async def _match_local_city(self, address: AddressComponents) -> Optional[CityLike]:
        for name in address.city_like:
            city = self._match_city_name(name)
            if city is not None:
                return city
        return None

    async def _match_remote_city(self, address: AddressComponents) -> Optional[CityLike]:
        for name in address.city_like:
            hits = await self._unified_places(name, "cities", SuggestionType.CITY)
            if hits:
                return self._city_from_suggestion(hits[0])
        return None

    async def _match_local_region(self, address: AddressComponents) -> Optional[CityLike]:
        if not await self._ensure_loaded(HierarchyCollection.REGIONS):
            return None
        for name in address.region_like:
            region = self.store.find_by_name(HierarchyCollection.REGIONS, name)
            city = self.store.representative_city(region)
            if city is not None:
                return city
        return None

    async def _match_remote_region(self, address: AddressComponents) -> Optional[CityLike]:
        for name in address.region_like:
            hits = await self._unified_places(name, "regions", SuggestionType.REGION)
            if not hits:
                continue
            region = self.store.get(HierarchyCollection.REGIONS, hits[0].id)
            city = self.store.representative_city(region)
            if city is None:
                cities = self.store.cities_in_region(hits[0].id)
                city = cities[0] if cities else None
            if city is not None:
                return city
        return None

    async def _match_local_country(self, address: AddressComponents) -> Optional[CityLike]:
        if not await self._ensure_loaded(HierarchyCollection.COUNTRIES):
            return None
        await self._ensure_loaded(HierarchyCollection.REGIONS)
        for name in address.country_like:
            country = self.store.find_by_name(HierarchyCollection.COUNTRIES, name)
            city = self.store.representative_city_for_country(country)
            if city is not None:
                return city
        return None

    async def _match_remote_country(self, address: AddressComponents) -> Optional[CityLike]:
        await self._ensure_loaded(HierarchyCollection.REGIONS)
        for name in address.country_like:
            hits = await self._unified_places(name, "countries", SuggestionType.COUNTRY)
            if not hits:
                continue
            country = self.store.get(HierarchyCollection.COUNTRIES, hits[0].id)
            city = self.store.representative_city_for_country(country)
            if city is None:
                cities = self.store.cities_in_country(hits[0].id)
                city = cities[0] if cities else None
            if city is not None:
                return city
        return None

    # ------------------------------------------------------------------

    def _match_city_name(self, name: str) -> Optional[City]:
        normalized = name.strip().lower()
        if not normalized:
            return None
        cities = self.store.all(HierarchyCollection.CITIES)
        for city in cities:
            if city.name.lower() == normalized:
                return city
        by_slug = self.store.lookup_by_slug(HierarchyCollection.CITIES, normalized)
        if by_slug is not None:
            return by_slug
        for city in cities:
            if normalized in city.name.lower():
                return city
        return None

    async def _unified_places(
        self, term: str, key: str, suggestion_type: SuggestionType
    ) -> List[SearchSuggestion]:
        try:
            data = await self.client.unified_place_search(
                term, limit=self.settings.suggestion_place_limit
            )
        except DirectoryApiError as exc:
            logger.warning("Unified place search for '%s' failed: %s", term, exc.message)
            return []
        return parse_suggestions(data.get(key), suggestion_type, self.settings.suggestion_place_limit)

    def _city_from_suggestion(self, hit: SearchSuggestion) -> CityLike:
        cached = self.store.get(HierarchyCollection.CITIES, hit.id)
        if cached is not None:
            return cached
        region_id = hit.region_id or (hit.region.id if hit.region else None)
        return CityRef(id=hit.id, name=hit.name, slug=hit.slug, region_id=region_id)

    def _descriptor_for(self, city: CityLike) -> LocationDescriptor:
        return LocationDescriptor.from_city(
            city, country_id=self.store.country_id_for_region(city.region_id)
        )

    async def _ensure_loaded(self, collection: HierarchyCollection) -> bool:
        if self.store.is_loaded(collection):
            return True
        try:
            if collection is HierarchyCollection.COUNTRIES:
                await self.store.fetch_countries()
            else:
                await self.store.fetch_regions()
        except DirectoryApiError as exc:
            logger.warning("Could not load %s: %s", collection.value, exc.message)
            return False
        return True

"""
Unified search suggestions with debounce and last-query-wins.

Every `search()` call takes a sequence number. After the debounce sleep and
again after the network call, a call whose number is no longer the newest
gives up and returns None, so a slow response for an old query can never
replace the result of a newer one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import ValidationError

from ...core.config import Settings
from ...core.enums import SuggestionType
from ...core.exceptions import DirectoryApiError
from ...integrations.directory_client import DirectoryClient
from ...schemas.search import BusinessSuggestions, PlaceSuggestions, SearchSuggestion
from ..base import BaseService
from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitOpenError

logger = logging.getLogger(__name__)

R = TypeVar("R", BusinessSuggestions, PlaceSuggestions)


def parse_suggestions(rows: Any, suggestion_type: SuggestionType, limit: int) -> List[SearchSuggestion]:
    """Normalize one result group, keeping backend order, capped at `limit`."""
    out: List[SearchSuggestion] = []
    if not isinstance(rows, list):
        return out
    for row in rows:
        try:
            suggestion = SearchSuggestion.from_api(suggestion_type, row)
        except ValidationError as exc:
            logger.warning("Dropping malformed %s suggestion: %s", suggestion_type.value, exc.errors()[:1])
            continue
        if suggestion is None:
            continue
        out.append(suggestion)
        if len(out) >= limit:
            break
    return out


class SuggestionAggregator(BaseService, Generic[R]):
    """Shared debounce / supersede / loading discipline."""

    name = "unified_search"

    def __init__(
        self,
        client: DirectoryClient,
        config: Optional[Settings] = None,
        *,
        breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        super().__init__(config)
        self.client = client
        self._breaker = breaker or CircuitBreaker(
            name=self.name,
            config=CircuitBreakerConfig(failure_threshold=5, timeout_seconds=30.0),
        )
        self._sequence = 0
        self._query = ""
        self._latest: Optional[R] = None
        self._loading = False
        self._pending: Optional[asyncio.Task[Optional[R]]] = None

    @property
    def query(self) -> str:
        return self._query

    @property
    def latest(self) -> Optional[R]:
        """Result of the newest query that has completed."""
        return self._latest

    @property
    def loading(self) -> bool:
        return self._loading

    def submit(self, query: str, **params: Any) -> asyncio.Task[Optional[R]]:
        """Keystroke entry point: schedule `search` without waiting for it."""
        self._pending = asyncio.create_task(self.search(query, **params))
        return self._pending

    async def search(self, query: str, **params: Any) -> Optional[R]:
        """
        Result for `query`, or None when a newer query superseded it.

        Queries shorter than the minimum length return an empty result at once
        without touching the network.
        """
        self._sequence += 1
        sequence = self._sequence
        self._query = query
        term = (query or "").strip()

        if len(term) < self.settings.suggestion_min_query_length:
            return self._publish(sequence, self._empty(term))

        self._loading = True
        try:
            await asyncio.sleep(self.settings.suggestion_debounce_seconds)
            if sequence != self._sequence:
                logger.debug("Query '%s' superseded during debounce", term)
                return None

            try:
                result = await self._breaker.call(self._fetch, term, **params)
            except CircuitOpenError:
                logger.warning("Unified search circuit open; returning no suggestions for '%s'", term)
                result = self._empty(term)
            except DirectoryApiError as exc:
                logger.warning("Unified search for '%s' failed: %s", term, exc.message)
                result = self._empty(term)
        finally:
            # Only the newest query owns the loading flag.
            if sequence == self._sequence:
                self._loading = False

        if sequence != self._sequence:
            logger.debug("Discarding stale suggestions for '%s'", term)
            return None
        return self._publish(sequence, result)

    def _publish(self, sequence: int, result: R) -> R:
        if sequence == self._sequence:
            self._latest = result
            self._loading = False
        return result

    async def _fetch(self, query: str, **params: Any) -> R:
        raise NotImplementedError

    def _empty(self, query: str) -> R:
        raise NotImplementedError


class BusinessSuggestionAggregator(SuggestionAggregator[BusinessSuggestions]):
    """Categories and businesses, optionally scoped to a city (`city_id=`)."""

    name = "unified_business_search"

    async def _fetch(self, query: str, **params: Any) -> BusinessSuggestions:
        category_limit = self.settings.suggestion_category_limit
        business_limit = self.settings.suggestion_business_limit
        data: Dict[str, Any] = await self.client.unified_business_search(
            query,
            city_id=params.get("city_id"),
            limit=max(category_limit, business_limit),
        )
        return BusinessSuggestions(
            query=query,
            categories=parse_suggestions(data.get("categories"), SuggestionType.CATEGORY, category_limit),
            businesses=parse_suggestions(data.get("businesses"), SuggestionType.BUSINESS, business_limit),
        )

    def _empty(self, query: str) -> BusinessSuggestions:
        return BusinessSuggestions(query=query)


class PlaceSuggestionAggregator(SuggestionAggregator[PlaceSuggestions]):
    """Cities, regions and countries."""

    name = "unified_place_search"

    async def _fetch(self, query: str, **params: Any) -> PlaceSuggestions:
        limit = self.settings.suggestion_place_limit
        data: Dict[str, Any] = await self.client.unified_place_search(query, limit=limit)
        return PlaceSuggestions(
            query=query,
            cities=parse_suggestions(data.get("cities"), SuggestionType.CITY, limit),
            regions=parse_suggestions(data.get("regions"), SuggestionType.REGION, limit),
            countries=parse_suggestions(data.get("countries"), SuggestionType.COUNTRY, limit),
        )

    def _empty(self, query: str) -> PlaceSuggestions:
        return PlaceSuggestions(query=query)

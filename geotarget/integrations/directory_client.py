"""Async client for the business directory REST API."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from ..core.config import Settings, settings as default_settings
from ..core.enums import LocationType
from ..core.exceptions import DirectoryApiError, DirectoryNotFoundError
from ..schemas.advertisement import Advertisement
from ..schemas.business import BusinessPage, BusinessSearchFilters
from ..schemas.location import City, Country, Region

logger = logging.getLogger(__name__)


class DirectoryClient:
    """
    Thin async client for the directory API.

    Every endpoint answers with an envelope `{success, message, data}`; this
    client unwraps it and raises `DirectoryApiError` for HTTP errors,
    transport errors, malformed JSON and `success == false`.
    """

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: httpx.AsyncBaseTransport | None = None,
        config: Optional[Settings] = None,
    ) -> None:
        cfg = config or default_settings
        self._base_url = (base_url or cfg.api_base_url).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout if timeout is not None else cfg.http_timeout_seconds,
            transport=transport,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
        )

    async def __aenter__(self) -> "DirectoryClient":
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Hierarchy
    # ------------------------------------------------------------------

    async def list_countries(self) -> List[Country]:
        data = await self.request("GET", "/api/countries")
        return _parse_list(Country, data, "countries")

    async def list_regions(self, country_id: Optional[str] = None) -> List[Region]:
        params = {"countryId": country_id} if country_id else None
        data = await self.request("GET", "/api/regions", params=params)
        return _parse_list(Region, data, "regions")

    async def list_cities(self, region_id: Optional[str] = None) -> List[City]:
        params = {"regionId": region_id} if region_id else None
        data = await self.request("GET", "/api/cities", params=params)
        return _parse_list(City, data, "cities")

    async def get_city_by_slug(self, slug: str) -> Optional[City]:
        """Fetch one city by slug; None when the API has no such city."""
        if not slug:
            raise ValueError("slug must be provided")
        try:
            data = await self.request("GET", f"/api/cities/slug/{quote(slug, safe='')}")
        except DirectoryNotFoundError:
            return None
        if not data:
            return None
        return _parse_one(City, data, "city")

    # ------------------------------------------------------------------
    # Businesses & advertisements
    # ------------------------------------------------------------------

    async def search_businesses(
        self,
        filters: BusinessSearchFilters,
        *,
        location_id: Optional[str] = None,
        location_type: Optional[LocationType] = None,
    ) -> BusinessPage:
        params = filters.to_query_params(location_id, location_type)
        data = await self.request("GET", "/api/businesses", params=params)
        if not isinstance(data, dict):
            raise DirectoryApiError("Unexpected business search payload")
        return _parse_one(BusinessPage, data, "business search")

    async def list_advertisements(
        self, ad_type: Optional[str] = None, *, active_only: bool = True
    ) -> List[Advertisement]:
        params: Dict[str, str] = {}
        if ad_type:
            params["adType"] = ad_type
        if active_only:
            params["isActive"] = "true"
        data = await self.request("GET", "/api/advertisements", params=params or None)
        if isinstance(data, dict):
            data = data.get("advertisements", [])
        return _parse_list(Advertisement, data, "advertisements")

    async def get_display_advertisement(
        self,
        *,
        ad_type: Optional[str] = None,
        category_id: Optional[str] = None,
        location_id: Optional[str] = None,
        location_type: Optional[LocationType] = None,
    ) -> Optional[Advertisement]:
        params: Dict[str, str] = {}
        if ad_type:
            params["adType"] = ad_type
        if category_id:
            params["categoryId"] = category_id
        if location_id and location_type and location_type is not LocationType.GLOBAL:
            params["locationId"] = location_id
            params["locationType"] = location_type.value
        data = await self.request("GET", "/api/advertisements/display", params=params or None)
        if not data:
            return None
        return _parse_one(Advertisement, data, "advertisement")

    # ------------------------------------------------------------------
    # Unified search
    # ------------------------------------------------------------------

    async def unified_business_search(
        self, query: str, *, city_id: Optional[str] = None, limit: int = 10
    ) -> Dict[str, Any]:
        params = {"query": query, "limit": str(limit)}
        if city_id:
            params["cityId"] = city_id
        data = await self.request("GET", "/api/businesses/search/unified", params=params)
        return data if isinstance(data, dict) else {}

    async def unified_place_search(self, query: str, *, limit: int = 10) -> Dict[str, Any]:
        params = {"query": query, "limit": str(limit)}
        data = await self.request("GET", "/api/cities/search/unified", params=params)
        return data if isinstance(data, dict) else {}

    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Dict[str, str] | None = None,
    ) -> Any:
        """Perform a raw API request and return the envelope's `data`."""
        try:
            response = await self._client.request(method, path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.warning(
                "Directory API error %s for %s %s: %s",
                status,
                method,
                path,
                exc.response.text[:300],
            )
            error_cls = DirectoryNotFoundError if status == 404 else DirectoryApiError
            raise error_cls(
                f"Directory API responded with status {status}",
                status_code=status,
                details={"path": path},
            ) from exc
        except httpx.RequestError as exc:
            logger.warning("Directory request failure for %s %s: %s", method, path, str(exc))
            raise DirectoryApiError("Failed to reach directory API", details={"path": path}) from exc

        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            logger.error("Invalid JSON from directory API for %s %s", method, path)
            raise DirectoryApiError("Received malformed JSON from directory API") from exc

        if isinstance(payload, dict) and "success" in payload:
            if not payload.get("success"):
                message = payload.get("message") or "Directory API reported failure"
                raise DirectoryApiError(message, status_code=response.status_code)
            return payload.get("data")
        return payload


def _parse_list(model: Any, data: Any, key: str) -> List[Any]:
    """Validate a list payload row by row, dropping (and logging) invalid rows."""
    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        raise DirectoryApiError(f"Unexpected {key} payload")
    out = []
    for row in data:
        try:
            out.append(model.model_validate(row))
        except ValidationError as exc:
            logger.warning("Dropping invalid %s row: %s", key, exc.errors()[:1])
    return out


def _parse_one(model: Any, data: Any, what: str) -> Any:
    """Validate a single-object payload; a malformed one is an API error."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.warning("Malformed %s payload: %s", what, exc.errors()[:1])
        raise DirectoryApiError(f"Malformed {what} payload") from exc

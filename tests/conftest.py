# tests/conftest.py
"""
Pytest configuration.

Provides an in-memory fake of the directory REST API (served through
httpx.MockTransport) seeded with a small Saudi Arabia hierarchy:

    Saudi Arabia
    ├── Riyadh Region  -> Riyadh
    └── Makkah Region  -> Jeddah
"""

import asyncio
import copy
import os
import sys
from typing import Any, Dict, List, Optional, Tuple

# Keep a developer's local .env out of the test settings.
os.environ["CI"] = "true"

# Add the project root to Python path so imports work without installing
project_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_dir)

import httpx
import pytest
import pytest_asyncio

from geotarget.core.config import Settings
from geotarget.integrations.directory_client import DirectoryClient
from geotarget.schemas.location import LocationDescriptor
from geotarget.services.location.hierarchy_store import LocationHierarchyStore

API_BASE_URL = "http://directory.test"

COUNTRIES: List[Dict[str, Any]] = [
    {"id": "sa", "name": "Saudi Arabia", "slug": "saudi-arabia", "code": "SA"},
]

REGIONS: List[Dict[str, Any]] = [
    {"id": "r-riyadh", "name": "Riyadh Region", "slug": "riyadh-region", "countryId": "sa"},
    {
        "id": "r-makkah",
        "name": "Makkah Region",
        "slug": "makkah-region",
        # Older payload shape: embedded country instead of countryId
        "country": {"id": "sa", "name": "Saudi Arabia", "slug": "saudi-arabia"},
        "cities": [{"id": "c-jeddah", "name": "Jeddah", "slug": "jeddah"}],
    },
]

CITIES: List[Dict[str, Any]] = [
    {"id": "c-riyadh", "name": "Riyadh", "slug": "riyadh", "regionId": "r-riyadh"},
    {
        "id": "c-jeddah",
        "name": "Jeddah",
        "slug": "jeddah",
        # Older payload shape: embedded region instead of regionId
        "region": {"id": "r-makkah", "name": "Makkah Region", "slug": "makkah-region"},
    },
]


def envelope(data: Any, *, success: bool = True, message: str = "ok") -> Dict[str, Any]:
    return {"success": success, "message": message, "data": data}


def business_row(business_id: str, name: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": business_id,
        "name": name or f"Business {business_id}",
        "slug": f"business-{business_id}",
        "averageRating": 4.5,
        "totalReviews": 12,
        "images": [f"https://cdn.test/{business_id}.jpg"],
    }


class FakeDirectoryApi:
    """Routes directory API requests to in-memory data and records every call."""

    def __init__(self) -> None:
        self.countries = copy.deepcopy(COUNTRIES)
        self.regions = copy.deepcopy(REGIONS)
        self.cities = copy.deepcopy(CITIES)
        self.advertisements: List[Dict[str, Any]] = []
        self.display_ad: Optional[Dict[str, Any]] = None
        # (locationType, locationId) -> businesses; (None, None) is the unscoped search
        self.businesses: Dict[Tuple[Optional[str], Optional[str]], List[Dict[str, Any]]] = {}
        self.unified_businesses: Dict[str, Dict[str, Any]] = {}
        self.unified_places: Dict[str, Dict[str, Any]] = {}

        self.failing_paths: set[str] = set()
        # (locationType, locationId) business searches that answer 503
        self.failing_levels: set[Tuple[Optional[str], Optional[str]]] = set()
        self.latency: float = 0.0
        self.query_latency: Dict[str, float] = {}
        self.calls: List[httpx.Request] = []

    def count(self, path: str) -> int:
        return sum(1 for request in self.calls if request.url.path == path)

    def requests_to(self, path: str) -> List[httpx.Request]:
        return [request for request in self.calls if request.url.path == path]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path
        params = request.url.params

        delay = self.query_latency.get(params.get("query", ""), self.latency)
        if delay:
            await asyncio.sleep(delay)

        if path in self.failing_paths or (
            path.startswith("/api/cities/slug/") and "/api/cities/slug" in self.failing_paths
        ):
            return httpx.Response(500, json=envelope(None, success=False, message="boom"))

        if path == "/api/countries":
            return httpx.Response(200, json=envelope(self.countries))
        if path == "/api/regions":
            country_id = params.get("countryId")
            rows = [r for r in self.regions if not country_id or _region_country(r) == country_id]
            return httpx.Response(200, json=envelope(rows))
        if path == "/api/cities":
            region_id = params.get("regionId")
            rows = [c for c in self.cities if not region_id or _city_region(c) == region_id]
            return httpx.Response(200, json=envelope(rows))
        if path.startswith("/api/cities/slug/"):
            slug = path.rsplit("/", 1)[-1].lower()
            for city in self.cities:
                if city["slug"].lower() == slug:
                    return httpx.Response(200, json=envelope(city))
            return httpx.Response(404, json=envelope(None, success=False, message="City not found"))
        if path == "/api/businesses":
            key = (params.get("locationType"), params.get("locationId"))
            if key in self.failing_levels:
                return httpx.Response(503, json=envelope(None, success=False, message="unavailable"))
            rows = self.businesses.get(key, [])
            pagination = {
                "total": len(rows),
                "page": int(params.get("page", "1")),
                "limit": int(params.get("limit", "10")),
                "totalPages": 1 if rows else 0,
            }
            return httpx.Response(200, json=envelope({"businesses": rows, "pagination": pagination}))
        if path == "/api/advertisements":
            ad_type = params.get("adType")
            rows = [a for a in self.advertisements if not ad_type or a.get("adType") == ad_type]
            return httpx.Response(200, json=envelope(rows))
        if path == "/api/advertisements/display":
            return httpx.Response(200, json=envelope(self.display_ad))
        if path == "/api/businesses/search/unified":
            query = params.get("query", "")
            data = self.unified_businesses.get(query.lower(), {"categories": [], "businesses": []})
            return httpx.Response(200, json=envelope({**data, "query": query}))
        if path == "/api/cities/search/unified":
            query = params.get("query", "")
            data = self.unified_places.get(
                query.lower(), {"cities": [], "regions": [], "countries": []}
            )
            return httpx.Response(200, json=envelope({**data, "query": query}))

        return httpx.Response(404, json=envelope(None, success=False, message="Not found"))


def _region_country(region: Dict[str, Any]) -> Optional[str]:
    return region.get("countryId") or (region.get("country") or {}).get("id")


def _city_region(city: Dict[str, Any]) -> Optional[str]:
    return city.get("regionId") or (city.get("region") or {}).get("id")


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        api_base_url=API_BASE_URL,
        geocoding_provider="mock",
        suggestion_debounce_ms=20,
        geolocation_timeout_seconds=1.0,
        reverse_geocode_timeout_seconds=1.0,
    )


@pytest.fixture
def make_business():
    return business_row


@pytest.fixture
def directory_api() -> FakeDirectoryApi:
    return FakeDirectoryApi()


@pytest_asyncio.fixture
async def client(directory_api, test_settings):
    directory_client = DirectoryClient(
        transport=httpx.MockTransport(directory_api), config=test_settings
    )
    yield directory_client
    await directory_client.aclose()


@pytest.fixture
def store(client, test_settings) -> LocationHierarchyStore:
    return LocationHierarchyStore(client, config=test_settings)


@pytest_asyncio.fixture
async def loaded_store(store, directory_api) -> LocationHierarchyStore:
    """Store with every collection fetched; the API call log is cleared afterwards."""
    await store.fetch_countries()
    await store.fetch_regions()
    await store.fetch_cities()
    directory_api.calls.clear()
    return store


@pytest.fixture
def riyadh(loaded_store) -> LocationDescriptor:
    city = loaded_store.lookup_by_slug("cities", "riyadh")
    return LocationDescriptor.from_city(city, country_id="sa")


@pytest.fixture
def jeddah(loaded_store) -> LocationDescriptor:
    city = loaded_store.lookup_by_slug("cities", "jeddah")
    return LocationDescriptor.from_city(city, country_id="sa")


@pytest.fixture
def makkah_region(loaded_store) -> LocationDescriptor:
    return LocationDescriptor.from_region(loaded_store.lookup_by_slug("regions", "makkah-region"))

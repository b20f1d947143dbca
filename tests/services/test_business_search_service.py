"""
Tests for location-scoped business search with fallback broadening.

Broadening goes one level at a time (city -> region -> country -> global)
and stops at the first level with results.
"""

import pytest

from geotarget.core.enums import LocationType
from geotarget.schemas.business import BusinessSearchFilters
from geotarget.schemas.location import LocationDescriptor
from geotarget.services.targeting.business_search_service import BusinessSearchService


def _levels(directory_api):
    return [
        (r.url.params.get("locationType"), r.url.params.get("locationId"))
        for r in directory_api.requests_to("/api/businesses")
    ]


@pytest.fixture
def service(client, loaded_store, test_settings) -> BusinessSearchService:
    return BusinessSearchService(client, loaded_store, config=test_settings)


@pytest.fixture
def plumbers() -> BusinessSearchFilters:
    return BusinessSearchFilters(category_ids=["plumbers"])


@pytest.mark.asyncio
async def test_exact_level_hit_has_no_fallback(service, directory_api, riyadh, make_business):
    directory_api.businesses[("city", "c-riyadh")] = [make_business("b1")]

    result = await service.search_businesses(BusinessSearchFilters(), riyadh)

    assert [b.id for b in result.businesses] == ["b1"]
    assert result.location_context.fallback_applied is False
    assert result.location_context.applied == result.location_context.requested
    assert _levels(directory_api) == [("city", "c-riyadh")]


@pytest.mark.asyncio
async def test_city_broadens_to_region(service, directory_api, jeddah, plumbers, make_business):
    directory_api.businesses[("region", "r-makkah")] = [make_business(str(i)) for i in range(3)]

    result = await service.search_businesses(plumbers, jeddah)

    context = result.location_context
    assert context.requested.type is LocationType.CITY
    assert context.applied.type is LocationType.REGION
    assert context.applied.id == "r-makkah"
    assert context.applied.name == "Makkah Region"
    assert context.fallback_applied is True
    assert len(result.businesses) == 3
    assert result.pagination.total == 3
    assert all(r.url.params["categoryIds"] == "plumbers" for r in directory_api.requests_to("/api/businesses"))


@pytest.mark.asyncio
async def test_stops_at_country_without_skipping(service, directory_api, jeddah, make_business):
    directory_api.businesses[("country", "sa")] = [make_business("b-sa")]
    directory_api.businesses[(None, None)] = [make_business("b-any"), make_business("b-other")]

    result = await service.search_businesses(BusinessSearchFilters(), jeddah)

    assert result.location_context.applied.type is LocationType.COUNTRY
    assert result.location_context.applied.name == "Saudi Arabia"
    assert [b.id for b in result.businesses] == ["b-sa"]
    assert _levels(directory_api) == [("city", "c-jeddah"), ("region", "r-makkah"), ("country", "sa")]


@pytest.mark.asyncio
async def test_region_request_broadens_to_country_then_global(service, directory_api, makkah_region, make_business):
    directory_api.businesses[(None, None)] = [make_business("b-any")]

    result = await service.search_businesses(BusinessSearchFilters(), makkah_region)

    assert result.location_context.applied.type is LocationType.GLOBAL
    assert result.location_context.applied.id is None
    assert result.location_context.fallback_applied is True
    assert _levels(directory_api) == [("region", "r-makkah"), ("country", "sa"), (None, None)]


@pytest.mark.asyncio
async def test_empty_everywhere_ends_at_global(service, directory_api, riyadh):
    result = await service.search_businesses(BusinessSearchFilters(), riyadh)

    assert result.businesses == []
    assert result.location_context.applied.type is LocationType.GLOBAL
    assert result.location_context.fallback_applied is True
    assert len(_levels(directory_api)) == 4


@pytest.mark.asyncio
async def test_global_request_never_broadens(service, directory_api):
    result = await service.search_businesses(BusinessSearchFilters(), LocationDescriptor.global_())

    assert result.location_context.requested.type is LocationType.GLOBAL
    assert result.location_context.applied.type is LocationType.GLOBAL
    assert result.location_context.fallback_applied is False
    assert _levels(directory_api) == [(None, None)]


@pytest.mark.asyncio
async def test_unknown_levels_are_skipped(service, directory_api, caplog):
    ghost = LocationDescriptor(type=LocationType.CITY, id="c-ghost", slug="ghost", name="Ghost Town")

    result = await service.search_businesses(BusinessSearchFilters(), ghost)

    assert _levels(directory_api) == [("city", "c-ghost"), (None, None)]
    assert result.location_context.applied.type is LocationType.GLOBAL
    assert "Cannot determine the region" in caplog.text


@pytest.mark.asyncio
async def test_failed_level_broadens_like_an_empty_one(service, directory_api, jeddah, make_business):
    directory_api.failing_levels.add(("city", "c-jeddah"))
    directory_api.businesses[("region", "r-makkah")] = [make_business("b-makkah")]

    result = await service.search_businesses(BusinessSearchFilters(), jeddah)

    assert [b.id for b in result.businesses] == ["b-makkah"]
    assert result.location_context.applied.type is LocationType.REGION
    assert result.location_context.fallback_applied is True
    assert _levels(directory_api) == [("city", "c-jeddah"), ("region", "r-makkah")]


@pytest.mark.asyncio
async def test_failed_global_level_reports_broadest_answer(service, directory_api, jeddah):
    directory_api.failing_levels.add((None, None))

    result = await service.search_businesses(BusinessSearchFilters(), jeddah)

    assert result.businesses == []
    assert result.location_context.applied.type is LocationType.COUNTRY
    assert result.location_context.applied.id == "sa"
    assert len(_levels(directory_api)) == 4


@pytest.mark.asyncio
async def test_failure_at_every_level_returns_empty_page(service, directory_api, jeddah):
    directory_api.failing_paths.add("/api/businesses")

    result = await service.search_businesses(BusinessSearchFilters(page=2, limit=20), jeddah)

    assert result.businesses == []
    assert result.location_context.applied is None
    assert result.location_context.fallback_applied is False
    assert result.pagination.page == 2
    assert result.pagination.limit == 20
    assert len(_levels(directory_api)) == 4


@pytest.mark.asyncio
async def test_malformed_page_treated_as_failed_level(service, directory_api, riyadh, make_business):
    directory_api.businesses[("city", "c-riyadh")] = [{"id": "broken"}]
    directory_api.businesses[("region", "r-riyadh")] = [make_business("b-region")]

    result = await service.search_businesses(BusinessSearchFilters(), riyadh)

    assert [b.id for b in result.businesses] == ["b-region"]
    assert result.location_context.applied.type is LocationType.REGION

"""
Tests for the unified search suggestion aggregators.

Only the newest query may publish a result: older ones are dropped during
the debounce or, if already in flight, when their response arrives.
"""

import asyncio

import pytest

from geotarget.core.enums import SuggestionType
from geotarget.services.search.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from geotarget.services.search.suggestion_aggregator import (
    BusinessSuggestionAggregator,
    PlaceSuggestionAggregator,
    parse_suggestions,
)

BUSINESS_SEARCH = "/api/businesses/search/unified"
PLACE_SEARCH = "/api/cities/search/unified"


def _category(i: int) -> dict:
    return {"id": f"cat-{i}", "name": f"Category {i}", "slug": f"category-{i}"}


def _business(i: int) -> dict:
    return {"id": f"biz-{i}", "name": f"Business {i}", "slug": f"business-{i}", "averageRating": 4.0}


@pytest.fixture
def businesses(client, test_settings) -> BusinessSuggestionAggregator:
    return BusinessSuggestionAggregator(client, test_settings)


@pytest.fixture
def places(client, test_settings) -> PlaceSuggestionAggregator:
    return PlaceSuggestionAggregator(client, test_settings)


@pytest.mark.asyncio
async def test_short_query_skips_network(businesses, directory_api):
    result = await businesses.search(" r ")

    assert result is not None and result.is_empty
    assert businesses.loading is False
    assert directory_api.calls == []


@pytest.mark.asyncio
async def test_debounce_keeps_only_last_keystroke(businesses, directory_api):
    directory_api.unified_businesses["riya"] = {"categories": [_category(1)], "businesses": []}

    tasks = [businesses.submit(q) for q in ("ri", "riy", "riya")]
    results = await asyncio.gather(*tasks)

    assert results[0] is None and results[1] is None
    assert [s.id for s in results[2].categories] == ["cat-1"]
    requests = directory_api.requests_to(BUSINESS_SEARCH)
    assert [r.url.params["query"] for r in requests] == ["riya"]
    assert businesses.latest is results[2]


@pytest.mark.asyncio
async def test_stale_in_flight_response_is_discarded(client, directory_api, test_settings):
    cfg = test_settings.model_copy(update={"suggestion_debounce_ms": 0})
    aggregator = BusinessSuggestionAggregator(client, cfg)
    directory_api.query_latency = {"ri": 0.05, "riy": 0.05}
    directory_api.unified_businesses["ri"] = {"categories": [_category(1)], "businesses": []}
    directory_api.unified_businesses["riya"] = {"categories": [], "businesses": [_business(9)]}

    first = aggregator.submit("ri")
    await asyncio.sleep(0.01)
    second = aggregator.submit("riy")
    await asyncio.sleep(0.01)
    last = aggregator.submit("riya")
    results = await asyncio.gather(first, second, last)

    assert results[:2] == [None, None]
    assert len(directory_api.requests_to(BUSINESS_SEARCH)) == 3
    assert aggregator.latest.query == "riya"
    assert [s.id for s in aggregator.latest.businesses] == ["biz-9"]
    assert aggregator.loading is False


@pytest.mark.asyncio
async def test_groups_are_capped_and_ordered(businesses, directory_api):
    directory_api.unified_businesses["food"] = {
        "categories": [_category(i) for i in range(8)],
        "businesses": [{"id": "nameless", "slug": "x"}] + [_business(i) for i in range(8)],
    }

    result = await businesses.search("food")

    assert len(result.categories) == 5
    assert len(result.businesses) == 5
    assert "nameless" not in [s.id for s in result.businesses]
    assert [s.type for s in result.items[:5]] == [SuggestionType.CATEGORY] * 5
    assert result.items[5].type is SuggestionType.BUSINESS
    assert directory_api.requests_to(BUSINESS_SEARCH)[0].url.params["limit"] == "5"


@pytest.mark.asyncio
async def test_city_scope_is_forwarded(businesses, directory_api):
    await businesses.search("coffee", city_id="c-riyadh")

    params = directory_api.requests_to(BUSINESS_SEARCH)[0].url.params
    assert params["cityId"] == "c-riyadh"
    assert params["query"] == "coffee"


@pytest.mark.asyncio
async def test_loading_flag_during_request(businesses, directory_api):
    directory_api.latency = 0.05

    task = businesses.submit("pizza")
    await asyncio.sleep(0)
    assert businesses.loading is True

    await task
    assert businesses.loading is False


@pytest.mark.asyncio
async def test_network_error_gives_empty_result(businesses, directory_api):
    directory_api.failing_paths.add(BUSINESS_SEARCH)

    result = await businesses.search("pizza")

    assert result is not None and result.is_empty
    assert result.query == "pizza"
    assert businesses.loading is False


@pytest.mark.asyncio
async def test_malformed_rows_are_dropped(businesses, directory_api):
    directory_api.unified_businesses["tea"] = {
        "categories": [{"id": "cat-bad", "name": "Broken", "slug": None}, _category(1)],
        "businesses": [_business(1)],
    }

    result = await businesses.search("tea")

    assert [s.id for s in result.categories] == ["cat-1"]
    assert [s.id for s in result.businesses] == ["biz-1"]
    assert businesses.latest is result
    assert businesses.loading is False


@pytest.mark.asyncio
async def test_cancelled_search_clears_loading(businesses, directory_api):
    directory_api.latency = 0.05

    task = businesses.submit("pizza")
    await asyncio.sleep(0)
    assert businesses.loading is True

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert businesses.loading is False


@pytest.mark.asyncio
async def test_open_circuit_skips_network(client, directory_api, test_settings):
    breaker = CircuitBreaker(name="test", config=CircuitBreakerConfig(failure_threshold=1, timeout_seconds=60))
    aggregator = BusinessSuggestionAggregator(client, test_settings, breaker=breaker)
    directory_api.failing_paths.add(BUSINESS_SEARCH)

    await aggregator.search("pizza")
    assert breaker.is_open

    result = await aggregator.search("pizza")

    assert result.is_empty
    assert len(directory_api.requests_to(BUSINESS_SEARCH)) == 1


@pytest.mark.asyncio
async def test_place_groups(places, directory_api):
    directory_api.unified_places["ri"] = {
        "cities": [{"id": "c-riyadh", "name": "Riyadh", "slug": "riyadh"}],
        "regions": [{"id": "r-riyadh", "name": "Riyadh Region", "slug": "riyadh-region", "countryId": "sa"}],
        "countries": [],
    }

    result = await places.search("ri")

    assert [s.type for s in result.items] == [SuggestionType.CITY, SuggestionType.REGION]
    assert result.regions[0].country_id == "sa"
    assert directory_api.requests_to(PLACE_SEARCH)[0].url.params["limit"] == "5"


def test_parse_suggestions_ignores_non_list():
    assert parse_suggestions(None, SuggestionType.CITY, 5) == []
    assert parse_suggestions({"id": "x"}, SuggestionType.CITY, 5) == []

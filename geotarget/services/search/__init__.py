"""
Unified search services.

Debounced, last-query-wins suggestion aggregation over the directory's
unified search endpoints.
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitOpenError, CircuitState
from .suggestion_aggregator import (
    BusinessSuggestionAggregator,
    PlaceSuggestionAggregator,
    SuggestionAggregator,
    parse_suggestions,
)

__all__ = [
    "BusinessSuggestionAggregator",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitOpenError",
    "CircuitState",
    "PlaceSuggestionAggregator",
    "SuggestionAggregator",
    "parse_suggestions",
]

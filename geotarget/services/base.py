# geotarget/services/base.py
"""
Base service pattern for geotarget services.

Provides:
- Per-class logger
- Operation timing (@measure_operation) with slow-operation warnings
- Prometheus service metrics
"""

import asyncio
from functools import wraps
import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar, cast

from ..core.config import Settings, settings as default_settings
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

SLOW_OPERATION_SECONDS = 1.0


class BaseService:
    """
    Base class for all service layer components.

    Services receive their settings explicitly so tests can build isolated
    instances without touching the process-wide singleton.
    """

    # Class-level metrics storage
    _class_metrics: Dict[str, Dict[str, Dict[str, float]]] = {}

    def __init__(self, config: Optional[Settings] = None) -> None:
        self.settings = config or default_settings
        self.logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator to measure async operation performance.

        Usage:
            @BaseService.measure_operation("resolve")
            async def resolve(self, slug):
                ...
        """

        def decorator(func: F) -> F:
            if not asyncio.iscoroutinefunction(func):
                raise TypeError(f"measure_operation expects a coroutine function: {func!r}")

            @wraps(func)
            async def async_wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
                start_time = time.perf_counter()
                success = False
                error_type = None
                try:
                    result = await func(self, *args, **kwargs)
                    success = True
                    return result
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.perf_counter() - start_time
                    if isinstance(self, BaseService):
                        self._record_metric(operation_name, elapsed, success)
                        if elapsed > SLOW_OPERATION_SECONDS:
                            self.logger.warning(
                                f"Slow operation detected: {operation_name} took {elapsed:.2f}s"
                            )
                    try:
                        prometheus_metrics.record_service_operation(
                            service=self.__class__.__name__,
                            operation=operation_name,
                            duration=elapsed,
                            status="success" if success else "error",
                            error_type=error_type,
                        )
                    except Exception:
                        # Don't let metrics collection break the operation
                        pass

            return cast(F, async_wrapper)

        return decorator

    def _record_metric(self, operation: str, elapsed: float, success: bool) -> None:
        class_name = self.__class__.__name__
        metrics = BaseService._class_metrics.setdefault(class_name, {})

        if operation not in metrics:
            metrics[operation] = {
                "count": 0,
                "total_time": 0.0,
                "success_count": 0,
                "failure_count": 0,
                "min_time": float("inf"),
                "max_time": 0.0,
            }

        metric_data = metrics[operation]
        metric_data["count"] += 1
        metric_data["total_time"] += elapsed
        metric_data["min_time"] = min(metric_data["min_time"], elapsed)
        metric_data["max_time"] = max(metric_data["max_time"], elapsed)
        if success:
            metric_data["success_count"] += 1
        else:
            metric_data["failure_count"] += 1

    def get_metrics(self) -> Dict[str, Dict[str, float]]:
        """Return timing metrics recorded for this service class."""
        metrics = BaseService._class_metrics.get(self.__class__.__name__, {})
        out: Dict[str, Dict[str, float]] = {}
        for operation, data in metrics.items():
            count = data["count"] or 1
            out[operation] = {**data, "avg_time": data["total_time"] / count}
        return out

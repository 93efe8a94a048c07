# inkwell/performance.py
"""Request and query timing.

A ``PerformanceMonitor`` is built by the app factory, kept on ``app.state``
and handed to handlers through ``dependencies.get_metrics``. Nothing here is
a module-level singleton, so tests build their own monitors.
"""

import resource
import sys
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Deque, Dict, List, Mapping, Optional, TypeVar

from sqlalchemy import event
from sqlalchemy.engine import Engine

T = TypeVar("T")

MAX_SAMPLES = 100

PERFORMANCE_THRESHOLDS = {
    "API_RESPONSE_TIME": 1000,  # ms
    "DATABASE_QUERY_TIME": 500,  # ms
}


class PerformanceMonitor:
    def __init__(self, max_samples: int = MAX_SAMPLES, clock: Callable[[], float] = time.perf_counter):
        self.max_samples = max_samples
        self._clock = clock
        self._metrics: Dict[str, Deque[float]] = {}

    def record_metric(self, name: str, value: float) -> None:
        samples = self._metrics.get(name)
        if samples is None:
            samples = self._metrics[name] = deque(maxlen=self.max_samples)
        samples.append(value)

    def get_average(self, name: str) -> float:
        samples = self._metrics.get(name)
        if not samples:
            return 0.0
        return sum(samples) / len(samples)

    def get_all_metrics(self) -> Dict[str, Dict[str, float]]:
        return {
            name: {
                "average": self.get_average(name),
                "count": len(samples),
                "latest": samples[-1] if samples else 0.0,
            }
            for name, samples in self._metrics.items()
        }

    def clear(self) -> None:
        self._metrics.clear()

    def _elapsed_ms(self, start: float) -> float:
        return (self._clock() - start) * 1000

    async def measure(self, name: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Await ``fn()`` and record its duration; failures go to ``<name>_error``."""
        start = self._clock()
        try:
            result = await fn()
        except Exception:
            self.record_metric(f"{name}_error", self._elapsed_ms(start))
            raise
        self.record_metric(name, self._elapsed_ms(start))
        return result

    def measure_sync(self, name: str, fn: Callable[[], T]) -> T:
        start = self._clock()
        try:
            result = fn()
        except Exception:
            self.record_metric(f"{name}_error", self._elapsed_ms(start))
            raise
        self.record_metric(name, self._elapsed_ms(start))
        return result

    def watch_engine(self, engine: Engine) -> None:
        """Record the duration of every statement run on ``engine`` under ``db_query``."""

        @event.listens_for(engine, "before_cursor_execute")
        def _start(conn, cursor, statement, parameters, context, executemany):
            conn.info.setdefault("query_start", []).append(self._clock())

        @event.listens_for(engine, "after_cursor_execute")
        def _stop(conn, cursor, statement, parameters, context, executemany):
            self.record_metric("db_query", self._elapsed_ms(conn.info["query_start"].pop()))

        @event.listens_for(engine, "handle_error")
        def _failed(ctx):
            started = ctx.connection.info.get("query_start") if ctx.connection is not None else None
            if started:
                self.record_metric("db_query_error", self._elapsed_ms(started.pop()))

    def check_thresholds(self) -> List[str]:
        alerts = []
        api_time = self.get_average("api_response")
        if api_time > PERFORMANCE_THRESHOLDS["API_RESPONSE_TIME"]:
            alerts.append(f"API response time ({api_time:.2f}ms) exceeds threshold")
        db_time = self.get_average("db_query")
        if db_time > PERFORMANCE_THRESHOLDS["DATABASE_QUERY_TIME"]:
            alerts.append(f"Database query time ({db_time:.2f}ms) exceeds threshold")
        return alerts

    def generate_report(self, caches: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "metrics": self.get_all_metrics(),
            "memory": get_memory_usage(),
            "cache_stats": {name: c.stats() for name, c in (caches or {}).items()},
            "alerts": self.check_thresholds(),
        }


def get_memory_usage() -> Dict[str, int]:
    """Peak resident set size of this process, in MB."""
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS, kilobytes elsewhere
    divisor = 1024 * 1024 if sys.platform == "darwin" else 1024
    return {"max_rss_mb": round(peak / divisor)}

import asyncio

import pytest
from conftest import publish
from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import OperationalError

from inkwell.cache import CacheManager
from inkwell.performance import PERFORMANCE_THRESHOLDS, PerformanceMonitor


def test_average_and_window():
    monitor = PerformanceMonitor(max_samples=3)
    assert monitor.get_average("api_response") == 0.0
    for value in (10, 20, 30, 40):
        monitor.record_metric("api_response", value)
    # the oldest sample fell out of the window
    assert monitor.get_average("api_response") == 30
    assert monitor.get_all_metrics() == {"api_response": {"average": 30, "count": 3, "latest": 40}}


def test_measure_sync_records_elapsed_ms(clock):
    monitor = PerformanceMonitor(clock=clock)

    def work():
        clock.advance(0.25)
        return "done"

    assert monitor.measure_sync("render", work) == "done"
    assert monitor.get_average("render") == pytest.approx(250)


def test_measure_records_failures_separately(clock):
    monitor = PerformanceMonitor(clock=clock)

    async def boom():
        clock.advance(0.1)
        raise RuntimeError("nope")

    with pytest.raises(RuntimeError):
        asyncio.run(monitor.measure("fetch", boom))
    assert "fetch" not in monitor.get_all_metrics()
    assert monitor.get_average("fetch_error") == pytest.approx(100)


def test_watch_engine_times_statements(clock):
    engine = create_engine("sqlite://")
    monitor = PerformanceMonitor(clock=clock)
    monitor.watch_engine(engine)
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
        with pytest.raises(OperationalError):
            conn.execute(text("SELECT * FROM missing_table"))
    metrics = monitor.get_all_metrics()
    assert metrics["db_query"]["count"] >= 1
    assert metrics["db_query_error"]["count"] == 1


def test_slow_queries_raise_the_database_alert(clock):
    engine = create_engine("sqlite://")
    monitor = PerformanceMonitor(clock=clock)
    monitor.watch_engine(engine)

    @event.listens_for(engine, "before_cursor_execute")
    def slow(conn, cursor, statement, parameters, context, executemany):
        clock.advance(0.6)

    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    assert monitor.check_thresholds() == [
        f"Database query time ({monitor.get_average('db_query'):.2f}ms) exceeds threshold"
    ]


def test_thresholds_raise_alerts():
    assert set(PERFORMANCE_THRESHOLDS) == {"API_RESPONSE_TIME", "DATABASE_QUERY_TIME"}
    monitor = PerformanceMonitor()
    assert monitor.check_thresholds() == []
    monitor.record_metric("api_response", 1500)
    monitor.record_metric("db_query", 800)
    alerts = monitor.check_thresholds()
    assert len(alerts) == 2
    assert alerts[0].startswith("API response time (1500.00ms)")


def test_report_includes_cache_stats(clock):
    monitor = PerformanceMonitor()
    cache = CacheManager(max_size=5, timer=clock)
    cache.set("a", 1)
    report = monitor.generate_report({"posts": cache})
    assert report["cache_stats"] == {"posts": {"size": 1, "max": 5}}
    assert report["memory"]["max_rss_mb"] >= 0
    assert report["alerts"] == []
    assert "timestamp" in report


def test_instances_do_not_share_samples():
    a, b = PerformanceMonitor(), PerformanceMonitor()
    a.record_metric("x", 1)
    assert b.get_all_metrics() == {}


def test_middleware_records_api_response(anon):
    from inkwell.main import app

    anon.get("/healthz")
    anon.get("/healthz")
    assert app.state.metrics.get_all_metrics()["api_response"]["count"] == 2


def test_requests_record_database_time(author, anon):
    from inkwell.main import app

    publish(author)
    app.state.metrics.clear()
    anon.get("/api/posts")
    metrics = app.state.metrics.get_all_metrics()
    assert metrics["db_query"]["count"] >= 1
    assert metrics["api_response"]["count"] == 1

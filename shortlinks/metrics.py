"""Prometheus metrics for the short-link engine."""

from prometheus_client import Counter, Histogram

__all__ = [
    "LINK_CREATION_REQUESTS_TOTAL",
    "LINK_CREATION_DURATION",
    "LINK_RESOLUTIONS_TOTAL",
    "LINK_RESOLUTION_DURATION",
    "CLICK_EVENTS_TOTAL",
    "STATS_REQUESTS_TOTAL",
    "REAPED_LINKS_TOTAL",
    "REAPER_RUNS_TOTAL",
    "CACHE_ERRORS_TOTAL",
    "STORE_ERRORS_TOTAL",
]

# Request metrics
LINK_CREATION_REQUESTS_TOTAL = Counter(
    "shortlinks_creation_requests_total",
    "Total link allocation requests",
    ["status"],
)
LINK_RESOLUTIONS_TOTAL = Counter(
    "shortlinks_resolutions_total",
    "Total short code resolutions",
    ["status", "cache_hit"],
)
STATS_REQUESTS_TOTAL = Counter(
    "shortlinks_stats_requests_total",
    "Total stats snapshot requests",
    ["cache_hit"],
)

# Performance metrics
LINK_CREATION_DURATION = Histogram(
    "shortlinks_creation_duration_seconds",
    "Time taken to allocate short links",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
LINK_RESOLUTION_DURATION = Histogram(
    "shortlinks_resolution_duration_seconds",
    "Time taken to resolve short codes",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)

# Telemetry and background work
CLICK_EVENTS_TOTAL = Counter(
    "shortlinks_click_events_total",
    "Detached click recordings by outcome",
    ["outcome"],
)
REAPED_LINKS_TOTAL = Counter(
    "shortlinks_reaped_links_total",
    "Expired links deleted by the reaper",
)
REAPER_RUNS_TOTAL = Counter(
    "shortlinks_reaper_runs_total",
    "Reaper sweeps by status",
    ["status"],
)

# Adapter failures
CACHE_ERRORS_TOTAL = Counter(
    "shortlinks_cache_errors_total",
    "Cache operations that failed or timed out",
    ["operation"],
)
STORE_ERRORS_TOTAL = Counter(
    "shortlinks_store_errors_total",
    "Store operations that failed or timed out",
    ["operation"],
)

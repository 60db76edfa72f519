"""Prometheus metrics for the pricewise comparison engine."""

from prometheus_client import Counter, Gauge, Histogram, Info

from pricewise.config import settings

# Application info
app_info = Info("pricewise", "pricewise application info")
app_info.info({"version": "0.1.0", "name": "pricewise"})

# Comparison metrics
comparisons_total = Counter(
    "pricewise_comparisons_total",
    "Total number of offer comparisons",
    ["strategy", "status"],
)

comparison_duration_seconds = Histogram(
    "pricewise_comparison_duration_seconds",
    "Time spent comparing offers for one inventory item",
    ["strategy"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)

offers_compared_total = Counter(
    "pricewise_offers_compared_total",
    "Total number of offers scored by a comparator",
    ["strategy"],
)

# Cache metrics
comparison_cache_hits_total = Counter(
    "pricewise_comparison_cache_hits_total",
    "Comparison cache hits",
)

comparison_cache_misses_total = Counter(
    "pricewise_comparison_cache_misses_total",
    "Comparison cache misses",
)

comparison_cache_size = Gauge(
    "pricewise_comparison_cache_size",
    "Number of entries currently held in the comparison cache",
)

# Trend metrics
trend_analyses_total = Counter(
    "pricewise_trend_analyses_total",
    "Total number of price trend analyses",
    ["direction"],
)

# Historical price metrics
historical_prices_recorded_total = Counter(
    "pricewise_historical_prices_recorded_total",
    "Historical price observations recorded",
    ["source"],
)

historical_prices_deleted_total = Counter(
    "pricewise_historical_prices_deleted_total",
    "Historical price observations removed by retention cleanup",
)


def record_comparison(strategy: str, success: bool, duration: float, offer_count: int = 0):
    """Record one compare_offers call."""
    if not settings.metrics_enabled:
        return
    status = "success" if success else "error"
    comparisons_total.labels(strategy=strategy, status=status).inc()
    comparison_duration_seconds.labels(strategy=strategy).observe(duration)
    if offer_count:
        offers_compared_total.labels(strategy=strategy).inc(offer_count)


def record_cache_lookup(hit: bool):
    """Record a comparison cache lookup."""
    if not settings.metrics_enabled:
        return
    if hit:
        comparison_cache_hits_total.inc()
    else:
        comparison_cache_misses_total.inc()


def update_cache_size(size: int):
    """Update the comparison cache size gauge."""
    if settings.metrics_enabled:
        comparison_cache_size.set(size)


def record_trend_analysis(direction: str):
    """Record a computed price trend."""
    if settings.metrics_enabled:
        trend_analyses_total.labels(direction=direction).inc()


def record_prices_recorded(source: str, count: int = 1):
    """Record historical price observations being stored."""
    if settings.metrics_enabled and count:
        historical_prices_recorded_total.labels(source=source).inc(count)


def record_cleanup(deleted: int):
    """Record a retention cleanup run."""
    if settings.metrics_enabled and deleted:
        historical_prices_deleted_total.inc(deleted)

"""Prometheus metrics definitions for s3proxy.

Application-level metrics use the ``s3proxy_`` prefix. HTTP-level metrics
(request count, duration, sizes) come from
``prometheus-fastapi-instrumentator`` under the same namespace.

Counters reset to zero on restart; Prometheus handles gaps via ``rate()``.
"""

from __future__ import annotations

from prometheus_client import Counter

# Flag indicating whether metrics have been initialised via init_metrics().
_initialized: bool = False

# Store calls by operation (get/put/delete/list) and outcome (ok or error code)
store_operations_total: Counter | None = None

# Error responses by status and the action taken (fallback/pass_through/status_only)
error_pages_total: Counter | None = None

# Directory listing pages rendered, by format (json/html)
listing_pages_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics.

    Called once when metrics are enabled. When metrics are disabled the
    module-level references stay ``None`` and the ``observe_*`` helpers are
    no-ops.
    """
    global _initialized
    global store_operations_total, error_pages_total, listing_pages_total

    if _initialized:
        return

    store_operations_total = Counter(
        "s3proxy_store_operations_total",
        "Total object store calls by operation and outcome",
        ["operation", "outcome"],
    )

    error_pages_total = Counter(
        "s3proxy_error_pages_total",
        "Failed GET requests by status and error-page action",
        ["status", "action"],
    )

    listing_pages_total = Counter(
        "s3proxy_listing_pages_total",
        "Directory listing pages rendered by output format",
        ["format"],
    )

    _initialized = True


def observe_store_operation(operation: str, outcome: str) -> None:
    if store_operations_total is not None:
        store_operations_total.labels(operation=operation, outcome=outcome).inc()


def observe_error_page(status: int, action: str) -> None:
    if error_pages_total is not None:
        error_pages_total.labels(status=str(status), action=action).inc()


def observe_listing_page(fmt: str) -> None:
    if listing_pages_total is not None:
        listing_pages_total.labels(format=fmt).inc()

"""Prometheus metrics for volm.

All collectors live on the default registry and are exposed on the metrics
port by ``prometheus_client.make_asgi_app()`` (see volm.app).
"""

from __future__ import annotations

import platform

from prometheus_client import Counter, Gauge, Info

service_info = Info(
    "volm_service",
    "Static build and runtime information",
)

watch_events_total = Counter(
    "volm_watch_events_total",
    "Watch events applied to a resource store",
    ["kind", "type"],
)

resyncs_total = Counter(
    "volm_resyncs_total",
    "Full listings applied to a resource store",
    ["kind", "outcome"],
)

watch_reconnects_total = Counter(
    "volm_watch_reconnects_total",
    "Watch sessions re-established after a failure",
    ["kind"],
)

store_records = Gauge(
    "volm_store_records",
    "Records currently held by a resource store",
    ["kind"],
)

delete_requests_total = Counter(
    "volm_delete_requests_total",
    "Claim delete requests by outcome",
    ["outcome"],
)

http_requests_total = Counter(
    "volm_http_requests_total",
    "HTTP requests by route template and status",
    ["method", "route", "status"],
)


def record_service_info(version: str, mode: str) -> None:
    service_info.info(
        {
            "version": version,
            "mode": mode,
            "python_version": platform.python_version(),
            "service": "volm",
        }
    )

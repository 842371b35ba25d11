"""
Prometheus metric definitions.

HTTP metrics are recorded by the hooks in blueprints/metrics.py; sale metrics
are recorded by the sale engine.
"""
import os

from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry, REGISTRY
from prometheus_client import multiprocess

# Check if running in multi-process mode (Gunicorn)
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

# Use multiprocess registry in production with Gunicorn
if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

_metric_registry = registry if not MULTIPROCESS_MODE else None

# HTTP Request Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0)
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'Number of HTTP requests currently being processed',
    registry=_metric_registry
)

# Sale Metrics
pos_sales_completed_total = Counter(
    'pos_sales_completed_total',
    'Sales finalized and committed',
    ['receipt_type'],
    registry=_metric_registry
)

pos_sales_failed_total = Counter(
    'pos_sales_failed_total',
    'Sale finalizations that were rejected or rolled back',
    ['reason'],
    registry=_metric_registry
)

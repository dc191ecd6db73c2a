"""
Prometheus metrics collection for profile-sync

Counters and histograms for each reconciliation stage, kept on a private
registry so a run can expose them over HTTP or dump them at the end.
"""
import os
from prometheus_client import (
    Counter,
    Histogram,
    CollectorRegistry,
    generate_latest,
    start_http_server,
)
from typing import Optional


# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# QUERY METRICS
# =======================

profiles_queried_total = Counter(
    name="profile_sync_profiles_queried_total",
    documentation="Profiles returned by the missing-fields query",
    registry=REGISTRY,
)

# =======================
# RESOLUTION METRICS
# =======================

join_keys_total = Counter(
    name="profile_sync_join_keys_total",
    documentation="Join keys looked up in the database",
    labelnames=["outcome"],  # outcome: requested, resolved
    registry=REGISTRY,
)

key_field_hits_total = Counter(
    name="profile_sync_key_field_hits_total",
    documentation="Requested keys matched per database key field",
    labelnames=["key_field"],
    registry=REGISTRY,
)

# =======================
# PLANNING METRICS
# =======================

rows_skipped_total = Counter(
    name="profile_sync_rows_skipped_total",
    documentation="Query rows that produced no update",
    labelnames=["reason"],  # reason: no_join_key, not_found, no_changes
    registry=REGISTRY,
)

planned_updates_total = Counter(
    name="profile_sync_planned_updates_total",
    documentation="Profile updates planned for delivery",
    registry=REGISTRY,
)

# =======================
# DELIVERY METRICS
# =======================

update_batches_total = Counter(
    name="profile_sync_update_batches_total",
    documentation="Update batches handled by the dispatcher",
    labelnames=["status"],  # status: success, failure, simulated
    registry=REGISTRY,
)

updates_sent_total = Counter(
    name="profile_sync_updates_sent_total",
    documentation="Profile updates counted as sent",
    labelnames=["mode"],  # mode: live, dry_run
    registry=REGISTRY,
)

# =======================
# DURATION METRICS
# =======================

stage_duration_seconds = Histogram(
    name="profile_sync_stage_duration_seconds",
    documentation="Time spent in each pipeline stage in seconds",
    labelnames=["stage"],
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0, 3600.0],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def start_metrics_server(port: Optional[int] = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


class track_duration:
    """
    Context manager for tracking operation duration

    Usage:
        with track_duration(stage_duration_seconds, stage="resolve"):
            # do work
            pass
    """

    def __init__(self, histogram: Histogram, **labels):
        self.histogram = histogram
        self.labels = labels
        self.timer = None

    def __enter__(self):
        """Start timer"""
        self.timer = self.histogram.labels(**self.labels).time()
        self.timer.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Stop timer"""
        self.timer.__exit__(exc_type, exc_val, exc_tb)
        return False


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    if labels:
        counter.labels(**labels).inc(value)
    else:
        counter.inc(value)


def get_counter_value(counter: Counter, **labels) -> float:
    """
    Read the current value of a counter

    Args:
        counter: Prometheus Counter metric
        **labels: Label values for the metric

    Returns:
        Current counter value (0.0 if the series was never touched)
    """
    for family in counter.collect():
        for sample in family.samples:
            if sample.name.endswith("_total") and sample.labels == labels:
                return sample.value
    return 0.0

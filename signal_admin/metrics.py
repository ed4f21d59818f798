"""Prometheus metrics for the signal admin service."""

import time

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("signal_admin", "Waste signal admin application info")
app_info.info({"version": "0.1.0", "name": "signal-admin"})

# Update engine metrics
signal_updates_total = Counter(
    "signal_updates_total",
    "Total number of signal update transactions",
    ["status"],
)

signal_status_transitions_total = Counter(
    "signal_status_transitions_total",
    "Total number of committed signal status transitions",
    ["from_status", "to_status"],
)

transaction_retries_total = Counter(
    "transaction_retries_total",
    "Total number of transaction attempts retried after a store conflict",
    ["operation"],
)

user_stats_skipped_total = Counter(
    "user_stats_skipped_total",
    "Status transitions whose reporter had no statistics record",
)

# Aggregation metrics
aggregation_duration_seconds = Histogram(
    "aggregation_duration_seconds",
    "Time spent computing aggregates",
    ["aggregate"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

# Subscription metrics
active_subscriptions = Gauge(
    "active_subscriptions",
    "Number of live feed subscriptions currently open",
    ["feed"],
)

subscription_errors_total = Counter(
    "subscription_errors_total",
    "Total number of failed snapshot refreshes in live feeds",
    ["feed"],
)

subscription_emissions_total = Counter(
    "subscription_emissions_total",
    "Total number of snapshots delivered to live feed consumers",
    ["feed"],
)


def record_signal_update(success: bool):
    """Record the outcome of a signal update transaction."""
    status = "success" if success else "error"
    signal_updates_total.labels(status=status).inc()


def record_status_transition(old_status: str, new_status: str):
    """Record a committed status transition."""
    signal_status_transitions_total.labels(
        from_status=old_status, to_status=new_status
    ).inc()


def record_transaction_retry(operation: str):
    """Record a retried transaction attempt."""
    transaction_retries_total.labels(operation=operation).inc()


def record_aggregation(aggregate: str, started_at: float):
    """Record the duration of an aggregation started at ``started_at``."""
    aggregation_duration_seconds.labels(aggregate=aggregate).observe(
        time.perf_counter() - started_at
    )

"""Prometheus metrics for reconciliation drift, materialization and budget warnings"""

from typing import Iterable

from prometheus_client import Counter, Histogram

# Reconciliation metrics
reconciliation_runs_counter = Counter(
    "household_reconciliation_runs_total",
    "Reconciliation steps executed",
    ["step", "outcome"],  # step: sync_categories | fix_payment_links | fix_paid_by; outcome: ok | failed
)

snapshots_repaired_counter = Counter(
    "household_snapshots_repaired_total",
    "Payment snapshots inserted, refreshed or relinked by reconciliation",
    ["step"],
)

unresolved_counter = Counter(
    "household_unresolved_total",
    "Snapshot links or payers that reconciliation could not resolve",
    ["kind"],  # link | payer
)

# Budget metrics
materialization_counter = Counter(
    "household_week_materializations_total",
    "Week slot materialization requests",
    ["outcome"],  # created | existing
)

budget_warning_counter = Counter(
    "household_budget_warnings_total",
    "Soft budget invariant violations reported to callers",
    ["code"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_reconciliation(step: str, ok: bool, repaired: int = 0) -> None:
    reconciliation_runs_counter.labels(step=step, outcome="ok" if ok else "failed").inc()
    if repaired:
        snapshots_repaired_counter.labels(step=step).inc(repaired)


def record_unresolved(kind: str, count: int) -> None:
    if count:
        unresolved_counter.labels(kind=kind).inc(count)


def record_materialization(created: bool) -> None:
    materialization_counter.labels(outcome="created" if created else "existing").inc()


def record_warnings(warnings: Iterable) -> None:
    for warning in warnings:
        budget_warning_counter.labels(code=warning.code).inc()

"""Metric definitions used across the middleware."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class MetricDefinition:
    name: str
    metric_type: str
    description: str
    label_names: Tuple[str, ...] = ()


DEFAULT_METRIC_DEFINITIONS: Tuple[MetricDefinition, ...] = (
    MetricDefinition(
        name="ticket_operations_total",
        metric_type="counter",
        description="Ticket operations by outcome (ok, degraded or an error code).",
        label_names=("operation", "outcome"),
    ),
    MetricDefinition(
        name="ticket_operation_duration_seconds",
        metric_type="distribution",
        description="Wall-clock duration of ticket operations in seconds.",
        label_names=("operation",),
    ),
    MetricDefinition(
        name="ticket_mirror_failures_total",
        metric_type="counter",
        description="Issued tickets whose knowledge graph mirror could not be written.",
    ),
    MetricDefinition(
        name="service_consistency_mismatches_total",
        metric_type="counter",
        description="Ledger/graph digest mismatches observed per service.",
        label_names=("service",),
    ),
    MetricDefinition(
        name="ticket_audit_failures_total",
        metric_type="counter",
        description="Audit log entries that could not be stored.",
    ),
)

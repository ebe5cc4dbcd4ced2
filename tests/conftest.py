from __future__ import annotations

import pytest

from fakes import FakeClock, InMemoryGraph, InMemoryLedger
from intervia.metrics import MetricsRegistry, register_default_metrics
from intervia.tickets.lifecycle import TicketLifecycle


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger(clock: FakeClock) -> InMemoryLedger:
    return InMemoryLedger(clock)


@pytest.fixture
def graph() -> InMemoryGraph:
    return InMemoryGraph()


@pytest.fixture
def metrics() -> MetricsRegistry:
    registry = MetricsRegistry()
    register_default_metrics(registry)
    return registry


@pytest.fixture
def lifecycle(
    ledger: InMemoryLedger, graph: InMemoryGraph, clock: FakeClock, metrics: MetricsRegistry
) -> TicketLifecycle:
    return TicketLifecycle(ledger, graph, metrics=metrics, clock=clock)

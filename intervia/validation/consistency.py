from __future__ import annotations

import logging

from intervia.core.tasks import gather_or_cancel
from intervia.gateways.base import GraphGateway, LedgerGateway
from intervia.metrics import MetricsRegistry, metrics_registry as default_metrics_registry
from intervia.tickets.errors import OffChainDataMissing, ServiceNotFound
from intervia.tickets.models import ConsistencyReport

logger = logging.getLogger(__name__)


def digests_match(ledger_digest: bytes | None, graph_digest: str | None) -> bool:
    """Return ``True`` only when both digests are present and byte-equal.

    The graph stores the digest as a hex string (``0x`` prefix optional). An
    unset ledger digest is all zero bytes and never matches.
    """

    if not ledger_digest or not graph_digest or not any(ledger_digest):
        return False
    raw = graph_digest.strip()
    if raw.lower().startswith("0x"):
        raw = raw[2:]
    try:
        graph_bytes = bytes.fromhex(raw)
    except ValueError:
        return False
    return graph_bytes == bytes(ledger_digest)


class ConsistencyCheck:
    """Compare the ledger and graph digests of a service.

    Both sides are read fresh on every call. The route and maximum duration
    come from the same graph read that produced the graph digest.
    """

    def __init__(
        self,
        ledger: LedgerGateway,
        graph: GraphGateway,
        *,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._ledger = ledger
        self._graph = graph
        self._metrics = metrics or default_metrics_registry

    async def verify(self, service_id: str) -> ConsistencyReport:
        ledger_digest, definition = await gather_or_cancel(
            self._ledger.read_service_digest(service_id),
            self._graph.query_service_definition(service_id),
        )
        if ledger_digest is None:
            raise ServiceNotFound(f"Service {service_id} not found on the ledger", service_id=service_id)
        if definition is None:
            raise OffChainDataMissing(
                f"Off-chain data not found for service {service_id}", service_id=service_id
            )

        agrees = digests_match(ledger_digest, definition.digest)
        if not agrees:
            logger.warning(
                "Digest mismatch for service %s: ledger=0x%s graph=%s",
                service_id,
                ledger_digest.hex(),
                definition.digest,
            )
            self._metrics.counter("service_consistency_mismatches_total", label_names=("service",)).inc(
                labels={"service": service_id}
            )
        return ConsistencyReport(
            service_id=service_id,
            agrees=agrees,
            route=tuple(definition.route),
            max_duration_seconds=definition.max_duration_seconds,
            owner=definition.owner,
        )

"""Copy service digests from the ledger into the knowledge graph.

The graph accepts the new digests only when every requested service could
be read from the ledger; a partial read leaves the graph untouched.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from typing import Sequence

from intervia.core.config import Settings, get_settings
from intervia.core.logging import configure_logging
from intervia.gateways import StardogGraphGateway, Web3LedgerGateway, sparql
from intervia.gateways.base import GraphGateway, LedgerGateway
from intervia.tickets.errors import TicketingError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SyncReport:
    digests: dict[str, str] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
    applied: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures


class DigestSynchronizer:
    def __init__(self, ledger: LedgerGateway, graph: GraphGateway) -> None:
        self._ledger = ledger
        self._graph = graph

    async def collect(self, service_ids: Sequence[str]) -> SyncReport:
        report = SyncReport()
        for service_id in service_ids:
            try:
                digest = await self._ledger.read_service_digest(service_id)
            except TicketingError as exc:
                logger.error("Failed to fetch digest for %s: %s", service_id, exc)
                report.failures[service_id] = str(exc)
                continue
            if digest is None:
                report.failures[service_id] = "service not found on the ledger"
                continue
            report.digests[service_id] = "0x" + digest.hex()
            logger.info("Digest retrieved for %s: %s...", service_id, report.digests[service_id][:10])
        return report

    async def run(self, service_ids: Sequence[str], *, dry_run: bool = False) -> SyncReport:
        report = await self.collect(service_ids)
        if not report.ok:
            logger.error("Not all digests were retrieved (%s); graph left unchanged", ", ".join(report.failures))
            return report
        if not dry_run:
            await self._graph.replace_service_digests(report.digests)
            report.applied = True
            logger.info("Replaced graph digests for %d services", len(report.digests))
        return report


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Synchronize service digests from the ledger into the graph")
    parser.add_argument(
        "--service",
        dest="services",
        action="append",
        help="Service id to synchronize (repeatable; defaults to the configured list)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Print the SPARQL update instead of running it")
    return parser


async def _run(settings: Settings, service_ids: Sequence[str], dry_run: bool) -> int:
    ledger = Web3LedgerGateway.from_settings(settings)
    graph = StardogGraphGateway.from_settings(settings)
    try:
        report = await DigestSynchronizer(ledger, graph).run(service_ids, dry_run=dry_run)
    finally:
        await ledger.close()
        await graph.close()

    if dry_run and report.ok:
        print(sparql.replace_service_digests(settings.graph_namespace, report.digests))
    return 0 if report.ok else 1


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings)
    service_ids = args.services or list(settings.synchronized_service_ids)
    return asyncio.run(_run(settings, service_ids, args.dry_run))


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())

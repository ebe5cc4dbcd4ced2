from __future__ import annotations

import logging
from typing import Sequence

from intervia.gateways.base import GraphGateway

logger = logging.getLogger(__name__)


class ValidationEngine:
    """Decide whether a ticket for a service may be used at a station.

    A station on the service's own route is always accepted. Otherwise the
    station must be served by a different fare provider that has an
    agreement, in either direction, with the provider owning the ticket's
    service. Callers that already hold the owner from the service definition
    pass it as ``owner``; otherwise it is looked up. Graph failures propagate
    to the caller.
    """

    def __init__(self, graph: GraphGateway) -> None:
        self._graph = graph

    async def is_valid_at_station(
        self, service_id: str, route: Sequence[str], station_id: str, *, owner: str | None = None
    ) -> bool:
        if station_id in route:
            return True

        ticket_provider = owner or await self._graph.query_service_owner(service_id)
        if ticket_provider is None:
            logger.debug("Service %s has no owning provider in the graph", service_id)
            return False

        station_providers = await self._graph.query_station_providers(station_id)
        partners = sorted(provider for provider in station_providers if provider != ticket_provider)
        if not partners:
            logger.debug("Station %s is not served by any partner of %s", station_id, ticket_provider)
            return False

        for provider in partners:
            if await self._graph.query_agreement_exists(ticket_provider, provider):
                logger.debug("Station %s accepted via agreement %s <-> %s", station_id, ticket_provider, provider)
                return True
        return False

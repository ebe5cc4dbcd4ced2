from __future__ import annotations

from typing import Mapping, Protocol

from intervia.tickets.models import LedgerTicketState, ServiceDefinition


class LedgerGateway(Protocol):
    """Read/write access to the ticket and service contracts."""

    async def read_ticket_registry_entry(self, ticket_id: str) -> str | None:
        ...

    async def read_ticket_state(self, ticket_ref: str) -> LedgerTicketState:
        ...

    async def write_issue_ticket(
        self,
        customer: str,
        service_id: str,
        origin_stop_id: str,
        destination_stop_id: str,
        ticket_type: str,
    ) -> str:
        ...

    async def write_activate(self, ticket_ref: str, station_id: str) -> None:
        ...

    async def write_force_expire(self, ticket_ref: str) -> None:
        ...

    async def read_service_digest(self, service_id: str) -> bytes | None:
        ...

    async def test_connection(self) -> bool:
        ...


class GraphGateway(Protocol):
    """Query/update access to the knowledge graph."""

    async def query_service_definition(self, service_id: str) -> ServiceDefinition | None:
        ...

    async def query_service_owner(self, service_id: str) -> str | None:
        ...

    async def query_station_providers(self, station_id: str) -> frozenset[str]:
        ...

    async def query_agreement_exists(self, provider_a: str, provider_b: str) -> bool:
        ...

    async def insert_ticket_record(
        self, ticket_id: str, owner: str, service_id: str, ticket_type: str
    ) -> None:
        ...

    async def replace_service_digests(self, digests: Mapping[str, str]) -> None:
        ...

    async def test_connection(self) -> bool:
        ...

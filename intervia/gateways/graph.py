"""Knowledge graph gateway speaking the Stardog SPARQL HTTP protocol."""

from __future__ import annotations

import logging
from typing import Mapping

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from intervia.core.config import Settings
from intervia.tickets.errors import GatewayUnavailable, GraphUpdateFailed
from intervia.tickets.models import ServiceDefinition

from . import sparql

logger = logging.getLogger(__name__)


class SparqlTerm(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    value: str


class SparqlBindings(BaseModel):
    bindings: list[dict[str, SparqlTerm]] = Field(default_factory=list)


class SparqlResponse(BaseModel):
    """``application/sparql-results+json`` document (SELECT or ASK)."""

    model_config = ConfigDict(extra="ignore")

    results: SparqlBindings | None = None
    boolean: bool | None = None


def iri_local_name(value: str) -> str:
    """Return the fragment (or last path segment) of an IRI."""

    if "#" in value:
        return value.rsplit("#", 1)[1]
    return value.rstrip("/").rsplit("/", 1)[-1]


class StardogGraphGateway:
    """Graph gateway backed by a Stardog database over HTTP."""

    def __init__(
        self,
        *,
        endpoint: str,
        database: str,
        namespace: str,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = f"{endpoint.rstrip('/')}/{database}"
        self._namespace = namespace
        auth = httpx.BasicAuth(username, password or "") if username else None
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(auth=auth, timeout=httpx.Timeout(timeout))

    @classmethod
    def from_settings(cls, settings: Settings) -> "StardogGraphGateway":
        return cls(
            endpoint=settings.stardog_endpoint,
            database=settings.stardog_database,
            namespace=settings.graph_namespace,
            username=settings.stardog_user,
            password=settings.stardog_password,
            timeout=settings.gateway_timeout_seconds,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _read(self, query: str) -> SparqlResponse:
        try:
            response = await self._client.post(
                f"{self._base_url}/query",
                content=query.encode("utf-8"),
                headers={
                    "Content-Type": "application/sparql-query",
                    "Accept": "application/sparql-results+json",
                },
            )
        except httpx.HTTPError as exc:
            logger.error("Knowledge graph query failed: %s", exc)
            raise GatewayUnavailable("Unable to query the knowledge graph", gateway="graph") from exc

        if response.status_code >= 400:
            logger.error("Knowledge graph query rejected [%s]: %s", response.status_code, response.text)
            raise GatewayUnavailable(
                "Unable to query the knowledge graph",
                gateway="graph",
                status_code=response.status_code,
            )
        try:
            return SparqlResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise GatewayUnavailable("Malformed knowledge graph response", gateway="graph") from exc

    async def _update(self, statement: str) -> None:
        try:
            response = await self._client.post(
                f"{self._base_url}/update",
                content=statement.encode("utf-8"),
                headers={"Content-Type": "application/sparql-update", "Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.error("Knowledge graph update failed: %s", exc)
            raise GatewayUnavailable("Unable to update the knowledge graph", gateway="graph") from exc

        if response.status_code >= 400:
            logger.error("Knowledge graph update rejected [%s]: %s", response.status_code, response.text)
            raise GraphUpdateFailed(
                "Knowledge graph rejected the update",
                gateway="graph",
                status_code=response.status_code,
            )

    @staticmethod
    def _rows(result: SparqlResponse) -> list[dict[str, SparqlTerm]]:
        return result.results.bindings if result.results is not None else []

    async def query_service_definition(self, service_id: str) -> ServiceDefinition | None:
        result = await self._read(sparql.service_definition_query(self._namespace, service_id))
        rows = self._rows(result)
        if not rows:
            return None

        first = rows[0]
        route: list[str] = []
        for row in rows:
            stop = iri_local_name(row["routeStop"].value)
            if stop not in route:
                route.append(stop)

        owner = first.get("owner")
        try:
            minutes = int(first["duration"].value)
        except ValueError as exc:
            raise GatewayUnavailable(
                "Malformed service duration in the knowledge graph", gateway="graph", service_id=service_id
            ) from exc
        return ServiceDefinition(
            service_id=service_id,
            digest=first["merkleHash"].value,
            max_duration_seconds=minutes * 60,
            route=route,
            owner=iri_local_name(owner.value) if owner is not None else None,
        )

    async def query_service_owner(self, service_id: str) -> str | None:
        rows = self._rows(await self._read(sparql.service_owner_query(self._namespace, service_id)))
        if not rows:
            return None
        return iri_local_name(rows[0]["owner"].value)

    async def query_station_providers(self, station_id: str) -> frozenset[str]:
        rows = self._rows(await self._read(sparql.station_providers_query(self._namespace, station_id)))
        return frozenset(iri_local_name(row["owner"].value) for row in rows)

    async def query_agreement_exists(self, provider_a: str, provider_b: str) -> bool:
        result = await self._read(sparql.agreement_exists_query(self._namespace, provider_a, provider_b))
        if result.boolean is None:
            raise GatewayUnavailable("Knowledge graph did not answer the ASK query", gateway="graph")
        return result.boolean

    async def insert_ticket_record(
        self, ticket_id: str, owner: str, service_id: str, ticket_type: str
    ) -> None:
        await self._update(
            sparql.insert_ticket_record(self._namespace, ticket_id, owner, service_id, ticket_type)
        )
        logger.info("Ticket %s registered in the knowledge graph", ticket_id)

    async def replace_service_digests(self, digests: Mapping[str, str]) -> None:
        await self._update(sparql.replace_service_digests(self._namespace, digests))

    async def test_connection(self) -> bool:
        result = await self._read("ASK WHERE { ?s ?p ?o }")
        return result.boolean is not None

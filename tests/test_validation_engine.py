import pytest

from intervia.tickets.errors import GatewayUnavailable
from intervia.validation import ValidationEngine

L1E_ROUTE = ("S13", "S12", "S3", "S1", "S10", "S18")


@pytest.mark.asyncio
async def test_route_member_is_valid_without_graph_queries(graph):
    engine = ValidationEngine(graph)

    assert await engine.is_valid_at_station("L1E", L1E_ROUTE, "S10")
    assert graph.queries == []


@pytest.mark.asyncio
async def test_route_match_is_case_sensitive(graph):
    engine = ValidationEngine(graph)

    assert not await engine.is_valid_at_station("L1E", L1E_ROUTE, "s10")


@pytest.mark.asyncio
async def test_partner_station_is_valid_through_agreement(graph):
    engine = ValidationEngine(graph)

    assert await engine.is_valid_at_station("L1E", L1E_ROUTE, "S16")


@pytest.mark.asyncio
async def test_agreement_direction_does_not_matter(graph):
    graph.agreements = {("T3", "T1")}
    engine = ValidationEngine(graph)

    assert await engine.is_valid_at_station("L1E", L1E_ROUTE, "S16")


@pytest.mark.asyncio
async def test_station_of_unrelated_provider_is_refused(graph):
    engine = ValidationEngine(graph)

    assert not await engine.is_valid_at_station("L1E", L1E_ROUTE, "S5")


@pytest.mark.asyncio
async def test_station_any_partner_can_authorize(graph):
    # S17 is served by T2 and T4; an agreement with either one is enough
    graph.agreements.add(("T4", "T1"))
    engine = ValidationEngine(graph)

    assert await engine.is_valid_at_station("L1E", L1E_ROUTE, "S17")


@pytest.mark.asyncio
async def test_unknown_station_is_refused(graph):
    engine = ValidationEngine(graph)

    assert not await engine.is_valid_at_station("L1E", L1E_ROUTE, "S99")
    assert not any(query.startswith("agreement:") for query in graph.queries)


@pytest.mark.asyncio
async def test_other_service_of_same_provider_does_not_authorize(graph):
    # S4 is only on L5R, which T1 also owns
    engine = ValidationEngine(graph)

    assert not await engine.is_valid_at_station("L1E", L1E_ROUTE, "S4")


@pytest.mark.asyncio
async def test_agreement_lookup_failure_propagates(graph):
    graph.fail_agreements = True
    engine = ValidationEngine(graph)

    with pytest.raises(GatewayUnavailable):
        await engine.is_valid_at_station("L1E", L1E_ROUTE, "S16")


@pytest.mark.asyncio
async def test_known_owner_skips_owner_lookup(graph):
    engine = ValidationEngine(graph)

    assert await engine.is_valid_at_station("L1E", L1E_ROUTE, "S16", owner="T1")
    assert not any(query.startswith("owner:") for query in graph.queries)
    assert "agreement:T1:T3" in graph.queries

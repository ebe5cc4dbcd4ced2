import asyncio

import pytest

from fakes import service_digest
from intervia.tickets.errors import GatewayUnavailable, OffChainDataMissing, ServiceNotFound
from intervia.validation import ConsistencyCheck, digests_match


def test_digests_match_accepts_prefix_and_case_variants():
    digest = service_digest("L1E")

    assert digests_match(digest, "0x" + digest.hex())
    assert digests_match(digest, digest.hex().upper())
    assert digests_match(digest, "0X" + digest.hex())


def test_digests_match_rejects_missing_zero_or_malformed_values():
    digest = service_digest("L1E")

    assert not digests_match(None, "0x" + digest.hex())
    assert not digests_match(digest, None)
    assert not digests_match(digest, "")
    assert not digests_match(bytes(32), "0x" + "00" * 32)
    assert not digests_match(digest, "0xnothex")
    assert not digests_match(digest, "0x" + service_digest("L2B").hex())


@pytest.mark.asyncio
async def test_verify_reports_agreement_with_route_and_duration(ledger, graph, metrics):
    check = ConsistencyCheck(ledger, graph, metrics=metrics)

    report = await check.verify("L3M")

    assert report.agrees
    assert report.route == ("S1", "S11", "S2", "S3", "S12", "S16")
    assert report.max_duration_seconds == 1800
    assert report.owner == "T3"


@pytest.mark.asyncio
async def test_verify_counts_mismatches(ledger, graph, metrics):
    ledger.digests["L2B"] = b"\x01" * 32
    check = ConsistencyCheck(ledger, graph, metrics=metrics)

    report = await check.verify("L2B")

    assert not report.agrees
    counter = metrics.counter("service_consistency_mismatches_total", label_names=("service",))
    assert counter.value({"service": "L2B"}) == 1


@pytest.mark.asyncio
async def test_verify_missing_ledger_service(ledger, graph, metrics):
    del ledger.digests["L1E"]

    with pytest.raises(ServiceNotFound):
        await ConsistencyCheck(ledger, graph, metrics=metrics).verify("L1E")


@pytest.mark.asyncio
async def test_verify_missing_graph_service(ledger, graph, metrics):
    del graph.services["L1E"]

    with pytest.raises(OffChainDataMissing):
        await ConsistencyCheck(ledger, graph, metrics=metrics).verify("L1E")


@pytest.mark.asyncio
async def test_verify_propagates_gateway_outage(ledger, graph, metrics):
    ledger.unavailable = True

    with pytest.raises(GatewayUnavailable):
        await ConsistencyCheck(ledger, graph, metrics=metrics).verify("L1E")


@pytest.mark.asyncio
async def test_ledger_read_is_cancelled_when_graph_fails(ledger, graph, metrics):
    cancelled = asyncio.Event()

    async def slow_digest(service_id):
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    async def failing_definition(service_id):
        raise GatewayUnavailable("graph down", gateway="graph")

    ledger.read_service_digest = slow_digest
    graph.query_service_definition = failing_definition

    with pytest.raises(GatewayUnavailable) as excinfo:
        await ConsistencyCheck(ledger, graph, metrics=metrics).verify("L1E")
    assert excinfo.value.context["gateway"] == "graph"
    assert cancelled.is_set()

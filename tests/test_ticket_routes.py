from datetime import datetime, timezone
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient
import pytest

from intervia.dependencies import tickets as ticket_deps
from intervia.main import create_app
from intervia.tickets.errors import (
    GatewayUnavailable,
    ServiceNotSynchronized,
    StationNotAuthorized,
    TicketExpired,
    TicketNotFound,
)
from intervia.tickets.models import (
    ActivationResult,
    InspectionResult,
    IssueResult,
    MirrorResult,
    MirrorStatus,
    TicketAuditEntry,
)
from intervia.tickets.state import TicketState

BOB = "0x0000000000000000000000000000000000000004"
TICKET_ID = "0x" + "00" * 31 + "01"


def _issue_payload(**overrides):
    payload = {
        "customer_address": BOB,
        "service_id": "L1E",
        "origin_stop_id": "S13",
        "destination_stop_id": "S18",
        "ticket_type": "r",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def ticket_client():
    app = create_app()
    lifecycle = AsyncMock()

    async def override_lifecycle():
        return lifecycle

    app.dependency_overrides[ticket_deps.get_ticket_lifecycle] = override_lifecycle

    client = TestClient(app)
    try:
        yield client, lifecycle
    finally:
        app.dependency_overrides.clear()


def test_issue_ticket_returns_created(ticket_client):
    client, lifecycle = ticket_client
    lifecycle.issue = AsyncMock(
        return_value=IssueResult(
            ticket_id=TICKET_ID, service_id="L1E", mirror=MirrorResult(status=MirrorStatus.SYNCHRONIZED)
        )
    )

    response = client.post("/tickets/issue", json=_issue_payload())

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Ticket issued and synchronized."
    assert body["data"]["ticket_id"] == TICKET_ID
    assert body["data"]["mirror"]["status"] == "synchronized"
    lifecycle.issue.assert_awaited_once_with(
        customer=BOB, service_id="L1E", origin_stop_id="S13", destination_stop_id="S18", ticket_type="r"
    )


def test_issue_with_failed_mirror_is_accepted(ticket_client):
    client, lifecycle = ticket_client
    lifecycle.issue = AsyncMock(
        return_value=IssueResult(
            ticket_id=TICKET_ID,
            service_id="L1E",
            mirror=MirrorResult(status=MirrorStatus.FAILED, detail="update rejected"),
        )
    )

    response = client.post("/tickets/issue", json=_issue_payload())

    assert response.status_code == 202
    body = response.json()
    assert body["success"] is True
    assert "off-chain synchronization failed" in body["message"]
    assert body["data"]["mirror"] == {"status": "failed", "detail": "update rejected"}


def test_issue_validates_payload(ticket_client):
    client, lifecycle = ticket_client

    bad_address = client.post("/tickets/issue", json=_issue_payload(customer_address="bob"))
    bad_stop = client.post("/tickets/issue", json=_issue_payload(origin_stop_id="S1 ; DROP"))

    assert bad_address.status_code == 422
    assert bad_stop.status_code == 422
    lifecycle.issue.assert_not_awaited()


def test_issue_not_synchronized_is_service_unavailable(ticket_client):
    client, lifecycle = ticket_client
    lifecycle.issue = AsyncMock(side_effect=ServiceNotSynchronized("digest mismatch", service_id="L1E"))

    response = client.post("/tickets/issue", json=_issue_payload())

    assert response.status_code == 503
    detail = response.json()["detail"]
    assert detail["code"] == "service_not_synchronized"
    assert detail["retry"] == "later"
    assert detail["context"] == {"service_id": "L1E"}


def test_activate_ticket(ticket_client):
    client, lifecycle = ticket_client
    lifecycle.activate = AsyncMock(
        return_value=ActivationResult(ticket_id=TICKET_ID, service_id="L1E", station_id="S13")
    )

    response = client.post(f"/tickets/{TICKET_ID}/activate", json={"customer_address": BOB, "station_id": "S13"})

    assert response.status_code == 200
    assert response.json()["data"]["state"] == "activated"
    lifecycle.activate.assert_awaited_once_with(TICKET_ID, customer=BOB, station_id="S13")


@pytest.mark.parametrize(
    ("error", "status_code"),
    [
        (TicketNotFound("missing"), 404),
        (StationNotAuthorized("Ticket not valid for station S17"), 403),
        (GatewayUnavailable("ledger down"), 504),
    ],
)
def test_activate_maps_errors(ticket_client, error, status_code):
    client, lifecycle = ticket_client
    lifecycle.activate = AsyncMock(side_effect=error)

    response = client.post(f"/tickets/{TICKET_ID}/activate", json={"customer_address": BOB, "station_id": "S17"})

    assert response.status_code == status_code
    assert response.json()["detail"]["code"] == error.code


def test_inspect_reports_remaining_minutes(ticket_client):
    client, lifecycle = ticket_client
    lifecycle.inspect = AsyncMock(
        return_value=InspectionResult(ticket_id=TICKET_ID, service_id="L1E", station_id="S1", remaining_seconds=1199)
    )

    response = client.post(f"/tickets/{TICKET_ID}/inspect", json={"customer_address": BOB, "station_id": "S1"})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Ticket inspected and valid. Remaining time: 19 min."
    assert body["data"]["remaining_seconds"] == 1199


def test_inspect_expired_ticket_is_gone(ticket_client):
    client, lifecycle = ticket_client
    lifecycle.inspect = AsyncMock(side_effect=TicketExpired("Maximum duration exceeded", ticket_id=TICKET_ID))

    response = client.post(f"/tickets/{TICKET_ID}/inspect", json={"customer_address": BOB, "station_id": "S1"})

    assert response.status_code == 410
    assert response.json()["detail"]["code"] == "ticket_expired"


def test_ticket_routes_without_lifecycle_are_unavailable():
    client = TestClient(create_app())

    response = client.post(f"/tickets/{TICKET_ID}/inspect", json={"customer_address": BOB, "station_id": "S1"})

    assert response.status_code == 503


def test_audit_endpoints_use_repository():
    app = create_app()
    repository = AsyncMock()
    entry = TicketAuditEntry(
        id="audit-1",
        ticket_id=TICKET_ID,
        action="mirror_failed",
        actor=BOB,
        from_state=None,
        to_state=None,
        created_at=datetime.now(timezone.utc),
        metadata={"detail": "update rejected"},
    )
    repository.list_by_action = AsyncMock(return_value=[entry])
    repository.list_for_ticket = AsyncMock(
        return_value=[
            TicketAuditEntry(
                id="audit-0",
                ticket_id=TICKET_ID,
                action="issued",
                actor=BOB,
                from_state=None,
                to_state=TicketState.ISSUED,
                created_at=datetime.now(timezone.utc),
                metadata={},
            )
        ]
    )
    app.dependency_overrides[ticket_deps.get_audit_repository] = lambda: repository
    client = TestClient(app)

    drift = client.get("/tickets/mirror-drift", params={"limit": 10})
    history = client.get(f"/tickets/{TICKET_ID}/audit")

    assert drift.status_code == 200
    assert drift.json()[0]["metadata"] == {"detail": "update rejected"}
    repository.list_by_action.assert_awaited_once_with("mirror_failed", limit=10)
    assert history.json()[0]["to_state"] == "issued"


def test_audit_endpoint_without_repository_is_unavailable():
    client = TestClient(create_app())

    assert client.get(f"/tickets/{TICKET_ID}/audit").status_code == 503


def test_ping_and_readiness():
    app = create_app()
    client = TestClient(app)

    assert client.get("/ping").json() == {"status": "ok"}

    not_ready = client.get("/ping/ready")
    assert not_ready.status_code == 503
    assert not_ready.json() == {"ledger": "unconfigured", "graph": "unconfigured"}

    ledger = AsyncMock()
    ledger.test_connection = AsyncMock(return_value=True)
    graph = AsyncMock()
    graph.test_connection = AsyncMock(side_effect=GatewayUnavailable("graph down"))
    app.state.ledger_gateway = ledger
    app.state.graph_gateway = graph
    degraded = client.get("/ping/ready")
    assert degraded.status_code == 503
    assert degraded.json() == {"ledger": "ok", "graph": "unavailable"}

    graph.test_connection = AsyncMock(return_value=True)
    assert client.get("/ping/ready").status_code == 200


def test_metrics_endpoint_exposes_prometheus_text():
    client = TestClient(create_app())

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "# TYPE ticket_operations_total counter" in response.text

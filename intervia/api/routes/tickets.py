from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field

from intervia.dependencies.tickets import AuditRepositoryDep, TicketLifecycleDep
from intervia.tickets.errors import ErrorCategory, TicketExpired, TicketingError
from intervia.tickets.models import MirrorStatus, TicketAuditEntry
from intervia.tickets.state import TicketState

router = APIRouter(prefix="/tickets", tags=["tickets"])

ADDRESS_PATTERN = r"^0x[0-9a-fA-F]{40}$"
IDENTIFIER_PATTERN = r"^[A-Za-z0-9_\-]+$"

_STATUS_BY_CATEGORY: dict[ErrorCategory, int] = {
    ErrorCategory.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCategory.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCategory.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorCategory.NOT_SYNCHRONIZED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCategory.GATEWAY_UNAVAILABLE: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorCategory.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorCategory.LEDGER_REJECTED: status.HTTP_502_BAD_GATEWAY,
}


def http_status_for(exc: TicketingError) -> int:
    if isinstance(exc, TicketExpired):
        return status.HTTP_410_GONE
    return _STATUS_BY_CATEGORY.get(exc.category, status.HTTP_500_INTERNAL_SERVER_ERROR)


def _to_http_error(exc: TicketingError) -> HTTPException:
    return HTTPException(status_code=http_status_for(exc), detail=exc.to_detail())


class IssueTicketRequest(BaseModel):
    customer_address: str = Field(..., pattern=ADDRESS_PATTERN)
    service_id: str = Field(..., pattern=IDENTIFIER_PATTERN)
    origin_stop_id: str = Field(..., pattern=IDENTIFIER_PATTERN)
    destination_stop_id: str = Field(..., pattern=IDENTIFIER_PATTERN)
    ticket_type: str = Field(..., min_length=1, max_length=64)


class StationRequest(BaseModel):
    customer_address: str = Field(..., pattern=ADDRESS_PATTERN)
    station_id: str = Field(..., pattern=IDENTIFIER_PATTERN)


class OperationResponse(BaseModel):
    success: bool = True
    message: str
    data: dict[str, Any] = Field(default_factory=dict)


class TicketAuditResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: str
    action: str
    actor: str
    from_state: TicketState | None
    to_state: TicketState | None
    metadata: dict[str, Any]
    created_at: datetime


def _to_audit_response(entry: TicketAuditEntry) -> TicketAuditResponse:
    return TicketAuditResponse.model_validate(entry)


@router.post("/issue", response_model=OperationResponse, status_code=status.HTTP_201_CREATED)
async def issue_ticket(
    payload: IssueTicketRequest,
    lifecycle: TicketLifecycleDep,
    response: Response,
) -> OperationResponse:
    try:
        result = await lifecycle.issue(
            customer=payload.customer_address,
            service_id=payload.service_id,
            origin_stop_id=payload.origin_stop_id,
            destination_stop_id=payload.destination_stop_id,
            ticket_type=payload.ticket_type,
        )
    except TicketingError as exc:
        raise _to_http_error(exc) from exc

    data = {
        "ticket_id": result.ticket_id,
        "service_id": result.service_id,
        "mirror": {"status": result.mirror.status.value, "detail": result.mirror.detail},
    }
    if result.mirror.status is MirrorStatus.FAILED:
        response.status_code = status.HTTP_202_ACCEPTED
        return OperationResponse(
            message="Ticket issued on the ledger, but off-chain synchronization failed.",
            data=data,
        )
    return OperationResponse(message="Ticket issued and synchronized.", data=data)


@router.post("/{ticket_id}/activate", response_model=OperationResponse)
async def activate_ticket(
    ticket_id: str,
    payload: StationRequest,
    lifecycle: TicketLifecycleDep,
) -> OperationResponse:
    try:
        result = await lifecycle.activate(
            ticket_id, customer=payload.customer_address, station_id=payload.station_id
        )
    except TicketingError as exc:
        raise _to_http_error(exc) from exc
    return OperationResponse(
        message="Ticket activated.",
        data={
            "ticket_id": result.ticket_id,
            "service_id": result.service_id,
            "station_id": result.station_id,
            "state": result.state.value,
        },
    )


@router.post("/{ticket_id}/inspect", response_model=OperationResponse)
async def inspect_ticket(
    ticket_id: str,
    payload: StationRequest,
    lifecycle: TicketLifecycleDep,
) -> OperationResponse:
    try:
        result = await lifecycle.inspect(
            ticket_id, customer=payload.customer_address, station_id=payload.station_id
        )
    except TicketingError as exc:
        raise _to_http_error(exc) from exc
    return OperationResponse(
        message=f"Ticket inspected and valid. Remaining time: {result.remaining_minutes} min.",
        data={
            "ticket_id": result.ticket_id,
            "service_id": result.service_id,
            "station_id": result.station_id,
            "remaining_seconds": result.remaining_seconds,
            "remaining_minutes": result.remaining_minutes,
        },
    )


@router.get("/mirror-drift", response_model=list[TicketAuditResponse])
async def list_mirror_drift(
    repository: AuditRepositoryDep,
    limit: int = Query(default=100, ge=1, le=1000),
) -> list[TicketAuditResponse]:
    entries = await repository.list_by_action("mirror_failed", limit=limit)
    return [_to_audit_response(entry) for entry in entries]


@router.get("/{ticket_id}/audit", response_model=list[TicketAuditResponse])
async def get_ticket_audit(ticket_id: str, repository: AuditRepositoryDep) -> list[TicketAuditResponse]:
    entries = await repository.list_for_ticket(ticket_id)
    return [_to_audit_response(entry) for entry in entries]

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from intervia.tickets.audit import TicketAuditRepository
from intervia.tickets.lifecycle import TicketLifecycle


async def get_ticket_lifecycle(request: Request) -> TicketLifecycle:
    lifecycle = getattr(request.app.state, "ticket_lifecycle", None)
    if lifecycle is None:
        raise HTTPException(status_code=503, detail="Ticket service is not configured")
    return lifecycle


async def get_audit_repository(request: Request) -> TicketAuditRepository:
    repository = getattr(request.app.state, "audit_repository", None)
    if repository is None:
        raise HTTPException(status_code=503, detail="Audit log is not configured")
    return repository


TicketLifecycleDep = Annotated[TicketLifecycle, Depends(get_ticket_lifecycle)]
AuditRepositoryDep = Annotated[TicketAuditRepository, Depends(get_audit_repository)]

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Sequence

from .state import TicketState


@dataclass(slots=True)
class LedgerTicketState:
    """Snapshot of a ticket contract read from the ledger."""

    ticket_ref: str
    owner: str
    service_id: str
    ticket_type: str
    state: TicketState
    activation_timestamp: int | None = None

    def is_owned_by(self, customer: str) -> bool:
        # ledger addresses are hex; checksum casing must not matter
        return self.owner.lower() == customer.lower()


@dataclass(slots=True)
class ServiceDefinition:
    """Service data held by the knowledge graph."""

    service_id: str
    digest: str
    max_duration_seconds: int
    route: Sequence[str]
    owner: str | None = None


@dataclass(slots=True)
class ConsistencyReport:
    """Outcome of comparing the ledger and graph digests of a service."""

    service_id: str
    agrees: bool
    route: Sequence[str]
    max_duration_seconds: int
    owner: str | None = None


class MirrorStatus(str, Enum):
    SYNCHRONIZED = "synchronized"
    FAILED = "failed"


@dataclass(slots=True)
class MirrorResult:
    """Best-effort outcome of copying an issued ticket into the graph."""

    status: MirrorStatus
    detail: str = ""

    @property
    def degraded(self) -> bool:
        return self.status is MirrorStatus.FAILED


@dataclass(slots=True)
class IssueResult:
    ticket_id: str
    service_id: str
    mirror: MirrorResult


@dataclass(slots=True)
class ActivationResult:
    ticket_id: str
    service_id: str
    station_id: str
    state: TicketState = TicketState.ACTIVATED


@dataclass(slots=True)
class InspectionResult:
    ticket_id: str
    service_id: str
    station_id: str
    remaining_seconds: int

    @property
    def remaining_minutes(self) -> int:
        return self.remaining_seconds // 60


@dataclass(slots=True)
class TicketAuditEntry:
    """History entry describing a committed ticket operation."""

    id: str
    ticket_id: str
    action: str
    actor: str
    from_state: TicketState | None
    to_state: TicketState | None
    created_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)

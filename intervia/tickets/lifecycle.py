"""Issue, activate and inspect tickets against the ledger and the graph."""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Callable, Iterator

from opentelemetry import trace

from intervia.gateways.base import GraphGateway, LedgerGateway
from intervia.metrics import MetricsRegistry, metrics_registry as default_metrics_registry
from intervia.validation import ConsistencyCheck, ValidationEngine

from .audit import TicketAuditRepository
from .errors import (
    AlreadyActivatedOrExpired,
    LedgerWriteFailed,
    LedgerWriteRejected,
    NotYetActivated,
    OwnershipMismatch,
    ServiceNotSynchronized,
    StationNotAuthorized,
    StopNotOnRoute,
    TicketExpired,
    TicketingError,
    TicketNotFound,
)
from .models import (
    ActivationResult,
    ConsistencyReport,
    InspectionResult,
    IssueResult,
    LedgerTicketState,
    MirrorResult,
    MirrorStatus,
    TicketAuditEntry,
)
from .state import TicketState, TicketStateMachine

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

Clock = Callable[[], float]


@dataclass(slots=True)
class _OperationScope:
    span: Any
    outcome: str = "ok"


class TicketLifecycle:
    """Drive tickets through ``issued -> activated -> expired``.

    The ledger is the system of record for ticket state. Every state-changing
    operation first proves that the ledger and the graph agree on the
    service (``ConsistencyCheck``) and, for activation and inspection, that
    the station is acceptable (``ValidationEngine``). Expiry is detected
    lazily during inspection and committed to the ledger at that moment.

    The graph mirror written after issuance and the audit log entries are
    best-effort: their failures are reported but never undo or fail a
    committed ledger write.
    """

    def __init__(
        self,
        ledger: LedgerGateway,
        graph: GraphGateway,
        *,
        consistency: ConsistencyCheck | None = None,
        validation: ValidationEngine | None = None,
        audit: TicketAuditRepository | None = None,
        metrics: MetricsRegistry | None = None,
        clock: Clock = time.time,
    ) -> None:
        self._ledger = ledger
        self._graph = graph
        self._metrics = metrics or default_metrics_registry
        self._consistency = consistency or ConsistencyCheck(ledger, graph, metrics=self._metrics)
        self._validation = validation or ValidationEngine(graph)
        self._audit = audit
        self._clock = clock

    @property
    def audit(self) -> TicketAuditRepository | None:
        return self._audit

    @contextmanager
    def _operation(self, operation: str, **attributes: str) -> Iterator[_OperationScope]:
        start = perf_counter()
        with tracer.start_as_current_span(f"ticket.{operation}") as span:
            for key, value in attributes.items():
                span.set_attribute(f"intervia.{key}", value)
            scope = _OperationScope(span=span)
            try:
                yield scope
            except TicketingError as exc:
                scope.outcome = exc.code
                span.set_attribute("intervia.error_code", exc.code)
                raise
            except Exception:
                scope.outcome = "error"
                raise
            finally:
                self._metrics.counter("ticket_operations_total", label_names=("operation", "outcome")).inc(
                    labels={"operation": operation, "outcome": scope.outcome}
                )
                self._metrics.distribution("ticket_operation_duration_seconds", label_names=("operation",)).observe(
                    perf_counter() - start, labels={"operation": operation}
                )

    async def _load_ticket(self, ticket_id: str, customer: str) -> LedgerTicketState:
        ticket_ref = await self._ledger.read_ticket_registry_entry(ticket_id)
        if ticket_ref is None:
            raise TicketNotFound(f"Ticket {ticket_id} not found", ticket_id=ticket_id)
        ticket = await self._ledger.read_ticket_state(ticket_ref)
        if not ticket.is_owned_by(customer):
            raise OwnershipMismatch(f"Ticket {ticket_id} is not owned by {customer}", ticket_id=ticket_id)
        return ticket

    @staticmethod
    def _require_agreement(report: ConsistencyReport, **context: str) -> None:
        if not report.agrees:
            raise ServiceNotSynchronized(
                f"Off-chain data not synchronized for service {report.service_id}",
                service_id=report.service_id,
                **context,
            )

    async def _require_station(
        self, ticket_id: str, report: ConsistencyReport, station_id: str
    ) -> None:
        if not await self._validation.is_valid_at_station(
            report.service_id, report.route, station_id, owner=report.owner
        ):
            logger.warning("Ticket %s refused at station %s", ticket_id, station_id)
            raise StationNotAuthorized(
                f"Ticket not valid for station {station_id}",
                ticket_id=ticket_id,
                service_id=report.service_id,
                station_id=station_id,
            )

    async def issue(
        self,
        *,
        customer: str,
        service_id: str,
        origin_stop_id: str,
        destination_stop_id: str,
        ticket_type: str,
    ) -> IssueResult:
        with self._operation("issue", service_id=service_id) as scope:
            report = await self._consistency.verify(service_id)
            self._require_agreement(report)

            missing = [stop for stop in (origin_stop_id, destination_stop_id) if stop not in report.route]
            if missing:
                raise StopNotOnRoute(
                    f"Stops {', '.join(missing)} are not part of service {service_id}",
                    service_id=service_id,
                    origin_stop_id=origin_stop_id,
                    destination_stop_id=destination_stop_id,
                )

            try:
                ticket_id = await self._ledger.write_issue_ticket(
                    customer, service_id, origin_stop_id, destination_stop_id, ticket_type
                )
            except LedgerWriteRejected as exc:
                raise LedgerWriteFailed(
                    f"Ledger rejected the issuance: {exc.message}", service_id=service_id
                ) from exc
            scope.span.set_attribute("intervia.ticket_id", ticket_id)
            logger.info("Ticket %s [%s] issued on the ledger for %s", ticket_id, ticket_type, customer)

            await self._record(
                ticket_id,
                "issued",
                actor=customer,
                to_state=TicketStateMachine.initial_state(),
                service_id=service_id,
                origin_stop_id=origin_stop_id,
                destination_stop_id=destination_stop_id,
                ticket_type=ticket_type,
            )

            mirror = await self._mirror(ticket_id, customer, service_id, ticket_type)
            if mirror.degraded:
                scope.outcome = "degraded"
                await self._record(ticket_id, "mirror_failed", actor=customer, service_id=service_id, detail=mirror.detail)
            return IssueResult(ticket_id=ticket_id, service_id=service_id, mirror=mirror)

    async def _mirror(self, ticket_id: str, customer: str, service_id: str, ticket_type: str) -> MirrorResult:
        try:
            await self._graph.insert_ticket_record(ticket_id, customer, service_id, ticket_type)
        except (TicketingError, ValueError) as exc:
            logger.warning("Ticket %s issued but graph mirror failed: %s", ticket_id, exc)
            self._metrics.counter("ticket_mirror_failures_total").inc()
            return MirrorResult(status=MirrorStatus.FAILED, detail=str(exc))
        return MirrorResult(status=MirrorStatus.SYNCHRONIZED)

    async def activate(self, ticket_id: str, *, customer: str, station_id: str) -> ActivationResult:
        with self._operation("activate", ticket_id=ticket_id, station_id=station_id):
            ticket = await self._load_ticket(ticket_id, customer)
            if not TicketStateMachine.can_transition(ticket.state, TicketState.ACTIVATED):
                raise AlreadyActivatedOrExpired(
                    "Ticket already activated or expired", ticket_id=ticket_id, state=ticket.state.value
                )

            report = await self._consistency.verify(ticket.service_id)
            self._require_agreement(report, ticket_id=ticket_id)
            await self._require_station(ticket_id, report, station_id)

            try:
                await self._ledger.write_activate(ticket.ticket_ref, station_id)
            except LedgerWriteRejected as exc:
                # a concurrent activation may have committed first
                current = await self._ledger.read_ticket_state(ticket.ticket_ref)
                if current.state is not TicketState.ISSUED:
                    raise AlreadyActivatedOrExpired(
                        "Ticket already activated or expired", ticket_id=ticket_id, state=current.state.value
                    ) from exc
                raise LedgerWriteFailed(
                    f"Ledger rejected the activation: {exc.message}", ticket_id=ticket_id
                ) from exc
            logger.info("Ticket %s activated at %s", ticket_id, station_id)

            await self._record(
                ticket_id,
                "activated",
                actor=customer,
                from_state=TicketState.ISSUED,
                to_state=TicketState.ACTIVATED,
                station_id=station_id,
            )
            return ActivationResult(ticket_id=ticket_id, service_id=ticket.service_id, station_id=station_id)

    async def inspect(self, ticket_id: str, *, customer: str, station_id: str) -> InspectionResult:
        with self._operation("inspect", ticket_id=ticket_id, station_id=station_id):
            ticket = await self._load_ticket(ticket_id, customer)
            if ticket.state is TicketState.ISSUED:
                raise NotYetActivated("Ticket not activated", ticket_id=ticket_id)
            if ticket.state is TicketState.EXPIRED:
                raise TicketExpired("Ticket expired", ticket_id=ticket_id)

            report = await self._consistency.verify(ticket.service_id)
            elapsed = int(self._clock()) - (ticket.activation_timestamp or 0)
            # expiry precedes the digest gate
            if elapsed > report.max_duration_seconds:
                await self._expire(ticket_id, ticket, customer)
                raise TicketExpired(
                    "Maximum duration exceeded",
                    ticket_id=ticket_id,
                    service_id=ticket.service_id,
                    elapsed_seconds=elapsed,
                )

            self._require_agreement(report, ticket_id=ticket_id)
            await self._require_station(ticket_id, report, station_id)

            remaining = min(report.max_duration_seconds, report.max_duration_seconds - elapsed)
            return InspectionResult(
                ticket_id=ticket_id,
                service_id=ticket.service_id,
                station_id=station_id,
                remaining_seconds=remaining,
            )

    async def _expire(self, ticket_id: str, ticket: LedgerTicketState, customer: str) -> None:
        TicketStateMachine.assert_transition(ticket.state, TicketState.EXPIRED)
        try:
            await self._ledger.write_force_expire(ticket.ticket_ref)
        except LedgerWriteRejected as exc:
            current = await self._ledger.read_ticket_state(ticket.ticket_ref)
            if current.state is not TicketState.EXPIRED:
                raise LedgerWriteFailed(
                    f"Ledger rejected the expiry: {exc.message}", ticket_id=ticket_id
                ) from exc
            logger.info("Ticket %s was already expired by a concurrent inspection", ticket_id)
            return
        logger.warning("Ticket %s exceeded its validity window and was expired", ticket_id)
        await self._record(
            ticket_id,
            "expired",
            actor=customer,
            from_state=TicketState.ACTIVATED,
            to_state=TicketState.EXPIRED,
        )

    async def _record(
        self,
        ticket_id: str,
        action: str,
        *,
        actor: str,
        from_state: TicketState | None = None,
        to_state: TicketState | None = None,
        **metadata: str,
    ) -> None:
        if self._audit is None:
            return
        entry = TicketAuditEntry(
            id=str(uuid.uuid4()),
            ticket_id=ticket_id,
            action=action,
            actor=actor,
            from_state=from_state,
            to_state=to_state,
            created_at=datetime.now(timezone.utc),
            metadata={key: str(value) for key, value in metadata.items()},
        )
        try:
            await self._audit.record(entry)
        except Exception:  # the ledger write is already committed
            logger.exception("Could not store audit entry %s for ticket %s", action, ticket_id)
            self._metrics.counter("ticket_audit_failures_total").inc()

"""Failure taxonomy shared by the gateways and the ticket lifecycle."""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar


class ErrorCategory(str, Enum):
    """Coarse failure classes a client can branch on."""

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    NOT_SYNCHRONIZED = "not_synchronized"
    GATEWAY_UNAVAILABLE = "gateway_unavailable"
    INVALID_REQUEST = "invalid_request"
    LEDGER_REJECTED = "ledger_rejected"


class RetryAdvice(str, Enum):
    NOW = "now"
    LATER = "later"
    NEVER = "never"


_RETRY_BY_CATEGORY: dict[ErrorCategory, RetryAdvice] = {
    ErrorCategory.GATEWAY_UNAVAILABLE: RetryAdvice.NOW,
    ErrorCategory.NOT_SYNCHRONIZED: RetryAdvice.LATER,
}


class TicketingError(RuntimeError):
    """Base error for ticket operations.

    Subclasses pin ``code`` and ``category``; the keyword arguments given at
    raise time become the ``context`` so a client can tell which ticket,
    service or station the failure refers to.
    """

    code: ClassVar[str] = "ticketing_error"
    category: ClassVar[ErrorCategory] = ErrorCategory.INVALID_REQUEST

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = {key: value for key, value in context.items() if value is not None}

    @property
    def retry(self) -> RetryAdvice:
        return _RETRY_BY_CATEGORY.get(self.category, RetryAdvice.NEVER)

    def to_detail(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "category": self.category.value,
            "retry": self.retry.value,
            "message": self.message,
            "context": dict(self.context),
        }


class TicketNotFound(TicketingError):
    code = "ticket_not_found"
    category = ErrorCategory.NOT_FOUND


class ServiceNotFound(TicketingError):
    code = "service_not_found"
    category = ErrorCategory.NOT_FOUND


class OwnershipMismatch(TicketingError):
    code = "ownership_mismatch"
    category = ErrorCategory.UNAUTHORIZED


class StationNotAuthorized(TicketingError):
    code = "station_not_authorized"
    category = ErrorCategory.UNAUTHORIZED


class AlreadyActivatedOrExpired(TicketingError):
    code = "already_activated_or_expired"
    category = ErrorCategory.CONFLICT


class NotYetActivated(TicketingError):
    code = "not_yet_activated"
    category = ErrorCategory.CONFLICT


class TicketExpired(TicketingError):
    code = "ticket_expired"
    category = ErrorCategory.CONFLICT


class ServiceNotSynchronized(TicketingError):
    code = "service_not_synchronized"
    category = ErrorCategory.NOT_SYNCHRONIZED


class OffChainDataMissing(TicketingError):
    code = "off_chain_data_missing"
    category = ErrorCategory.NOT_SYNCHRONIZED


class StopNotOnRoute(TicketingError):
    code = "stop_not_on_route"
    category = ErrorCategory.INVALID_REQUEST


class LedgerWriteFailed(TicketingError):
    code = "ledger_write_failed"
    category = ErrorCategory.LEDGER_REJECTED


class GatewayUnavailable(TicketingError):
    code = "gateway_unavailable"
    category = ErrorCategory.GATEWAY_UNAVAILABLE


class LedgerWriteRejected(TicketingError):
    """A ledger transaction was mined but reverted, or rejected before mining."""

    code = "ledger_write_rejected"
    category = ErrorCategory.LEDGER_REJECTED


class GraphUpdateFailed(TicketingError):
    """The graph store answered an update with an error status."""

    code = "graph_update_failed"
    category = ErrorCategory.GATEWAY_UNAVAILABLE

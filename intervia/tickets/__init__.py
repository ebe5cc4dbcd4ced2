"""Ticket domain: states, results, failures and the lifecycle orchestrator."""

from .errors import ErrorCategory, RetryAdvice, TicketingError
from .lifecycle import TicketLifecycle
from .models import (
    ActivationResult,
    InspectionResult,
    IssueResult,
    LedgerTicketState,
    MirrorResult,
    MirrorStatus,
    ServiceDefinition,
)
from .state import TicketState, TicketStateMachine

__all__ = [
    "ActivationResult",
    "ErrorCategory",
    "InspectionResult",
    "IssueResult",
    "LedgerTicketState",
    "MirrorResult",
    "MirrorStatus",
    "RetryAdvice",
    "ServiceDefinition",
    "TicketLifecycle",
    "TicketState",
    "TicketStateMachine",
    "TicketingError",
]

from __future__ import annotations

from enum import Enum


class TicketState(str, Enum):
    """Lifecycle states of a ticket as held by the ledger."""

    ISSUED = "issued"
    ACTIVATED = "activated"
    EXPIRED = "expired"

    @classmethod
    def from_ledger(cls, code: int) -> "TicketState":
        """Map the ledger's ``uint8`` state encoding onto the enum."""

        try:
            return _LEDGER_CODES[int(code)]
        except KeyError as exc:
            raise ValueError(f"Unknown ledger ticket state code: {code!r}") from exc


_LEDGER_CODES: dict[int, TicketState] = {
    0: TicketState.ISSUED,
    1: TicketState.ACTIVATED,
    2: TicketState.EXPIRED,
}


class TicketStateMachine:
    """Validate ticket lifecycle transitions."""

    _TRANSITIONS: dict[TicketState, set[TicketState]] = {
        TicketState.ISSUED: {TicketState.ACTIVATED},
        TicketState.ACTIVATED: {TicketState.EXPIRED},
        TicketState.EXPIRED: set(),
    }

    @classmethod
    def initial_state(cls) -> TicketState:
        return TicketState.ISSUED

    @classmethod
    def can_transition(cls, current: TicketState, new: TicketState) -> bool:
        return new in cls._TRANSITIONS.get(current, set())

    @classmethod
    def assert_transition(cls, current: TicketState, new: TicketState) -> None:
        if not cls.can_transition(current, new):
            raise ValueError(f"Invalid ticket state transition: {current.value} -> {new.value}")

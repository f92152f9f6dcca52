"""Per-channel ticket lifecycle.

A ticket channel moves through four states::

    NO_RECORD --create--> OPEN --close--> CLOSED --delete--> DELETED
                          OPEN --add participant--> OPEN

Anything else is rejected so that, for example, a ticket that is already
pending deletion cannot be closed a second time.
"""

import re
from enum import Enum

from aether_ticket.database import TicketRecord
from aether_ticket.errors import IllegalTransitionError

from . import TICKET_CHANNEL_PREFIX

_TICKET_CHANNEL_NAME = re.compile(rf"^{re.escape(TICKET_CHANNEL_PREFIX)}(\d+)$")


class TicketState(Enum):
    """States of a ticket channel."""

    NO_RECORD = "no-record"
    OPEN = "open"
    CLOSED = "closed"
    DELETED = "deleted"


class TicketAction(Enum):
    """Actions that move a ticket channel between states."""

    CREATE = "create"
    ADD_PARTICIPANT = "add participant"
    CLOSE = "close"
    DELETE = "delete"


TRANSITIONS: dict[tuple[TicketState, TicketAction], TicketState] = {
    (TicketState.NO_RECORD, TicketAction.CREATE): TicketState.OPEN,
    (TicketState.OPEN, TicketAction.ADD_PARTICIPANT): TicketState.OPEN,
    (TicketState.OPEN, TicketAction.CLOSE): TicketState.CLOSED,
    (TicketState.CLOSED, TicketAction.DELETE): TicketState.DELETED,
}

_REJECTION_MESSAGES = {
    TicketState.CLOSED: "This ticket is already closed and will be deleted shortly.",
    TicketState.DELETED: "This ticket has already been deleted.",
    TicketState.NO_RECORD: "This is not a ticket channel!",
    TicketState.OPEN: "This ticket is already open.",
}


def transition(state: TicketState, action: TicketAction) -> TicketState:
    """Return the state reached by applying ``action`` in ``state``.

    Raises:
        IllegalTransitionError: If ``action`` is not allowed in ``state``.
    """
    try:
        return TRANSITIONS[state, action]
    except KeyError:
        msg = f"Cannot {action.value} a ticket in state {state.value}"
        raise IllegalTransitionError(msg, _REJECTION_MESSAGES[state]) from None


def state_of(record: TicketRecord | None) -> TicketState:
    """Derive the lifecycle state of a channel from its ticket record."""
    if record is None:
        return TicketState.NO_RECORD
    if record.is_closed:
        return TicketState.CLOSED
    return TicketState.OPEN


def ticket_channel_name(user_id: int | str) -> str:
    """Return the channel name used for ``user_id``'s ticket."""
    return f"{TICKET_CHANNEL_PREFIX}{user_id}"


def parse_ticket_owner(channel_name: str) -> str | None:
    """Return the owner id encoded in a ticket channel name, if it follows the naming convention."""
    match = _TICKET_CHANNEL_NAME.match(channel_name)
    return match.group(1) if match else None

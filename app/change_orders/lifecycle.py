"""Change order lifecycle guards.

Every action a user can take on a change order is gated by a pure predicate
over the current record. ``allowed_actions`` is what the UI renders buttons
from and ``require`` is what the engine calls before it writes, so the two
can never disagree.

    draft ──sign──▶ pending_client ──send──▶ (sent) ──client sign / approve──▶ approved
    pending_internal ──sign──▶ pending_client
    any non-terminal ──reject──▶ rejected
    any non-terminal ──void──▶ voided

approved, rejected and voided are terminal.
"""
from enum import Enum
from typing import Callable

from loguru import logger

from app.change_orders.errors import GuardViolation
from app.models.change_order import ChangeOrder, ChangeOrderStatus, TERMINAL_STATUSES

S = ChangeOrderStatus


class Action(str, Enum):
    EDIT = "edit"
    UPDATE_NOTES = "update_notes"
    SIGN_INTERNALLY = "sign_internally"
    SEND = "send"
    RESEND = "resend"
    APPROVE = "approve"
    CLIENT_SIGN = "client_sign"
    REJECT = "reject"
    VOID = "void"
    DELETE = "delete"


ACTION_LABELS = {
    Action.EDIT: "edit",
    Action.UPDATE_NOTES: "update notes on",
    Action.SIGN_INTERNALLY: "sign",
    Action.SEND: "send",
    Action.RESEND: "resend",
    Action.APPROVE: "approve",
    Action.CLIENT_SIGN: "countersign",
    Action.REJECT: "reject",
    Action.VOID: "void",
    Action.DELETE: "delete",
}

EDITABLE_STATUSES = frozenset({S.DRAFT, S.PENDING_INTERNAL})
OPEN_STATUSES = frozenset({S.DRAFT, S.PENDING_INTERNAL, S.PENDING_CLIENT})

# Statuses the stored row must still be in for the write to land. Passed to
# the record store as part of the conditional update.
STATUS_PRECONDITIONS: dict[Action, frozenset[ChangeOrderStatus]] = {
    Action.EDIT: EDITABLE_STATUSES,
    Action.UPDATE_NOTES: frozenset(ChangeOrderStatus),
    Action.SIGN_INTERNALLY: OPEN_STATUSES,
    Action.SEND: OPEN_STATUSES,
    Action.RESEND: frozenset({S.PENDING_CLIENT}),
    Action.APPROVE: frozenset({S.PENDING_CLIENT, S.PENDING_INTERNAL}),
    Action.CLIENT_SIGN: frozenset({S.PENDING_CLIENT}),
    Action.REJECT: OPEN_STATUSES,
    Action.VOID: OPEN_STATUSES,
    Action.DELETE: frozenset({S.DRAFT}),
}


def _edit(co: ChangeOrder) -> str | None:
    if co.status not in EDITABLE_STATUSES:
        return "only draft and pending internal change orders can be edited"
    return None


def _update_notes(co: ChangeOrder) -> str | None:
    return None


def _sign_internally(co: ChangeOrder) -> str | None:
    if co.internal_signed_at is not None:
        return "it has already been signed internally"
    if co.status in TERMINAL_STATUSES:
        return "it is closed"
    return None


def _send(co: ChangeOrder) -> str | None:
    if co.internal_signed_at is None:
        return "it must be signed internally first"
    if co.sent_at is not None:
        return "it has already been sent; use resend"
    if co.status in TERMINAL_STATUSES:
        return "it is closed"
    return None


def _resend(co: ChangeOrder) -> str | None:
    if co.internal_signed_at is None:
        return "it must be signed internally first"
    if co.sent_at is None:
        return "it has not been sent yet"
    if co.status != S.PENDING_CLIENT:
        return "only change orders awaiting the client can be resent"
    if co.client_signed_at is not None:
        return "the client has already signed"
    return None


def _approve(co: ChangeOrder) -> str | None:
    if co.status not in (S.PENDING_CLIENT, S.PENDING_INTERNAL):
        return "only pending change orders can be approved"
    if co.internal_signed_at is None:
        return "it must be signed internally first"
    return None


def _client_sign(co: ChangeOrder) -> str | None:
    if co.status != S.PENDING_CLIENT:
        return "it is not awaiting the client's signature"
    if co.sent_at is None:
        return "it has not been sent to the client"
    if co.client_signed_at is not None:
        return "the client has already signed"
    return None


def _reject(co: ChangeOrder) -> str | None:
    if co.status in TERMINAL_STATUSES:
        return "it is closed"
    return None


def _void(co: ChangeOrder) -> str | None:
    if co.status in TERMINAL_STATUSES:
        return "it is closed"
    return None


def _delete(co: ChangeOrder) -> str | None:
    if co.status != S.DRAFT:
        return "only drafts can be deleted"
    return None


GUARDS: dict[Action, Callable[[ChangeOrder], str | None]] = {
    Action.EDIT: _edit,
    Action.UPDATE_NOTES: _update_notes,
    Action.SIGN_INTERNALLY: _sign_internally,
    Action.SEND: _send,
    Action.RESEND: _resend,
    Action.APPROVE: _approve,
    Action.CLIENT_SIGN: _client_sign,
    Action.REJECT: _reject,
    Action.VOID: _void,
    Action.DELETE: _delete,
}


def blocked_reason(action: Action, co: ChangeOrder) -> str | None:
    """Why ``action`` is illegal on ``co`` right now, or None if it is legal."""
    return GUARDS[action](co)


def is_allowed(action: Action, co: ChangeOrder) -> bool:
    return blocked_reason(action, co) is None


def allowed_actions(co: ChangeOrder) -> set[Action]:
    return {action for action in Action if blocked_reason(action, co) is None}


def require(action: Action, co: ChangeOrder) -> None:
    """Raise GuardViolation unless ``action`` is currently legal."""
    reason = blocked_reason(action, co)
    if reason is not None:
        logger.info(
            f"Refused {action.value} on {co.co_number} "
            f"(status={co.status.value}): {reason}"
        )
        raise GuardViolation(ACTION_LABELS[action], co.status.value, reason)


def status_after(action: Action, co: ChangeOrder) -> ChangeOrderStatus:
    """Status the record moves to when ``action`` succeeds."""
    if action == Action.SIGN_INTERNALLY:
        return S.PENDING_CLIENT
    if action == Action.SEND:
        return S.PENDING_CLIENT
    if action in (Action.APPROVE, Action.CLIENT_SIGN):
        return S.APPROVED
    if action == Action.REJECT:
        return S.REJECTED
    if action == Action.VOID:
        return S.VOIDED
    return co.status


def initial_status(as_draft: bool) -> ChangeOrderStatus:
    return S.DRAFT if as_draft else S.PENDING_INTERNAL

"""Change order engine errors.

Guard and precondition errors are raised before any write. External I/O
errors are raised as soon as the failing step is reached, leaving the stored
record untouched.
"""


class ChangeOrderError(Exception):
    """Base class; ``message`` is safe to show to the user."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ChangeOrderNotFound(ChangeOrderError):
    def __init__(self, change_order_id):
        super().__init__(f"Change order '{change_order_id}' not found")
        self.change_order_id = change_order_id


class GuardViolation(ChangeOrderError):
    """An action was attempted while its precondition is false."""

    def __init__(self, action: str, status: str, reason: str):
        super().__init__(f"Cannot {action} a change order in '{status}' status: {reason}")
        self.action = action
        self.status = status
        self.reason = reason


class EmptySignature(ChangeOrderError):
    def __init__(self, message: str = "Signature is empty. Draw a signature before signing."):
        super().__init__(message)


class NoClientLinked(ChangeOrderError):
    def __init__(self, project_id):
        super().__init__(
            "No client is linked to this project. Link a client before sending."
        )
        self.project_id = project_id


class NoContactEmail(ChangeOrderError):
    def __init__(self, client_id):
        super().__init__(
            "No client email found. Add a contact with an email address to this "
            "project's client before sending."
        )
        self.client_id = client_id


class DispatchFailed(ChangeOrderError):
    def __init__(self, recipient: str, detail: str = ""):
        msg = f"Failed to send change order to {recipient}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
        self.recipient = recipient


class ArtifactPersistFailure(ChangeOrderError):
    """Archiving the approved PDF failed. Never reverts the approval."""

    def __init__(self, change_order_id, detail: str = ""):
        msg = f"Could not archive PDF for change order '{change_order_id}'"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
        self.change_order_id = change_order_id


class StoreConflict(ChangeOrderError):
    """The record changed underneath us. Safe to retry after a re-read."""

    def __init__(self, change_order_id, detail: str = ""):
        msg = f"Change order '{change_order_id}' was modified concurrently"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg + "; reload and try again")
        self.change_order_id = change_order_id

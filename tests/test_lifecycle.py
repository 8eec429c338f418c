"""Tests for change order lifecycle guards."""
import os
import pytest
from datetime import datetime, timezone
from uuid import uuid4

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-jwt-tokens-minimum-64-chars-long-1234567890abcdef")

from app.change_orders.errors import GuardViolation
from app.change_orders.lifecycle import (
    Action,
    STATUS_PRECONDITIONS,
    allowed_actions,
    blocked_reason,
    initial_status,
    is_allowed,
    require,
    status_after,
)
from app.models.change_order import ChangeOrder, ChangeOrderStatus, TERMINAL_STATUSES

S = ChangeOrderStatus
NOW = datetime(2026, 3, 1, 15, 0, tzinfo=timezone.utc)


def _co(status=S.DRAFT, **fields) -> ChangeOrder:
    return ChangeOrder(
        id=uuid4(),
        project_id=uuid4(),
        co_number="CO-007",
        title="Test",
        status=status,
        **fields,
    )


def _signed(**fields) -> ChangeOrder:
    return _co(S.PENDING_CLIENT, internal_signed_at=NOW, **fields)


def _sent(**fields) -> ChangeOrder:
    return _signed(sent_at=NOW, sent_to_email="pm@acme.example", **fields)


class TestAllowedActions:
    def test_draft(self):
        assert allowed_actions(_co(S.DRAFT)) == {
            Action.EDIT,
            Action.UPDATE_NOTES,
            Action.SIGN_INTERNALLY,
            Action.REJECT,
            Action.VOID,
            Action.DELETE,
        }

    def test_pending_internal_cannot_be_deleted(self):
        actions = allowed_actions(_co(S.PENDING_INTERNAL))
        assert Action.EDIT in actions
        assert Action.DELETE not in actions
        assert Action.SEND not in actions

    def test_signed_not_sent(self):
        assert allowed_actions(_signed()) == {
            Action.UPDATE_NOTES,
            Action.SEND,
            Action.APPROVE,
            Action.REJECT,
            Action.VOID,
        }

    def test_sent_awaiting_client(self):
        assert allowed_actions(_sent()) == {
            Action.UPDATE_NOTES,
            Action.RESEND,
            Action.APPROVE,
            Action.CLIENT_SIGN,
            Action.REJECT,
            Action.VOID,
        }

    @pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_statuses_only_allow_notes(self, status):
        co = _co(status, internal_signed_at=NOW, sent_at=NOW, approved_at=NOW)
        assert allowed_actions(co) == {Action.UPDATE_NOTES}

    def test_guard_and_store_preconditions_agree(self):
        # Whenever a guard passes, the stored status satisfies the conditional write.
        samples = [
            _co(S.DRAFT),
            _co(S.PENDING_INTERNAL),
            _signed(),
            _sent(),
            _sent(client_signed_at=NOW, client_signer_name="Pat"),
        ]
        for co in samples:
            for action in allowed_actions(co):
                assert co.status in STATUS_PRECONDITIONS[action], (action, co.status)


class TestGuards:
    def test_sign_twice_is_refused(self):
        reason = blocked_reason(Action.SIGN_INTERNALLY, _signed())
        assert reason == "it has already been signed internally"

    def test_send_needs_internal_signature(self):
        assert not is_allowed(Action.SEND, _co(S.PENDING_INTERNAL))

    def test_send_once_then_resend(self):
        co = _sent()
        assert not is_allowed(Action.SEND, co)
        assert is_allowed(Action.RESEND, co)

    def test_resend_after_client_signature_refused(self):
        co = _sent(client_signed_at=NOW, client_signer_name="Pat")
        assert not is_allowed(Action.RESEND, co)

    def test_approve_needs_internal_signature(self):
        assert not is_allowed(Action.APPROVE, _co(S.PENDING_INTERNAL))

    def test_client_sign_needs_dispatch(self):
        assert not is_allowed(Action.CLIENT_SIGN, _signed())

    def test_void_from_draft_then_delete_refused(self):
        co = _co(S.DRAFT)
        assert is_allowed(Action.VOID, co)
        voided = co.model_copy(update={"status": status_after(Action.VOID, co)})
        assert voided.status == S.VOIDED
        assert not is_allowed(Action.DELETE, voided)

    def test_edit_only_while_editable(self):
        assert is_allowed(Action.EDIT, _co(S.DRAFT))
        assert is_allowed(Action.EDIT, _co(S.PENDING_INTERNAL))
        assert not is_allowed(Action.EDIT, _signed())


class TestRequire:
    def test_raises_guard_violation(self):
        with pytest.raises(GuardViolation) as exc_info:
            require(Action.DELETE, _signed())
        err = exc_info.value
        assert err.status == "pending_client"
        assert err.reason == "only drafts can be deleted"
        assert "Cannot delete" in err.message

    def test_passes_silently(self):
        require(Action.EDIT, _co(S.DRAFT))


class TestStatusAfter:
    def test_sign_moves_to_pending_client(self):
        assert status_after(Action.SIGN_INTERNALLY, _co(S.DRAFT)) == S.PENDING_CLIENT

    def test_resolutions(self):
        co = _sent()
        assert status_after(Action.APPROVE, co) == S.APPROVED
        assert status_after(Action.CLIENT_SIGN, co) == S.APPROVED
        assert status_after(Action.REJECT, co) == S.REJECTED
        assert status_after(Action.VOID, co) == S.VOIDED

    def test_notes_and_edit_keep_status(self):
        co = _co(S.PENDING_INTERNAL)
        assert status_after(Action.EDIT, co) == S.PENDING_INTERNAL
        assert status_after(Action.UPDATE_NOTES, co) == S.PENDING_INTERNAL

    def test_initial_status(self):
        assert initial_status(True) == S.DRAFT
        assert initial_status(False) == S.PENDING_INTERNAL

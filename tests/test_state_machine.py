"""Tests for the payment lifecycle state machine."""

import pytest

from kasmoni.models import PaymentState
from kasmoni.services.errors import InvalidTransitionError
from kasmoni.services.state_machine import PaymentLifecycleStateMachine


class TestPaymentLifecycleStateMachine:
    """Test state machine transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        # active → trashed (soft delete)
        assert PaymentLifecycleStateMachine.can_transition("active", "trashed") is True

        # active → archived
        assert PaymentLifecycleStateMachine.can_transition("active", "archived") is True

        # trashed → active (restore)
        assert PaymentLifecycleStateMachine.can_transition("trashed", "active") is True

        # trashed → purged
        assert PaymentLifecycleStateMachine.can_transition("trashed", "purged") is True

        # archived → active (restore)
        assert PaymentLifecycleStateMachine.can_transition("archived", "active") is True

        # archived → trashed (move to trashbox)
        assert PaymentLifecycleStateMachine.can_transition("archived", "trashed") is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        # Can't purge without going through the trashbox
        assert PaymentLifecycleStateMachine.can_transition("active", "purged") is False
        assert PaymentLifecycleStateMachine.can_transition("archived", "purged") is False

        # Trashed payments must be restored before archiving
        assert PaymentLifecycleStateMachine.can_transition("trashed", "archived") is False

        # Purged is terminal
        assert PaymentLifecycleStateMachine.can_transition("purged", "active") is False
        assert PaymentLifecycleStateMachine.can_transition("purged", "trashed") is False

    def test_validate_transition_raises(self):
        """Test that validate_transition raises for invalid transitions."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            PaymentLifecycleStateMachine.validate_transition("active", "purged")

        assert exc_info.value.from_state == "active"
        assert exc_info.value.to_state == "purged"
        assert exc_info.value.code == "INVALID_TRANSITION"
        assert "trashed" in str(exc_info.value)

    def test_validate_transition_accepts_enums(self):
        PaymentLifecycleStateMachine.validate_transition(
            PaymentState.TRASHED, PaymentState.ACTIVE
        )

        with pytest.raises(InvalidTransitionError) as exc_info:
            PaymentLifecycleStateMachine.validate_transition(
                PaymentState.TRASHED, PaymentState.TRASHED
            )
        assert exc_info.value.from_state == "trashed"
        assert "already trashed" in str(exc_info.value)

    def test_is_restore(self):
        """Test restore detection."""
        assert PaymentLifecycleStateMachine.is_restore("trashed", "active") is True
        assert PaymentLifecycleStateMachine.is_restore("archived", "active") is True
        assert PaymentLifecycleStateMachine.is_restore("archived", "trashed") is False
        assert PaymentLifecycleStateMachine.is_restore("active", "archived") is False

    def test_can_edit(self):
        """Only active payments can be edited."""
        assert PaymentLifecycleStateMachine.can_edit("active") is True
        assert PaymentLifecycleStateMachine.can_edit("trashed") is False
        assert PaymentLifecycleStateMachine.can_edit("archived") is False

        with pytest.raises(InvalidTransitionError):
            PaymentLifecycleStateMachine.validate_edit("archived")

    def test_counts_toward_status(self):
        """Only active payments feed group status."""
        assert PaymentLifecycleStateMachine.counts_toward_status("active") is True
        assert PaymentLifecycleStateMachine.counts_toward_status("trashed") is False
        assert PaymentLifecycleStateMachine.counts_toward_status("archived") is False

    def test_purged_is_terminal(self):
        for state in ("active", "trashed", "archived", "purged"):
            assert PaymentLifecycleStateMachine.can_transition("purged", state) is False

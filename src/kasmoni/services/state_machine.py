"""Payment lifecycle state machine with transition validation."""

from __future__ import annotations

from kasmoni.models.enums import PaymentState
from kasmoni.services.errors import InvalidTransitionError


class PaymentLifecycleStateMachine:
    """State machine for payment record lifecycle transitions.

    Allowed transitions:
    - active → trashed (soft delete)
    - active → archived
    - trashed → active (restore)
    - trashed → purged (permanent delete)
    - archived → active (restore)
    - archived → trashed (move to trashbox, confirmed with a reason)
    """

    # Define valid transitions: {from_state: [allowed_to_states]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        PaymentState.ACTIVE: [PaymentState.TRASHED, PaymentState.ARCHIVED],
        PaymentState.TRASHED: [PaymentState.ACTIVE, PaymentState.PURGED],
        PaymentState.ARCHIVED: [PaymentState.ACTIVE, PaymentState.TRASHED],
        PaymentState.PURGED: [],  # Terminal state
    }

    # States whose records feed the status aggregator and active listings
    VISIBLE_TO_AGGREGATION = {PaymentState.ACTIVE}

    # States whose field values may be edited
    EDITABLE = {PaymentState.ACTIVE}

    @classmethod
    def can_transition(cls, from_state: str, to_state: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_state, [])
        return to_state in allowed

    @classmethod
    def validate_transition(cls, from_state: str, to_state: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_state, to_state):
            raise InvalidTransitionError(
                _value(from_state), _value(to_state), cls._hint(from_state, to_state)
            )

    @classmethod
    def can_edit(cls, state: str) -> bool:
        """Check if field/status updates are allowed in this state."""
        return state in cls.EDITABLE

    @classmethod
    def validate_edit(cls, state: str) -> None:
        """Raise InvalidTransitionError unless the record may be edited."""
        if not cls.can_edit(state):
            raise InvalidTransitionError(
                _value(state), _value(state), "only active payments can be updated"
            )

    @classmethod
    def counts_toward_status(cls, state: str) -> bool:
        """Check if records in this state are aggregation input."""
        return state in cls.VISIBLE_TO_AGGREGATION

    @classmethod
    def is_restore(cls, from_state: str, to_state: str) -> bool:
        """Check if this transition is a restore (trashed/archived → active)."""
        return (
            from_state in (PaymentState.TRASHED, PaymentState.ARCHIVED)
            and to_state == PaymentState.ACTIVE
        )

    @staticmethod
    def _hint(from_state: str, to_state: str) -> str | None:
        if from_state == to_state:
            return f"payment is already {_value(from_state)}"
        if from_state == PaymentState.TRASHED and to_state == PaymentState.ARCHIVED:
            return "restore the payment before archiving it"
        if from_state == PaymentState.ACTIVE and to_state == PaymentState.PURGED:
            return "only trashed payments can be permanently deleted"
        return None


def _value(state: str) -> str:
    return state.value if isinstance(state, PaymentState) else str(state)

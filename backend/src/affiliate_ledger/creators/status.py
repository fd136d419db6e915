"""Creator status state machine."""

from affiliate_ledger.errors import InvalidStatusTransitionError
from affiliate_ledger.storage.models import CreatorStatus

# inactive -> approved only through reinstate()
CREATOR_TRANSITIONS: dict[CreatorStatus, set[CreatorStatus]] = {
    CreatorStatus.PENDING: {CreatorStatus.APPROVED, CreatorStatus.INACTIVE},
    CreatorStatus.APPROVED: {CreatorStatus.SUSPENDED, CreatorStatus.INACTIVE},
    CreatorStatus.SUSPENDED: {CreatorStatus.APPROVED, CreatorStatus.INACTIVE},
    CreatorStatus.INACTIVE: set(),
}

# Statuses in which a creator's links may be active
LINK_ACTIVE_STATUSES = {CreatorStatus.APPROVED}


def can_transition(current: CreatorStatus | str, target: CreatorStatus | str) -> bool:
    return CreatorStatus(target) in CREATOR_TRANSITIONS[CreatorStatus(current)]


def check_transition(current: CreatorStatus | str, target: CreatorStatus | str) -> None:
    """Raise unless ``current -> target`` is an edge of the table.

    Raises:
        InvalidStatusTransitionError: Transition not allowed
    """
    if not can_transition(current, target):
        raise InvalidStatusTransitionError("creator", CreatorStatus(current).value, CreatorStatus(target).value)

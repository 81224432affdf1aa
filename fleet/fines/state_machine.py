# fleet/fines/state_machine.py

"""
Fine status rules.

Every status change in FineService goes through ensure_transition(), and
every "has this already happened" check reads PROCESSED_STATUSES; no other
code compares statuses to decide whether a move is legal.
"""

from typing import Dict, FrozenSet

from fleet.fines.exceptions import FineAlreadyProcessedError, InvalidFineTransitionError
from fleet.fines.models import FineStatus

S = FineStatus

ALLOWED_TRANSITIONS: Dict[FineStatus, FrozenSet[FineStatus]] = {
    S.OPEN: frozenset({S.APPEALED, S.CHARGED, S.PAID, S.WAIVED}),
    S.APPEALED: frozenset({S.APPEAL_SUBMITTED, S.APPEAL_SUCCESSFUL, S.CHARGED, S.PAID, S.WAIVED}),
    S.APPEAL_SUBMITTED: frozenset({S.APPEAL_SUCCESSFUL, S.APPEAL_REJECTED, S.WAIVED}),
    S.APPEAL_REJECTED: frozenset({S.CHARGED, S.PAID, S.WAIVED}),
    S.CHARGED: frozenset({S.PAID, S.WAIVED}),
    # Waiving a paid fine is a financial reversal.
    S.PAID: frozenset({S.WAIVED}),
    S.WAIVED: frozenset(),
    S.APPEAL_SUCCESSFUL: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)

# Per target: the statuses in which that action has, in effect, already run.
# A repeat from one of these is AlreadyProcessed rather than InvalidTransition.
PROCESSED_STATUSES: Dict[FineStatus, FrozenSet[FineStatus]] = {
    S.CHARGED: frozenset({S.CHARGED, S.PAID}) | TERMINAL_STATUSES,
    S.WAIVED: TERMINAL_STATUSES,
    S.APPEAL_SUCCESSFUL: TERMINAL_STATUSES,
}

# Only a fine waiting on its customer moves to Paid when its charge settles.
SETTLES_ON_PAYMENT = frozenset({S.CHARGED})


def can_transition(current: FineStatus, target: FineStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: FineStatus, target: FineStatus) -> None:
    if not can_transition(current, target):
        raise InvalidFineTransitionError(current.value, target.value)


def ensure_not_processed(fine_id: int, current: FineStatus, target: FineStatus) -> None:
    if current in PROCESSED_STATUSES.get(target, frozenset()):
        raise FineAlreadyProcessedError(fine_id, current.value)

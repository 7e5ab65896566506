"""Validator lifecycle transitions."""

from withdrawal_safe.errors import InvalidTransitionError
from withdrawal_safe.models import ValidatorPhase

_TRANSITIONS: dict[ValidatorPhase, frozenset[ValidatorPhase]] = {
    ValidatorPhase.NOT_INITIALIZED: frozenset({ValidatorPhase.STAKE_DEPOSITED}),
    ValidatorPhase.STAKE_DEPOSITED: frozenset(
        {ValidatorPhase.LIVE, ValidatorPhase.WAITING_FOR_APPROVAL, ValidatorPhase.NOT_INITIALIZED}
    ),
    ValidatorPhase.WAITING_FOR_APPROVAL: frozenset({ValidatorPhase.LIVE, ValidatorPhase.NOT_INITIALIZED}),
    ValidatorPhase.LIVE: frozenset({ValidatorPhase.EXITED, ValidatorPhase.BEING_SLASHED}),
    ValidatorPhase.BEING_SLASHED: frozenset({ValidatorPhase.EXITED}),
    ValidatorPhase.EXITED: frozenset({ValidatorPhase.FULLY_WITHDRAWN}),
    ValidatorPhase.FULLY_WITHDRAWN: frozenset(),
}


def allowed_transitions(current: ValidatorPhase) -> frozenset[ValidatorPhase]:
    """Phases reachable from `current` in one step."""
    return _TRANSITIONS[current]


def is_valid_transition(current: ValidatorPhase, new: ValidatorPhase) -> bool:
    return new in _TRANSITIONS[current]


def validate_transition(current: ValidatorPhase, new: ValidatorPhase) -> None:
    """Raise InvalidTransitionError unless `current -> new` is a legal lifecycle step."""
    if not is_valid_transition(current, new):
        raise InvalidTransitionError(f"Invalid phase transition: {current.value} -> {new.value}")

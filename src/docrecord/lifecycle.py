from enum import StrEnum
from .exceptions import InvalidTransition


class LifecycleState(StrEnum):
    """
    LifecycleState tracks where a record is relative to storage.

    new: constructed by application code, never saved
    persisted: saved, or materialized from a stored document
    destroyed: removed from storage, still usable in memory
    """

    new = "new"
    persisted = "persisted"
    destroyed = "destroyed"


_TRANSITIONS = {
    LifecycleState.new: {LifecycleState.persisted, LifecycleState.destroyed},
    LifecycleState.persisted: {LifecycleState.persisted, LifecycleState.destroyed},
    LifecycleState.destroyed: set(),
}


def check_transition(current: LifecycleState, target: LifecycleState) -> None:
    if target not in _TRANSITIONS[current]:
        raise InvalidTransition(f"cannot move record from {current} to {target}")


class Hooks:
    """
    Lifecycle callbacks, all no-ops unless a record type overrides them.
    """

    def after_new(self) -> None:
        pass

    def before_validation(self) -> None:
        pass

    def after_validation(self) -> None:
        pass

    def before_save(self) -> None:
        pass

    def after_save(self) -> None:
        pass

    def before_destroy(self) -> None:
        pass

    def after_destroy(self) -> None:
        pass

"""Validator membership and aggregate counters of a safe."""

from collections.abc import Iterator
from dataclasses import dataclass, field

from withdrawal_safe.errors import StateError


@dataclass
class ValidatorMembership:
    """
    Ordered set of validator ids backed by a dense list and an id -> index map.

    Removal swaps the last id into the freed slot, so indices stay dense and the map is updated
    for the moved id only.
    """

    validator_ids: list[int] = field(default_factory=list)
    indices: dict[int, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.validator_ids)

    def __contains__(self, validator_id: object) -> bool:
        return validator_id in self.indices

    def __iter__(self) -> Iterator[int]:
        return iter(self.validator_ids)

    def index_of(self, validator_id: int) -> int:
        if validator_id not in self.indices:
            raise StateError(f"Validator {validator_id} is not registered in this safe")
        return self.indices[validator_id]

    def add(self, validator_id: int) -> int:
        """Append a validator and return its index."""
        if validator_id in self.indices:
            raise StateError(f"Validator {validator_id} is already registered in this safe")
        index = len(self.validator_ids)
        self.validator_ids.append(validator_id)
        self.indices[validator_id] = index
        return index

    def remove(self, validator_id: int) -> None:
        """Swap-remove a validator."""
        index = self.index_of(validator_id)
        last_id = self.validator_ids[-1]
        self.validator_ids[index] = last_id
        self.indices[last_id] = index
        self.validator_ids.pop()
        del self.indices[validator_id]


@dataclass
class SafeCounters:
    """Aggregate counters shared by all validators of a multi-validator safe."""

    # Validators in LIVE, BEING_SLASHED or EXITED.
    num_associated_validators: int = 0
    # Exit requests raised against the B-NFT holder that are still outstanding.
    num_exit_requests: int = 0
    # Validators that exited but are not fully withdrawn yet.
    num_exited_validators: int = 0

    def increment_associated(self) -> None:
        self.num_associated_validators += 1

    def decrement_associated(self) -> None:
        if self.num_associated_validators == 0:
            raise StateError("No associated validators left to remove")
        if self.num_exited_validators >= self.num_associated_validators:
            raise StateError(
                f"Cannot drop associated count below exited count ({self.num_exited_validators}); "
                "decrement exited validators first"
            )
        self.num_associated_validators -= 1

    def increment_exit_requests(self) -> None:
        self.num_exit_requests += 1

    def decrement_exit_requests(self) -> None:
        if self.num_exit_requests == 0:
            raise StateError("No outstanding exit requests")
        self.num_exit_requests -= 1

    def increment_exited(self) -> None:
        if self.num_exited_validators >= self.num_associated_validators:
            raise StateError(
                f"Exited validators ({self.num_exited_validators + 1}) would exceed "
                f"associated validators ({self.num_associated_validators})"
            )
        self.num_exited_validators += 1

    def decrement_exited(self) -> None:
        if self.num_exited_validators == 0:
            raise StateError("No exited validators left to remove")
        self.num_exited_validators -= 1

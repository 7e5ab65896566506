"""Invariant checks for payouts, registry and ledgers."""

from withdrawal_safe.constants import FULL_PRINCIPAL_WEI, SLASHING_FLOOR_WEI
from withdrawal_safe.errors import IncorrectAmountError, StateError
from withdrawal_safe.models import Payouts
from withdrawal_safe.registry import SafeCounters, ValidatorMembership


def validate_conservation(payouts: Payouts, expected_total_wei: int, *, warn_only: bool = False) -> list[str]:
    """
    Check that a split neither creates nor destroys value.

    Returns list of issues. If warn_only=False, raises IncorrectAmountError on the first one.
    """
    issues: list[str] = []

    if payouts.total != expected_total_wei:
        msg = (
            f"Payout sum mismatch: operator({payouts.operator}) + tnft({payouts.tnft}) + bnft({payouts.bnft}) "
            f"+ treasury({payouts.treasury}) = {payouts.total} != {expected_total_wei}"
        )
        issues.append(msg)
        if not warn_only:
            raise IncorrectAmountError(msg)

    for name in ("operator", "tnft", "bnft", "treasury"):
        value = getattr(payouts, name)
        if value < 0:
            msg = f"Negative {name} payout: {value}"
            issues.append(msg)
            if not warn_only:
                raise IncorrectAmountError(msg)

    return issues


def validate_principal_band(principal_wei: int, *, warn_only: bool = False) -> list[str]:
    """Principal of one validator must lie within [16, 32] ETH."""
    issues: list[str] = []
    if not SLASHING_FLOOR_WEI <= principal_wei <= FULL_PRINCIPAL_WEI:
        msg = f"Principal {principal_wei} wei outside [{SLASHING_FLOOR_WEI}, {FULL_PRINCIPAL_WEI}]"
        issues.append(msg)
        if not warn_only:
            raise IncorrectAmountError(msg)
    return issues


def validate_membership(membership: ValidatorMembership, *, warn_only: bool = True) -> list[str]:
    """
    Check that the id -> index map and the dense id list describe the same set.

    By default, only reports issues (doesn't raise).
    """
    issues: list[str] = []

    if len(membership.indices) != len(membership.validator_ids):
        issues.append(
            f"Index map has {len(membership.indices)} entries but id list has {len(membership.validator_ids)}"
        )

    for validator_id, index in membership.indices.items():
        if index >= len(membership.validator_ids) or membership.validator_ids[index] != validator_id:
            issues.append(f"Validator {validator_id} maps to index {index} which does not hold it")

    seen: set[int] = set()
    for index, validator_id in enumerate(membership.validator_ids):
        if validator_id in seen:
            issues.append(f"Duplicate validator {validator_id} at index {index}")
        seen.add(validator_id)
        if membership.indices.get(validator_id) != index:
            issues.append(f"Validator {validator_id} at index {index} is missing from the index map")

    if issues and not warn_only:
        raise StateError("; ".join(issues))
    return issues


def validate_counters(counters: SafeCounters, num_members: int, *, warn_only: bool = True) -> list[str]:
    """Counters must be non-negative, bounded by the registry size, and exited <= associated."""
    issues: list[str] = []

    fields = {
        "numAssociatedValidators": counters.num_associated_validators,
        "numExitRequests": counters.num_exit_requests,
        "numExitedValidators": counters.num_exited_validators,
    }
    for name, value in fields.items():
        if value < 0:
            issues.append(f"negative {name}: {value}")
        if value > num_members:
            issues.append(f"{name}={value} exceeds registered validators ({num_members})")

    if counters.num_exited_validators > counters.num_associated_validators:
        issues.append(
            f"numExitedValidators={counters.num_exited_validators} exceeds "
            f"numAssociatedValidators={counters.num_associated_validators}"
        )

    if issues and not warn_only:
        raise StateError("; ".join(issues))
    return issues


def validate_exit_requests(
    requested: set[int], membership: ValidatorMembership, counters: SafeCounters, *, warn_only: bool = True
) -> list[str]:
    """Outstanding exit requests must belong to members and match numExitRequests."""
    issues: list[str] = []

    strangers = sorted(vid for vid in requested if vid not in membership)
    if strangers:
        issues.append(f"Exit requests recorded for unregistered validators {strangers}")
    if len(requested) != counters.num_exit_requests:
        issues.append(
            f"numExitRequests={counters.num_exit_requests} but {len(requested)} validators have an exit request"
        )

    if issues and not warn_only:
        raise StateError("; ".join(issues))
    return issues

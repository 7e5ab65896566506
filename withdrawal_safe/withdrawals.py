"""Bookkeeping of withdrawals queued in the restaking delegation layer."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from web3 import Web3

from withdrawal_safe.constants import FULL_PRINCIPAL_GWEI, WEI_PER_GWEI
from withdrawal_safe.errors import AuthorizationError, InsufficientBalanceError, SlashedError, StateError
from withdrawal_safe.models import Withdrawal


@dataclass
class RestakingWithdrawalLedger:
    """
    Pending and completed restaking withdrawals, in gwei.

    A full withdrawal moves one principal unit through queue -> complete -> release; the ledger is only
    changed through those three steps.
    """

    pending_withdrawal_gwei: int = 0
    completed_withdrawal_gwei: int = 0
    # validator id -> block number at which its restaking-layer exit was observed
    exit_markers: dict[int, int] = field(default_factory=dict)

    def mark_exit_observed(self, validator_id: int, at_block: int) -> None:
        if at_block < 0:
            raise StateError(f"Invalid block number {at_block}")
        self.exit_markers[validator_id] = at_block

    def clear_exit_marker(self, validator_id: int) -> None:
        self.exit_markers.pop(validator_id, None)

    def plan_full_withdrawal(self, withdrawable_gwei: int) -> int:
        """Amount (gwei) the next full withdrawal should queue; 0 if nothing new is withdrawable."""
        unclaimed = withdrawable_gwei - self.pending_withdrawal_gwei
        if unclaimed < 0:
            raise StateError(
                f"Pending withdrawals ({self.pending_withdrawal_gwei} gwei) exceed withdrawable "
                f"restaked balance ({withdrawable_gwei} gwei)"
            )
        if unclaimed == 0:
            return 0
        # TODO: support partial withdrawals of slashed validators instead of blocking on them.
        if unclaimed < FULL_PRINCIPAL_GWEI:
            raise SlashedError(
                f"Unclaimed withdrawable {unclaimed} gwei is below one principal unit ({FULL_PRINCIPAL_GWEI} gwei)"
            )
        return FULL_PRINCIPAL_GWEI

    def record_queued(self, amount_gwei: int) -> None:
        if amount_gwei <= 0:
            raise StateError(f"Queued amount must be positive: {amount_gwei}")
        self.pending_withdrawal_gwei += amount_gwei

    def check_completion(self, total_gwei: int, *, as_tokens: bool) -> None:
        """Raise unless a batch of `total_gwei` can be completed in the given mode."""
        if as_tokens:
            if self.pending_withdrawal_gwei < total_gwei:
                raise InsufficientBalanceError(
                    f"Completing {total_gwei} gwei but only {self.pending_withdrawal_gwei} gwei is pending"
                )
        elif self.pending_withdrawal_gwei != 0:
            # Undelegation must wait until outstanding full withdrawals are resolved.
            raise StateError(f"Pending withdrawal of {self.pending_withdrawal_gwei} gwei must be completed first")

    def record_completed(self, total_gwei: int, *, as_tokens: bool) -> None:
        """Account for completed withdrawals: full withdrawals move pending -> completed."""
        self.check_completion(total_gwei, as_tokens=as_tokens)
        if as_tokens:
            self.pending_withdrawal_gwei -= total_gwei
            self.completed_withdrawal_gwei += total_gwei

    def release(self, unit_gwei: int = FULL_PRINCIPAL_GWEI) -> None:
        if self.completed_withdrawal_gwei < unit_gwei:
            raise InsufficientBalanceError(
                f"Releasing {unit_gwei} gwei but only {self.completed_withdrawal_gwei} gwei is completed"
            )
        self.completed_withdrawal_gwei -= unit_gwei


def validate_withdrawal_batch(withdrawals: Iterable[Withdrawal], account: str, strategy: str) -> int:
    """
    Check that every withdrawal belongs to `account` and only withdraws beacon-chain ETH.

    Returns the total shares of the batch, in wei.
    """
    account = Web3.to_checksum_address(account)
    strategy = Web3.to_checksum_address(strategy)
    total_wei = 0
    for w in withdrawals:
        if Web3.to_checksum_address(w.staker) != account or Web3.to_checksum_address(w.withdrawer) != account:
            raise AuthorizationError(
                f"Withdrawal {Web3.to_hex(w.root)} is not owned by the safe "
                f"(staker={w.staker}, withdrawer={w.withdrawer})"
            )
        if len(w.strategies) != len(w.shares):
            raise StateError(f"Withdrawal {Web3.to_hex(w.root)} has mismatched strategies and shares")
        for s in w.strategies:
            if Web3.to_checksum_address(s) != strategy:
                raise StateError(f"Unsupported strategy {s} in withdrawal; only beacon-chain ETH is handled")
        total_wei += w.total_shares
    return total_wei


def wei_to_gwei(amount_wei: int) -> int:
    """Exact wei -> gwei conversion; amounts with a sub-gwei remainder are rejected."""
    gwei, remainder = divmod(amount_wei, WEI_PER_GWEI)
    if remainder:
        raise StateError(f"Amount {amount_wei} wei is not a whole number of gwei")
    return gwei

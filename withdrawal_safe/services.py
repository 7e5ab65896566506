"""Interfaces of the external services a safe talks to."""

from collections.abc import Sequence
from typing import Protocol

from withdrawal_safe.models import DelayedWithdrawal, Withdrawal


class DelegationService(Protocol):
    """Restaking delegation layer, as seen by one safe."""

    @property
    def account(self) -> str | None:
        """Address of the safe's restaking account, or None if it was never created."""

    @property
    def beacon_chain_eth_strategy(self) -> str: ...

    def create_account(self) -> str:
        """Create the safe's restaking account (idempotent) and return its address."""

    def account_balance_wei(self) -> int:
        """Execution-layer ETH currently sitting in the restaking account."""

    def withdrawable_restaked_gwei(self) -> int:
        """Restaked beacon-chain ETH that has been withdrawn to the execution layer, in gwei."""

    def queue_withdrawal(self, strategy: str, shares_wei: int) -> list[bytes]:
        """Queue a withdrawal and return the content-hash roots of the queued requests."""

    def complete_withdrawals(
        self,
        withdrawals: Sequence[Withdrawal],
        middleware_times_indexes: Sequence[int],
        receive_as_tokens: bool,
    ) -> int:
        """Complete queued withdrawals and return the amount transferred (wei)."""


class DelayedWithdrawalRouter(Protocol):
    """Legacy withdrawal-claim router."""

    def list_pending(self, account: str) -> list[DelayedWithdrawal]: ...

    def list_claimable(self, account: str) -> list[DelayedWithdrawal]: ...

    def claim(self, account: str, max_count: int) -> None: ...


class BalanceSource(Protocol):
    """Execution-layer balance lookup (wei)."""

    def balance_of(self, address: str) -> int: ...


class ConsensusBalanceSource(Protocol):
    """Consensus-layer validator balance lookup (wei)."""

    def balance_wei(self, validator: int | str) -> int: ...


class FundTransfer(Protocol):
    """Sends ETH from the safe; returns False instead of raising when the recipient rejects it."""

    def send(self, address: str, amount_wei: int, *, gas_limit: int | None = None) -> bool: ...

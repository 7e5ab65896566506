"""Withdrawal safe: validator registry, restaking ledger and payout views behind one lock."""

import copy
import threading
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import ClassVar

from loguru import logger
from web3 import Web3

from withdrawal_safe import payouts as splitter
from withdrawal_safe.constants import FULL_PRINCIPAL_GWEI, WEI_PER_GWEI
from withdrawal_safe.errors import AuthorizationError, StateError, TransferError
from withdrawal_safe.formatters import format_gwei
from withdrawal_safe.funds import distribute_funds
from withdrawal_safe.models import (
    ASSOCIATED_PHASES,
    DistributionResult,
    PayoutRecipients,
    Payouts,
    PenaltyConfig,
    RewardSplitConfig,
    ValidatorInfo,
    ValidatorPhase,
    Withdrawal,
)
from withdrawal_safe.phases import validate_transition
from withdrawal_safe.registry import SafeCounters, ValidatorMembership
from withdrawal_safe.services import BalanceSource, DelayedWithdrawalRouter, DelegationService, FundTransfer
from withdrawal_safe.validation import validate_counters, validate_exit_requests, validate_membership
from withdrawal_safe.withdrawals import RestakingWithdrawalLedger, validate_withdrawal_batch, wei_to_gwei

_UNREGISTRABLE_PHASES = (ValidatorPhase.FULLY_WITHDRAWN, ValidatorPhase.NOT_INITIALIZED)


@dataclass
class LegacyState:
    """Version 0 safe: bound to a single validator whose lifecycle is stored on the safe itself."""

    version: ClassVar[int] = 0

    validator_id: int | None = None
    phase: ValidatorPhase = ValidatorPhase.NOT_INITIALIZED
    exit_request_timestamp: int = 0
    exit_timestamp: int = 0
    staking_start_timestamp: int = 0
    is_restaking_enabled: bool = False

    def num_associated(self) -> int:
        return 1 if self.phase in ASSOCIATED_PHASES else 0

    def num_exited(self) -> int:
        return 1 if self.phase == ValidatorPhase.EXITED else 0

    def num_exit_requests(self) -> int:
        return 1 if self.exit_request_timestamp != 0 else 0

    def validator_ids(self) -> list[int]:
        return [] if self.validator_id is None else [self.validator_id]

    def validator_info(self) -> ValidatorInfo:
        return ValidatorInfo(
            phase=self.phase,
            exit_request_timestamp=self.exit_request_timestamp,
            exit_timestamp=self.exit_timestamp,
        )


@dataclass
class ModernState:
    """Version 1 safe: any number of validators sharing aggregate counters."""

    version: ClassVar[int] = 1

    membership: ValidatorMembership = field(default_factory=ValidatorMembership)
    counters: SafeCounters = field(default_factory=SafeCounters)
    is_restaking_enabled: bool = False
    # Members with an outstanding exit request; its size is `counters.num_exit_requests`.
    exit_requested: set[int] = field(default_factory=set)

    def num_associated(self) -> int:
        return self.counters.num_associated_validators

    def num_exited(self) -> int:
        return self.counters.num_exited_validators

    def num_exit_requests(self) -> int:
        return self.counters.num_exit_requests

    def validator_ids(self) -> list[int]:
        return list(self.membership)


SafeState = LegacyState | ModernState


class WithdrawalSafe:
    """
    Accounting unit for the validators that share one set of beneficiaries.

    Only the manager (orchestrator) may mutate a safe. Each mutating call runs under the safe's lock and
    either completes or leaves the safe exactly as it found it, except a distribution whose treasury
    transfer fails after other beneficiaries were paid (see `withdraw_funds`).
    """

    def __init__(
        self,
        address: str,
        manager: str,
        *,
        delegation: DelegationService | None = None,
        router: DelayedWithdrawalRouter | None = None,
        balances: BalanceSource | None = None,
        transfer: FundTransfer | None = None,
        penalty_config: PenaltyConfig | None = None,
        state: SafeState | None = None,
    ) -> None:
        self.address = Web3.to_checksum_address(address)
        self.manager = Web3.to_checksum_address(manager)
        self.delegation = delegation
        self.router = router
        self.balances = balances
        self.transfer = transfer
        self.penalty_config = penalty_config or PenaltyConfig()
        self.ledger = RestakingWithdrawalLedger()
        self._state: SafeState = state if state is not None else ModernState()
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _require_manager(self, caller: str) -> None:
        if not Web3.is_address(caller) or Web3.to_checksum_address(caller) != self.manager:
            raise AuthorizationError(f"Caller {caller} is not the manager of safe {self.address}")

    @contextmanager
    def _transaction(self, caller: str, operation: str) -> Iterator[None]:
        """Authorize `caller`, then run the body atomically, restoring the previous state on any error."""
        self._require_manager(caller)
        with self._lock:
            snapshot = copy.deepcopy((self._state, self.ledger))
            try:
                yield
                self._check_invariants()
            except Exception as ex:
                self._state, self.ledger = snapshot
                logger.warning(f"Safe {self.address}: {operation} rolled back: {ex}")
                raise

    def _check_invariants(self) -> None:
        if isinstance(self._state, ModernState):
            validate_membership(self._state.membership, warn_only=False)
            validate_counters(self._state.counters, len(self._state.membership), warn_only=False)
            validate_exit_requests(
                self._state.exit_requested, self._state.membership, self._state.counters, warn_only=False
            )
        if self.ledger.pending_withdrawal_gwei < 0 or self.ledger.completed_withdrawal_gwei < 0:
            raise StateError(f"Negative restaking ledger: {self.ledger}")

    def _modern_state(self) -> ModernState:
        if not isinstance(self._state, ModernState):
            raise StateError(f"Safe {self.address} is at version 0; migrate it first")
        return self._state

    def _require_delegation(self) -> DelegationService:
        if self.delegation is None:
            raise StateError(f"Safe {self.address} has no restaking delegation service")
        return self.delegation

    def _require_member(self, validator_id: int) -> None:
        if validator_id not in self._state.validator_ids():
            raise StateError(f"Validator {validator_id} is not registered in safe {self.address}")

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def version(self) -> int:
        return self._state.version

    @property
    def state(self) -> SafeState:
        return self._state

    @property
    def is_restaking_enabled(self) -> bool:
        return self._state.is_restaking_enabled

    def num_associated_validators(self) -> int:
        with self._lock:
            return self._state.num_associated()

    def num_exited_validators(self) -> int:
        with self._lock:
            return self._state.num_exited()

    def num_exit_requests(self) -> int:
        with self._lock:
            return self._state.num_exit_requests()

    def validator_ids(self) -> list[int]:
        with self._lock:
            return self._state.validator_ids()

    def exit_marker(self, validator_id: int) -> int | None:
        """Block at which the restaking-layer exit of `validator_id` was observed, if any."""
        with self._lock:
            return self.ledger.exit_markers.get(validator_id)

    # ------------------------------------------------------------------
    # Validator registry
    # ------------------------------------------------------------------

    def register_validator(self, caller: str, validator_id: int, enable_restaking: bool) -> None:
        with self._transaction(caller, "register_validator"):
            state = self._modern_state()
            if len(state.membership) > 0 and state.is_restaking_enabled != enable_restaking:
                raise StateError(
                    f"Restaking mode mismatch: safe has restaking={state.is_restaking_enabled}, "
                    f"validator {validator_id} requests restaking={enable_restaking}"
                )
            if validator_id in state.membership:
                raise StateError(f"Validator {validator_id} is already registered in this safe")
            if enable_restaking:
                delegation = self._require_delegation()
                if delegation.account is None:
                    delegation.create_account()
            state.membership.add(validator_id)
            if enable_restaking:
                state.is_restaking_enabled = True
            logger.info(f"Safe {self.address}: registered validator {validator_id} (restaking={enable_restaking})")

    def unregister_validator(self, caller: str, validator_id: int, info: ValidatorInfo) -> bool:
        """Remove a validator; returns True when the safe is empty and can be reused."""
        with self._transaction(caller, "unregister_validator"):
            if info.phase not in _UNREGISTRABLE_PHASES:
                raise StateError(f"Cannot unregister validator {validator_id} in phase {info.phase.value}")

            if isinstance(self._state, LegacyState):
                if self._state.validator_id != validator_id:
                    raise StateError(f"Validator {validator_id} is not bound to legacy safe {self.address}")
                self._state = LegacyState()
                self.ledger.clear_exit_marker(validator_id)
                logger.info(f"Safe {self.address}: unregistered legacy validator {validator_id}")
                return True

            state = self._state
            self._require_member(validator_id)
            if info.phase == ValidatorPhase.FULLY_WITHDRAWN:
                state.counters.decrement_exited()
                state.counters.decrement_associated()
            has_request = validator_id in state.exit_requested
            if (info.exit_request_timestamp != 0) != has_request:
                raise StateError(
                    f"Exit request of validator {validator_id} disagrees with the safe "
                    f"(reported={info.exit_request_timestamp != 0}, recorded={has_request})"
                )
            if has_request:
                state.exit_requested.discard(validator_id)
                state.counters.decrement_exit_requests()
            state.membership.remove(validator_id)
            self.ledger.clear_exit_marker(validator_id)

            empty = len(state.membership) == 0
            if empty:
                state.is_restaking_enabled = False
            logger.info(f"Safe {self.address}: unregistered validator {validator_id} (empty={empty})")
            return empty

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def record_phase_change(
        self,
        caller: str,
        validator_id: int,
        current: ValidatorPhase,
        new: ValidatorPhase,
        *,
        exited_at: int | None = None,
    ) -> None:
        """
        Validate a lifecycle step reported by the orchestrator and update the aggregate counters.

        A version 0 safe stores the exit time of its validator; `exited_at` defaults to the current time.
        """
        with self._transaction(caller, "record_phase_change"):
            validate_transition(current, new)
            self._require_member(validator_id)

            if isinstance(self._state, LegacyState):
                if self._state.phase != current:
                    raise StateError(
                        f"Legacy safe records phase {self._state.phase.value}, transition reported from {current.value}"
                    )
                self._state.phase = new
                if new == ValidatorPhase.EXITED:
                    self._state.exit_timestamp = int(time.time()) if exited_at is None else exited_at
            elif new == ValidatorPhase.LIVE:
                self._state.counters.increment_associated()
            elif new == ValidatorPhase.EXITED:
                self._state.counters.increment_exited()
            logger.debug(f"Safe {self.address}: validator {validator_id} {current.value} -> {new.value}")

    def record_exit_request(self, caller: str, validator_id: int, requested_at: int) -> None:
        with self._transaction(caller, "record_exit_request"):
            self._require_member(validator_id)
            if isinstance(self._state, LegacyState):
                if self._state.exit_request_timestamp != 0:
                    raise StateError(f"Exit of validator {validator_id} was already requested")
                self._state.exit_request_timestamp = requested_at
            else:
                if validator_id in self._state.exit_requested:
                    raise StateError(f"Exit of validator {validator_id} was already requested")
                self._state.exit_requested.add(validator_id)
                self._state.counters.increment_exit_requests()

    def revoke_exit_request(self, caller: str, validator_id: int) -> None:
        with self._transaction(caller, "revoke_exit_request"):
            self._require_member(validator_id)
            if isinstance(self._state, LegacyState):
                if self._state.exit_request_timestamp == 0:
                    raise StateError(f"No outstanding exit request for validator {validator_id}")
                self._state.exit_request_timestamp = 0
            else:
                if validator_id not in self._state.exit_requested:
                    raise StateError(f"No outstanding exit request for validator {validator_id}")
                self._state.exit_requested.discard(validator_id)
                self._state.counters.decrement_exit_requests()

    # ------------------------------------------------------------------
    # Restaking withdrawals
    # ------------------------------------------------------------------

    def process_node_exit(self, caller: str, validator_id: int, at_block: int) -> list[bytes]:
        """Record the restaking-layer exit of a validator and queue its full withdrawal."""
        with self._transaction(caller, "process_node_exit"):
            self._require_member(validator_id)
            if not self._state.is_restaking_enabled:
                return []
            self.ledger.mark_exit_observed(validator_id, at_block)
            roots = self._queue_full_withdrawal()
            if len(roots) != 1:
                raise StateError(f"No full withdrawal was queued for validator {validator_id}")
            return roots

    def queue_full_withdrawal(self, caller: str) -> list[bytes]:
        with self._transaction(caller, "queue_full_withdrawal"):
            return self._queue_full_withdrawal()

    def _queue_full_withdrawal(self) -> list[bytes]:
        if not self._state.is_restaking_enabled:
            return []
        delegation = self._require_delegation()
        amount_gwei = self.ledger.plan_full_withdrawal(delegation.withdrawable_restaked_gwei())
        if amount_gwei == 0:
            return []

        roots = delegation.queue_withdrawal(delegation.beacon_chain_eth_strategy, amount_gwei * WEI_PER_GWEI)
        if len(roots) != 1:
            raise StateError(f"Delegation layer returned {len(roots)} withdrawal roots, expected exactly 1")
        self.ledger.record_queued(amount_gwei)
        logger.info(
            f"Safe {self.address}: queued full withdrawal of {format_gwei(amount_gwei)} "
            f"(pending={format_gwei(self.ledger.pending_withdrawal_gwei)}, root={Web3.to_hex(roots[0])})"
        )
        return roots

    def complete_queued_withdrawals(
        self,
        caller: str,
        withdrawals: Sequence[Withdrawal],
        middleware_times_indexes: Sequence[int],
        receive_as_tokens: bool,
    ) -> int:
        """
        Complete withdrawals queued in the restaking layer.

        With `receive_as_tokens` the batch settles full withdrawals (pending -> completed). Without it the
        batch is an undelegation, which is only allowed once no full withdrawal is pending.
        """
        with self._transaction(caller, "complete_queued_withdrawals"):
            delegation = self._require_delegation()
            if delegation.account is None:
                raise StateError(f"Safe {self.address} has no restaking account")
            if len(middleware_times_indexes) != len(withdrawals):
                raise StateError(
                    f"Got {len(middleware_times_indexes)} middleware indexes for {len(withdrawals)} withdrawals"
                )
            total_wei = validate_withdrawal_batch(withdrawals, delegation.account, delegation.beacon_chain_eth_strategy)
            total_gwei = wei_to_gwei(total_wei)
            self.ledger.check_completion(total_gwei, as_tokens=receive_as_tokens)

            transferred = delegation.complete_withdrawals(withdrawals, middleware_times_indexes, receive_as_tokens)
            self.ledger.record_completed(total_gwei, as_tokens=receive_as_tokens)
            logger.info(
                f"Safe {self.address}: completed {len(withdrawals)} withdrawal(s) of {total_gwei} gwei "
                f"(as_tokens={receive_as_tokens})"
            )
            return transferred

    def release_funds(self, caller: str, unit_gwei: int = FULL_PRINCIPAL_GWEI) -> None:
        with self._transaction(caller, "release_funds"):
            self.ledger.release(unit_gwei)

    def claim_delayed_withdrawals(self, caller: str, max_count: int) -> None:
        """Claim matured entries from the legacy delayed-withdrawal router."""
        with self._transaction(caller, "claim_delayed_withdrawals"):
            if not self._state.is_restaking_enabled or self.router is None:
                return
            account = self._require_delegation().account
            if account is None:
                return
            self.router.claim(account, max_count)

    # ------------------------------------------------------------------
    # Funds
    # ------------------------------------------------------------------

    def withdraw_funds(
        self,
        caller: str,
        payouts: Payouts,
        recipients: PayoutRecipients,
        *,
        release_principal: bool = False,
    ) -> DistributionResult:
        """
        Pay out to beneficiaries; with `release_principal` one principal unit leaves the restaking ledger.

        If the treasury transfer fails after other beneficiaries were paid, the release stays recorded and
        the TransferError carries what was delivered; only the treasury amount remains to be sent.
        """
        partial_failure: TransferError | None = None
        with self._transaction(caller, "withdraw_funds"):
            if self.transfer is None:
                raise StateError(f"Safe {self.address} has no fund transfer service")
            if release_principal and self._state.is_restaking_enabled:
                self.ledger.release()
            try:
                result = distribute_funds(payouts, recipients, self.transfer)
            except TransferError as ex:
                if not ex.delivered:
                    raise
                partial_failure = ex
                logger.warning(
                    f"Safe {self.address}: treasury transfer failed after paying {sum(ex.delivered.values())} wei; "
                    f"keeping the release, {ex.undelivered_wei} wei still owed to treasury"
                )
            else:
                logger.info(f"Safe {self.address}: distributed {payouts.total} wei")
                return result
        raise partial_failure

    # ------------------------------------------------------------------
    # Balances and payouts
    # ------------------------------------------------------------------

    def _safe_balance(self) -> int:
        if self.balances is None:
            raise StateError(f"Safe {self.address} has no balance source")
        return self.balances.balance_of(self.address)

    def _restaking_account(self) -> str | None:
        if not self._state.is_restaking_enabled or self.delegation is None:
            return None
        return self.delegation.account

    def total_balance_in_execution_layer(self) -> int:
        """Safe balance plus, with restaking, the restaking account and all router entries."""
        with self._lock:
            total = self._safe_balance()
            account = self._restaking_account()
            if account is not None:
                total += self._require_delegation().account_balance_wei()
                if self.router is not None:
                    total += sum(w.amount for w in self.router.list_pending(account))
            return total

    def withdrawable_balance_in_execution_layer(self) -> int:
        """Safe balance plus, with restaking, router entries that can be claimed now."""
        with self._lock:
            total = self._safe_balance()
            account = self._restaking_account()
            if account is not None and self.router is not None:
                total += sum(w.amount for w in self.router.list_claimable(account))
            return total

    def calculate_tvl(
        self,
        beacon_balance_wei: int,
        info: ValidatorInfo,
        splits: RewardSplitConfig,
        *,
        only_withdrawable: bool = False,
        now: int | None = None,
    ) -> Payouts:
        with self._lock:
            if only_withdrawable:
                balance = self.withdrawable_balance_in_execution_layer()
            else:
                balance = self.total_balance_in_execution_layer()
            return splitter.calculate_tvl(
                balance,
                beacon_balance_wei,
                info,
                splits,
                num_associated=self._state.num_associated(),
                num_exited=self._state.num_exited(),
                penalty_config=self.penalty_config,
                now=now,
            )

    def get_full_withdrawal_payouts(
        self, info: ValidatorInfo, splits: RewardSplitConfig, *, now: int | None = None
    ) -> Payouts:
        with self._lock:
            return splitter.full_withdrawal_payouts(
                self.withdrawable_balance_in_execution_layer(),
                info,
                splits,
                num_associated=self._state.num_associated(),
                num_exited=self._state.num_exited(),
                penalty_config=self.penalty_config,
                now=now,
            )

    def get_rewards_payouts(self, splits: RewardSplitConfig) -> Payouts:
        with self._lock:
            return splitter.rewards_payouts(self.withdrawable_balance_in_execution_layer(), splits)

    # ------------------------------------------------------------------
    # Migration
    # ------------------------------------------------------------------

    def migrate_version(self, caller: str) -> ValidatorInfo | None:
        """
        Convert a version 0 safe to version 1; no-op on a safe that is already migrated.

        Returns the legacy validator record so the orchestrator can take ownership of it.
        """
        with self._transaction(caller, "migrate_version"):
            legacy = self._state
            if not isinstance(legacy, LegacyState):
                return None

            modern = ModernState(is_restaking_enabled=legacy.is_restaking_enabled)
            info = None
            if legacy.validator_id is not None:
                info = legacy.validator_info()
                modern.membership.add(legacy.validator_id)
                if legacy.phase in ASSOCIATED_PHASES:
                    modern.counters.increment_associated()
                if legacy.phase == ValidatorPhase.EXITED:
                    modern.counters.increment_exited()
                if legacy.exit_request_timestamp != 0:
                    modern.exit_requested.add(legacy.validator_id)
                    modern.counters.increment_exit_requests()
            else:
                modern.is_restaking_enabled = False

            self._state = modern
            logger.info(f"Safe {self.address}: migrated to version {modern.version} (validator={legacy.validator_id})")
            return info

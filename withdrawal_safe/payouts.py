"""TVL decomposition and payout splitting between operator, T-NFT, B-NFT and treasury."""

from loguru import logger

from withdrawal_safe.constants import (
    BNFT_PRINCIPAL_THRESHOLD_WEI,
    FULL_PRINCIPAL_WEI,
    MAX_OPERATOR_INCENTIVE_WEI,
    MIN_BNFT_PRINCIPAL_WEI,
    SLASHING_FLOOR_WEI,
    TNFT_PRINCIPAL_WEI,
)
from withdrawal_safe.errors import IncorrectAmountError, InsufficientBalanceError, StateError
from withdrawal_safe.models import (
    PenaltyConfig,
    Payouts,
    RewardSplitConfig,
    StakingBreakdown,
    ValidatorInfo,
    ValidatorPhase,
)
from withdrawal_safe.penalty import non_exit_penalty
from withdrawal_safe.validation import validate_conservation, validate_principal_band


def exited_principal_wei(balance_wei: int, num_exited: int) -> int:
    """
    Principal held in the safe for all exited validators together.

    Each exited validator is guaranteed the slashing floor (16 ETH); any surplus tops them up to a full
    32 ETH deposit before the remainder is treated as rewards.
    """
    floor = SLASHING_FLOOR_WEI * num_exited
    if balance_wei < floor:
        raise InsufficientBalanceError(
            f"Balance {balance_wei} wei is below the slashing floor {floor} wei for {num_exited} exited validator(s)"
        )
    return floor + min(balance_wei - floor, floor)


def staking_rewards_and_principal(
    balance_wei: int,
    beacon_balance_wei: int,
    info: ValidatorInfo,
    *,
    num_associated: int,
    num_exited: int,
) -> StakingBreakdown:
    """
    Decompose one validator's share of the safe into staking rewards and principal.

    Args:
        balance_wei: execution-layer balance of the safe (total or withdrawable only)
        beacon_balance_wei: consensus-layer balance of the validator
        info: validator record from the orchestrator
        num_associated: validators currently associated with the safe
        num_exited: exited validators not yet fully withdrawn
    """
    if num_associated == 0:
        raise StateError("Safe has no associated validators")

    total_exited_principal = exited_principal_wei(balance_wei, num_exited)
    # Execution-layer rewards are pooled and shared evenly by all associated validators.
    el_rewards = (balance_wei - total_exited_principal) // num_associated
    cl_rewards = max(0, beacon_balance_wei - FULL_PRINCIPAL_WEI)
    staking_rewards = el_rewards + cl_rewards

    if info.phase == ValidatorPhase.EXITED:
        if beacon_balance_wei != 0:
            raise StateError(f"Exited validator still shows a consensus-layer balance of {beacon_balance_wei} wei")
        if num_exited == 0:
            raise StateError("Validator is EXITED but the safe counts no exited validators")
        principal = total_exited_principal // num_exited
    elif info.phase in (ValidatorPhase.LIVE, ValidatorPhase.BEING_SLASHED):
        principal = beacon_balance_wei - cl_rewards
    else:
        raise StateError(f"Cannot compute TVL for a validator in phase {info.phase.value}")

    validate_principal_band(principal, warn_only=False)
    return StakingBreakdown(staking_rewards=staking_rewards, principal=principal)


def calculate_payouts(total_wei: int, splits: RewardSplitConfig) -> Payouts:
    """Split `total_wei` proportionally to `splits`; treasury absorbs the rounding remainder."""
    operator = total_wei * splits.operator // splits.total
    tnft = total_wei * splits.tnft // splits.total
    bnft = total_wei * splits.bnft // splits.total
    treasury = total_wei - (operator + tnft + bnft)
    return Payouts(operator=operator, tnft=tnft, bnft=bnft, treasury=treasury)


def calculate_principals(principal_wei: int) -> tuple[int, int]:
    """Returns (bnft_principal, tnft_principal) for a validator principal within [16, 32] ETH."""
    validate_principal_band(principal_wei, warn_only=False)
    if principal_wei >= BNFT_PRINCIPAL_THRESHOLD_WEI:
        bnft = principal_wei - TNFT_PRINCIPAL_WEI
    else:
        bnft = MIN_BNFT_PRINCIPAL_WEI
    return bnft, principal_wei - bnft


def apply_non_exit_penalty(payouts: Payouts, penalty_wei: int) -> Payouts:
    """Move the non-exit penalty from the B-NFT share to operator (capped) and treasury."""
    applied = min(payouts.bnft, penalty_wei)
    incentive = min(applied, MAX_OPERATOR_INCENTIVE_WEI)
    return Payouts(
        operator=payouts.operator + incentive,
        tnft=payouts.tnft,
        bnft=payouts.bnft - applied,
        treasury=payouts.treasury + applied - incentive,
    )


def calculate_tvl(
    balance_wei: int,
    beacon_balance_wei: int,
    info: ValidatorInfo,
    splits: RewardSplitConfig,
    *,
    num_associated: int,
    num_exited: int,
    penalty_config: PenaltyConfig | None = None,
    now: int | None = None,
) -> Payouts:
    """Full payout pipeline for one validator: decompose, split rewards and principal, apply penalty."""
    breakdown = staking_rewards_and_principal(
        balance_wei, beacon_balance_wei, info, num_associated=num_associated, num_exited=num_exited
    )
    rewards = calculate_payouts(breakdown.staking_rewards, splits)
    bnft_principal, tnft_principal = calculate_principals(breakdown.principal)
    payouts = Payouts(
        operator=rewards.operator,
        tnft=rewards.tnft + tnft_principal,
        bnft=rewards.bnft + bnft_principal,
        treasury=rewards.treasury,
    )
    penalty = non_exit_penalty(info.exit_request_timestamp, info.exit_timestamp, penalty_config, now=now)
    payouts = apply_non_exit_penalty(payouts, penalty)

    validate_conservation(payouts, breakdown.total, warn_only=False)
    logger.debug(
        f"TVL split: rewards={breakdown.staking_rewards} principal={breakdown.principal} "
        f"penalty={penalty} -> {payouts}"
    )
    return payouts


def full_withdrawal_payouts(
    balance_wei: int,
    info: ValidatorInfo,
    splits: RewardSplitConfig,
    *,
    num_associated: int,
    num_exited: int,
    penalty_config: PenaltyConfig | None = None,
    now: int | None = None,
) -> Payouts:
    """
    Payouts for the full withdrawal of an exited validator from withdrawable balance.

    A safe with a single validator is settled completely (rewards and principal). With several
    validators only this validator's principal (capped at 32 ETH) is paid out; rewards stay pooled
    for the remaining validators.
    """
    if info.phase != ValidatorPhase.EXITED:
        raise StateError(f"Full withdrawal requires an EXITED validator, got {info.phase.value}")

    if num_associated == 1:
        return calculate_tvl(
            balance_wei,
            0,
            info,
            splits,
            num_associated=num_associated,
            num_exited=num_exited,
            penalty_config=penalty_config,
            now=now,
        )

    principal = min(balance_wei, FULL_PRINCIPAL_WEI)
    if principal < SLASHING_FLOOR_WEI:
        raise InsufficientBalanceError(
            f"Withdrawable balance {balance_wei} wei is below the slashing floor {SLASHING_FLOOR_WEI} wei"
        )
    bnft_principal, tnft_principal = calculate_principals(principal)
    penalty = non_exit_penalty(info.exit_request_timestamp, info.exit_timestamp, penalty_config, now=now)
    payouts = apply_non_exit_penalty(Payouts(operator=0, tnft=tnft_principal, bnft=bnft_principal, treasury=0), penalty)

    validate_conservation(payouts, principal, warn_only=False)
    return payouts


def rewards_payouts(balance_wei: int, splits: RewardSplitConfig) -> Payouts:
    """Split a rewards-only balance (partial withdrawal); a balance that may hold principal is refused."""
    if balance_wei >= SLASHING_FLOOR_WEI:
        raise StateError(
            f"Balance {balance_wei} wei may contain principal; "
            f"rewards can only be skimmed below {SLASHING_FLOOR_WEI} wei"
        )
    payouts = calculate_payouts(balance_wei, splits)
    validate_conservation(payouts, balance_wei, warn_only=False)
    return payouts

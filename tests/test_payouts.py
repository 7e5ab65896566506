import random

import pytest

from withdrawal_safe.constants import SECONDS_PER_DAY
from withdrawal_safe.errors import IncorrectAmountError, InsufficientBalanceError, StateError
from withdrawal_safe.models import PenaltyConfig, Payouts, RewardSplitConfig, ValidatorInfo, ValidatorPhase
from withdrawal_safe.payouts import (
    apply_non_exit_penalty,
    calculate_payouts,
    calculate_principals,
    calculate_tvl,
    exited_principal_wei,
    full_withdrawal_payouts,
    rewards_payouts,
    staking_rewards_and_principal,
)
from withdrawal_safe.validation import validate_conservation

ETH = 10**18
SPLITS = RewardSplitConfig(operator=5, tnft=29, bnft=29, treasury=37)
EXITED = ValidatorInfo(phase=ValidatorPhase.EXITED)
LIVE = ValidatorInfo(phase=ValidatorPhase.LIVE)


def test_calculate_payouts_proportional_split():
    assert calculate_payouts(1000, SPLITS) == Payouts(operator=50, tnft=290, bnft=290, treasury=370)


def test_calculate_payouts_treasury_takes_rounding_remainder():
    splits = RewardSplitConfig(operator=1, tnft=1, bnft=1, treasury=0)
    payouts = calculate_payouts(7, splits)
    assert (payouts.operator, payouts.tnft, payouts.bnft) == (2, 2, 2)
    assert payouts.treasury == 1
    assert payouts.total == 7


def test_reward_split_config_rejects_zero_or_negative_weights():
    with pytest.raises(ValueError):
        RewardSplitConfig(operator=0, tnft=0, bnft=0, treasury=0)
    with pytest.raises(ValueError):
        RewardSplitConfig(operator=-1, tnft=50, bnft=50, treasury=1)


@pytest.mark.parametrize(
    ("principal", "expected"),
    [
        (32 * ETH, (2 * ETH, 30 * ETH)),
        (31 * ETH + ETH // 2, (ETH + ETH // 2, 30 * ETH)),
        (31 * ETH, (1 * ETH, 30 * ETH)),
        (30 * ETH, (1 * ETH, 29 * ETH)),
        (16 * ETH, (1 * ETH, 15 * ETH)),
    ],
)
def test_calculate_principals(principal, expected):
    assert calculate_principals(principal) == expected


@pytest.mark.parametrize("principal", [16 * ETH - 1, 32 * ETH + 1, 0])
def test_calculate_principals_rejects_out_of_band(principal):
    with pytest.raises(IncorrectAmountError):
        calculate_principals(principal)


def test_exited_principal_is_floored_and_capped():
    assert exited_principal_wei(33 * ETH, 1) == 32 * ETH
    assert exited_principal_wei(20 * ETH, 1) == 20 * ETH
    assert exited_principal_wei(16 * ETH, 1) == 16 * ETH
    assert exited_principal_wei(70 * ETH, 2) == 64 * ETH
    assert exited_principal_wei(5 * ETH, 0) == 0
    with pytest.raises(InsufficientBalanceError):
        exited_principal_wei(31 * ETH, 2)


def test_one_exited_validator_with_33_eth():
    breakdown = staking_rewards_and_principal(33 * ETH, 0, EXITED, num_associated=1, num_exited=1)
    assert breakdown.staking_rewards == 1 * ETH
    assert breakdown.principal == 32 * ETH

    payouts = calculate_tvl(33 * ETH, 0, EXITED, SPLITS, num_associated=1, num_exited=1)
    rewards = calculate_payouts(1 * ETH, SPLITS)
    assert payouts.operator == rewards.operator
    assert payouts.tnft == rewards.tnft + 30 * ETH
    assert payouts.bnft == rewards.bnft + 2 * ETH
    assert payouts.treasury == rewards.treasury
    assert payouts.total == 33 * ETH


def test_live_validator_splits_consensus_and_execution_rewards():
    breakdown = staking_rewards_and_principal(
        ETH // 2, 33 * ETH + ETH // 2, LIVE, num_associated=1, num_exited=0
    )
    assert breakdown.staking_rewards == 2 * ETH
    assert breakdown.principal == 32 * ETH


def test_execution_rewards_are_shared_by_all_associated_validators():
    # Two validators, one exited with its 32 ETH already in the safe plus 4 ETH of pooled rewards.
    breakdown = staking_rewards_and_principal(36 * ETH, 0, EXITED, num_associated=2, num_exited=1)
    assert breakdown.principal == 32 * ETH
    assert breakdown.staking_rewards == 2 * ETH


def test_exited_validator_must_have_zero_beacon_balance():
    with pytest.raises(StateError):
        staking_rewards_and_principal(33 * ETH, 1, EXITED, num_associated=1, num_exited=1)


def test_exited_validator_requires_exited_counter():
    with pytest.raises(StateError):
        staking_rewards_and_principal(33 * ETH, 0, EXITED, num_associated=1, num_exited=0)


def test_balance_below_slashing_floor_is_rejected():
    with pytest.raises(InsufficientBalanceError):
        staking_rewards_and_principal(15 * ETH, 0, EXITED, num_associated=1, num_exited=1)


def test_heavily_slashed_live_validator_violates_principal_band():
    with pytest.raises(IncorrectAmountError):
        staking_rewards_and_principal(0, 10 * ETH, LIVE, num_associated=1, num_exited=0)


@pytest.mark.parametrize(
    "phase",
    [ValidatorPhase.NOT_INITIALIZED, ValidatorPhase.STAKE_DEPOSITED, ValidatorPhase.FULLY_WITHDRAWN],
)
def test_tvl_rejects_phases_without_principal(phase):
    with pytest.raises(StateError):
        staking_rewards_and_principal(32 * ETH, 32 * ETH, ValidatorInfo(phase=phase), num_associated=1, num_exited=0)


def test_tvl_requires_associated_validators():
    with pytest.raises(StateError):
        staking_rewards_and_principal(32 * ETH, 32 * ETH, LIVE, num_associated=0, num_exited=0)


def test_apply_penalty_caps_operator_incentive():
    payouts = Payouts(operator=0, tnft=30 * ETH, bnft=2 * ETH, treasury=0)
    penalized = apply_non_exit_penalty(payouts, 1 * ETH)
    assert penalized.operator == 2 * 10**17
    assert penalized.treasury == 8 * 10**17
    assert penalized.bnft == 1 * ETH
    assert penalized.tnft == 30 * ETH
    assert penalized.total == payouts.total


def test_apply_penalty_never_exceeds_bnft_share():
    payouts = Payouts(operator=1, tnft=2, bnft=ETH // 10, treasury=3)
    penalized = apply_non_exit_penalty(payouts, ETH)
    assert penalized.bnft == 0
    assert penalized.operator == 1 + ETH // 10
    assert penalized.treasury == 3
    assert penalized.total == payouts.total


def test_calculate_tvl_applies_penalty_for_late_exit():
    t0 = 1_700_000_000
    info = ValidatorInfo(
        phase=ValidatorPhase.EXITED, exit_request_timestamp=t0, exit_timestamp=t0 + 400 * SECONDS_PER_DAY
    )
    no_penalty = calculate_tvl(32 * ETH, 0, EXITED, SPLITS, num_associated=1, num_exited=1)
    penalized = calculate_tvl(
        32 * ETH, 0, info, SPLITS, num_associated=1, num_exited=1, penalty_config=PenaltyConfig(principal_wei=ETH)
    )
    assert penalized.bnft == no_penalty.bnft - ETH
    assert penalized.operator == no_penalty.operator + 2 * 10**17
    assert penalized.treasury == no_penalty.treasury + 8 * 10**17
    assert penalized.total == 32 * ETH


def test_conservation_and_principal_band_hold_for_accepted_inputs():
    rng = random.Random(1234)
    accepted = 0
    for _ in range(500):
        num_associated = rng.randint(1, 4)
        num_exited = rng.randint(0, num_associated)
        phase = ValidatorPhase.EXITED if num_exited and rng.random() < 0.5 else rng.choice(
            [ValidatorPhase.LIVE, ValidatorPhase.BEING_SLASHED]
        )
        info = ValidatorInfo(
            phase=phase,
            exit_request_timestamp=rng.choice([0, 1_700_000_000]),
            exit_timestamp=1_700_000_000 + rng.randint(0, 400) * SECONDS_PER_DAY,
        )
        balance = rng.randint(0, 40 * num_associated) * ETH // 2 + rng.randint(0, 10**9)
        beacon = 0 if phase == ValidatorPhase.EXITED else rng.randint(15 * ETH, 35 * ETH)
        splits = RewardSplitConfig(*(rng.randint(0, 100) for _ in range(3)), treasury=rng.randint(1, 100))
        try:
            breakdown = staking_rewards_and_principal(
                balance, beacon, info, num_associated=num_associated, num_exited=num_exited
            )
            payouts = calculate_tvl(balance, beacon, info, splits, num_associated=num_associated, num_exited=num_exited)
        except (InsufficientBalanceError, IncorrectAmountError):
            continue
        accepted += 1
        assert 16 * ETH <= breakdown.principal <= 32 * ETH
        assert payouts.total == breakdown.total
        assert min(payouts.operator, payouts.tnft, payouts.bnft, payouts.treasury) >= 0
    assert accepted > 100


def test_full_withdrawal_single_validator_settles_everything():
    payouts = full_withdrawal_payouts(33 * ETH, EXITED, SPLITS, num_associated=1, num_exited=1)
    assert payouts == calculate_tvl(33 * ETH, 0, EXITED, SPLITS, num_associated=1, num_exited=1)


def test_full_withdrawal_with_several_validators_only_pays_principal():
    payouts = full_withdrawal_payouts(40 * ETH, EXITED, SPLITS, num_associated=3, num_exited=1)
    assert payouts == Payouts(operator=0, tnft=30 * ETH, bnft=2 * ETH, treasury=0)

    slashed = full_withdrawal_payouts(20 * ETH, EXITED, SPLITS, num_associated=3, num_exited=1)
    assert slashed == Payouts(operator=0, tnft=19 * ETH, bnft=1 * ETH, treasury=0)

    with pytest.raises(InsufficientBalanceError):
        full_withdrawal_payouts(10 * ETH, EXITED, SPLITS, num_associated=3, num_exited=1)


def test_full_withdrawal_requires_exited_validator():
    with pytest.raises(StateError):
        full_withdrawal_payouts(32 * ETH, LIVE, SPLITS, num_associated=1, num_exited=0)


def test_rewards_payouts_only_below_slashing_floor():
    assert rewards_payouts(1000, SPLITS) == Payouts(operator=50, tnft=290, bnft=290, treasury=370)
    with pytest.raises(StateError):
        rewards_payouts(16 * ETH, SPLITS)


def test_validate_conservation_reports_mismatch():
    payouts = Payouts(operator=1, tnft=1, bnft=1, treasury=1)
    assert validate_conservation(payouts, 4) == []
    issues = validate_conservation(payouts, 5, warn_only=True)
    assert any("mismatch" in issue for issue in issues)
    with pytest.raises(IncorrectAmountError):
        validate_conservation(payouts, 5)

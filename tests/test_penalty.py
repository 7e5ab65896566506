from decimal import Decimal

import pytest

from withdrawal_safe.constants import SECONDS_PER_DAY
from withdrawal_safe.models import PenaltyConfig
from withdrawal_safe.penalty import days_elapsed, non_exit_penalty, non_exit_penalty_single_exponent

ETH = 10**18
T0 = 1_700_000_000


def test_days_elapsed_floors_and_clamps():
    assert days_elapsed(T0, T0) == 0
    assert days_elapsed(T0, T0 + SECONDS_PER_DAY - 1) == 0
    assert days_elapsed(T0, T0 + SECONDS_PER_DAY) == 1
    assert days_elapsed(T0, T0 + 10 * SECONDS_PER_DAY + 5) == 10
    # Exit before the request: no delay.
    assert days_elapsed(T0 + SECONDS_PER_DAY * 3, T0) == 0


def test_no_exit_request_means_no_penalty():
    assert non_exit_penalty(0, T0) == 0
    assert non_exit_penalty(0, 0, now=T0) == 0


def test_penalty_is_zero_within_first_day():
    assert non_exit_penalty(T0, T0 + SECONDS_PER_DAY - 1) == 0


def test_penalty_caps_after_a_year():
    cfg = PenaltyConfig(principal_wei=ETH, daily_rate_bps=300)
    assert non_exit_penalty(T0, T0 + 366 * SECONDS_PER_DAY, cfg) == ETH
    assert non_exit_penalty(T0, T0 + 365 * SECONDS_PER_DAY, cfg) < ETH


def test_ten_days_chunked_matches_single_exponent():
    cfg = PenaltyConfig(principal_wei=ETH, daily_rate_bps=300)
    exited = T0 + 10 * SECONDS_PER_DAY

    chunked = non_exit_penalty(T0, exited, cfg)
    single = non_exit_penalty_single_exponent(T0, exited, cfg)
    expected = int(Decimal(ETH) * (1 - Decimal("0.97") ** 10))

    # Two chunks (7 + 3 days), each floor loses less than 1 wei.
    assert 0 <= chunked - single <= 2
    assert abs(chunked - expected) <= 3
    assert chunked == pytest.approx(0.2625759 * ETH, rel=1e-6)


def test_penalty_is_monotonic_and_bounded():
    cfg = PenaltyConfig(principal_wei=ETH, daily_rate_bps=300)
    previous = 0
    for days in range(0, 400):
        penalty = non_exit_penalty(T0, T0 + days * SECONDS_PER_DAY, cfg)
        assert previous <= penalty <= ETH
        previous = penalty
    assert previous == ETH


def test_penalty_accrues_until_now_when_not_exited():
    cfg = PenaltyConfig(principal_wei=ETH, daily_rate_bps=300)
    accrued = non_exit_penalty(T0, 0, cfg, now=T0 + 10 * SECONDS_PER_DAY)
    assert accrued == non_exit_penalty(T0, T0 + 10 * SECONDS_PER_DAY, cfg)


@pytest.mark.parametrize(
    ("principal_wei", "daily_rate_bps"),
    [(-1, 300), (ETH, -1), (ETH, 10_001)],
)
def test_penalty_config_rejects_invalid_values(principal_wei, daily_rate_bps):
    with pytest.raises(ValueError):
        PenaltyConfig(principal_wei=principal_wei, daily_rate_bps=daily_rate_bps)


def test_full_daily_rate_takes_everything_after_one_day():
    cfg = PenaltyConfig(principal_wei=ETH, daily_rate_bps=10_000)
    assert non_exit_penalty(T0, T0 + SECONDS_PER_DAY, cfg) == ETH

"""Time-decayed non-exit penalty charged to the B-NFT holder."""

import time

from withdrawal_safe.constants import PENALTY_CHUNK_DAYS, PENALTY_MAX_DAYS, SECONDS_PER_DAY, TOTAL_BASIS_POINTS
from withdrawal_safe.models import PenaltyConfig


def days_elapsed(start_timestamp: int, end_timestamp: int) -> int:
    """Whole days from `start_timestamp` to `end_timestamp` (0 if start is later than end)."""
    return (end_timestamp - min(start_timestamp, end_timestamp)) // SECONDS_PER_DAY


def non_exit_penalty(
    exit_request_timestamp: int,
    exit_timestamp: int,
    config: PenaltyConfig | None = None,
    *,
    now: int | None = None,
) -> int:
    """
    Penalty (wei) for the delay between the T-NFT holder's exit request and the actual exit.

    The penalty principal decays by `daily_rate_bps` per day, compounded in blocks of up to 7 days;
    the penalty is what has decayed away. If the validator has not exited yet (`exit_timestamp == 0`)
    the delay runs until `now` (current time by default).
    """
    cfg = config or PenaltyConfig()
    if exit_request_timestamp == 0:
        return 0
    if exit_timestamp == 0:
        exit_timestamp = int(time.time()) if now is None else now

    days = days_elapsed(exit_request_timestamp, exit_timestamp)
    if days > PENALTY_MAX_DAYS:
        return cfg.principal_wei

    keep_bps = TOTAL_BASIS_POINTS - cfg.daily_rate_bps
    remaining = cfg.principal_wei
    while days > 0:
        exponent = min(PENALTY_CHUNK_DAYS, days)
        remaining = (remaining * keep_bps**exponent) // (TOTAL_BASIS_POINTS**exponent)
        days -= exponent
    return cfg.principal_wei - remaining


def non_exit_penalty_single_exponent(
    exit_request_timestamp: int, exit_timestamp: int, config: PenaltyConfig | None = None
) -> int:
    """Same penalty computed with one exponent over all elapsed days (exact up to the final floor)."""
    cfg = config or PenaltyConfig()
    if exit_request_timestamp == 0:
        return 0
    days = days_elapsed(exit_request_timestamp, exit_timestamp)
    if days > PENALTY_MAX_DAYS:
        return cfg.principal_wei
    keep_bps = TOTAL_BASIS_POINTS - cfg.daily_rate_bps
    remaining = (cfg.principal_wei * keep_bps**days) // (TOTAL_BASIS_POINTS**days)
    return cfg.principal_wei - remaining

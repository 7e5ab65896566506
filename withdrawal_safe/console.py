"""Console output formatting."""

from datetime import datetime, timezone

from withdrawal_safe.formatters import format_bp, format_eth, format_share
from withdrawal_safe.models import PenaltyConfig, Payouts
from withdrawal_safe.parsing import Scenario
from withdrawal_safe.penalty import days_elapsed


def _format_ts(ts: int) -> str:
    if ts == 0:
        return "never"
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def print_payouts(scenario: Scenario, payouts: Payouts) -> None:
    """Print a payout split for a scenario."""
    print("=" * 70)
    print(f"💸 PAYOUTS ({scenario.mode})")
    print("=" * 70)
    print(f"   Validator phase:       {scenario.info.phase.value}")
    print(f"   Safe balance:          {format_eth(scenario.balance_wei)}")
    if scenario.mode == "tvl":
        print(f"   Beacon balance:        {format_eth(scenario.beacon_balance_wei)}")
    print(f"   Validators:            {scenario.num_associated} associated, {scenario.num_exited} exited")
    print(f"   Exit requested:        {_format_ts(scenario.info.exit_request_timestamp)}")
    print(f"   Exited:                {_format_ts(scenario.info.exit_timestamp)}")
    print("   " + "─" * 50)

    splits = scenario.splits
    rows = (
        ("Operator", payouts.operator, splits.operator),
        ("T-NFT", payouts.tnft, splits.tnft),
        ("B-NFT", payouts.bnft, splits.bnft),
        ("Treasury", payouts.treasury, splits.treasury),
    )
    for label, amount, weight in rows:
        weight_bp = weight * 100_00 // splits.total
        print(
            f"   {label:<10} {format_eth(amount):>24}  ({format_share(amount, payouts.total)} of total, "
            f"reward weight {format_bp(weight_bp)})"
        )
    print("   " + "─" * 50)
    print(f"   {'Total':<10} {format_eth(payouts.total):>24}")
    print("")


def print_penalty(requested_at: int, exited_at: int, config: PenaltyConfig, penalty_wei: int) -> None:
    """Print a non-exit penalty computation."""
    print(f"⏳ Exit requested: {_format_ts(requested_at)}")
    print(f"🚪 Exited:         {_format_ts(exited_at)}")
    if requested_at:
        print(f"   Days elapsed:   {days_elapsed(requested_at, exited_at)}")
    print(f"   Daily rate:     {format_bp(config.daily_rate_bps)}")
    print(f"   Penalty cap:    {format_eth(config.principal_wei)}")
    print(f"   Penalty:        {format_eth(penalty_wei)} ({format_share(penalty_wei, config.principal_wei)} of cap)")

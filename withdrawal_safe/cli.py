"""CLI and main logic."""

import argparse
import dataclasses
import os
import sys
import time
from pathlib import Path

from withdrawal_safe.balances import BeaconBalanceSource
from withdrawal_safe.console import print_payouts, print_penalty
from withdrawal_safe.constants import DEFAULT_PENALTY_DAILY_RATE_BPS, DEFAULT_PUBLIC_BEACON_API_URLS
from withdrawal_safe.errors import WithdrawalSafeError
from withdrawal_safe.formatters import eth_to_wei
from withdrawal_safe.models import PenaltyConfig, Payouts
from withdrawal_safe.parsing import Scenario, load_scenario
from withdrawal_safe.payouts import calculate_tvl, full_withdrawal_payouts, rewards_payouts
from withdrawal_safe.penalty import non_exit_penalty
from withdrawal_safe.services import ConsensusBalanceSource

# Internal defaults (not exposed as CLI flags)
DEFAULT_TIMEOUT = 30


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse command-line arguments."""
    p = argparse.ArgumentParser(description="Withdrawal safe payout and penalty calculator.")
    sub = p.add_subparsers(dest="command", required=True)

    pen = sub.add_parser("penalty", help="Compute the non-exit penalty for an exit request.")
    pen.add_argument("--requested-at", type=int, required=True, help="Unix timestamp of the exit request (0 = none).")
    pen.add_argument(
        "--exited-at",
        type=int,
        default=0,
        help="Unix timestamp of the exit. Default: now (validator has not exited yet).",
    )
    pen.add_argument("--principal-eth", default="1", help="Penalty cap in ETH. Default: 1.")
    pen.add_argument(
        "--daily-rate-bps",
        type=int,
        default=DEFAULT_PENALTY_DAILY_RATE_BPS,
        help=f"Daily decay rate in basis points. Default: {DEFAULT_PENALTY_DAILY_RATE_BPS}.",
    )

    pay = sub.add_parser("payouts", help="Compute beneficiary payouts for a scenario JSON file.")
    pay.add_argument("scenario", type=Path, help="Path to a scenario JSON file.")
    pay.add_argument(
        "--beacon-url",
        default=None,
        help="Beacon node API URL used when the scenario names a beacon_validator. Falls back to BEACON_API_URL.",
    )
    return p.parse_args(argv)


def _beacon_urls(cli_url: str | None) -> list[str]:
    urls: list[str] = []
    for url in (cli_url, os.getenv("BEACON_API_URL")):
        if url and url not in urls:
            urls.append(url)
    for url in DEFAULT_PUBLIC_BEACON_API_URLS:
        if url not in urls:
            urls.append(url)
    return urls


def compute_scenario_payouts(scenario: Scenario) -> Payouts:
    """Run the payout computation selected by the scenario mode."""
    if scenario.mode == "rewards":
        return rewards_payouts(scenario.balance_wei, scenario.splits)
    if scenario.mode == "full_withdrawal":
        return full_withdrawal_payouts(
            scenario.balance_wei,
            scenario.info,
            scenario.splits,
            num_associated=scenario.num_associated,
            num_exited=scenario.num_exited,
            penalty_config=scenario.penalty,
            now=scenario.now,
        )
    return calculate_tvl(
        scenario.balance_wei,
        scenario.beacon_balance_wei,
        scenario.info,
        scenario.splits,
        num_associated=scenario.num_associated,
        num_exited=scenario.num_exited,
        penalty_config=scenario.penalty,
        now=scenario.now,
    )


def run_penalty(args: argparse.Namespace) -> int:
    try:
        config = PenaltyConfig(principal_wei=eth_to_wei(args.principal_eth), daily_rate_bps=args.daily_rate_bps)
    except ValueError as ex:
        print(f"Error: {ex}", file=sys.stderr)
        return 2
    exited_at = args.exited_at or int(time.time())
    penalty = non_exit_penalty(args.requested_at, exited_at, config)
    print_penalty(args.requested_at, exited_at, config, penalty)
    return 0


def run_payouts(args: argparse.Namespace) -> int:
    try:
        scenario = load_scenario(args.scenario.read_bytes())
    except (OSError, ValueError) as ex:
        print(f"Error: failed to load scenario {args.scenario}: {ex}", file=sys.stderr)
        return 2

    if scenario.beacon_validator is not None and scenario.mode == "tvl":
        source: ConsensusBalanceSource = BeaconBalanceSource(_beacon_urls(args.beacon_url), timeout_s=DEFAULT_TIMEOUT)
        try:
            beacon_balance = source.balance_wei(scenario.beacon_validator)
        except RuntimeError as ex:
            print(f"Error: {ex}", file=sys.stderr)
            return 2
        print(f"ℹ️ Beacon balance of validator {scenario.beacon_validator}: {beacon_balance} wei", file=sys.stderr)
        scenario = dataclasses.replace(scenario, beacon_balance_wei=beacon_balance)

    try:
        payouts = compute_scenario_payouts(scenario)
    except WithdrawalSafeError as ex:
        print(f"Error: {type(ex).__name__}: {ex}", file=sys.stderr)
        return 1

    print_payouts(scenario, payouts)
    return 0


def main(argv: list[str]) -> int:
    """Main entry point."""
    args = parse_args(argv)
    if args.command == "penalty":
        return run_penalty(args)
    return run_payouts(args)


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))

import json

import pytest

from withdrawal_safe.formatters import as_int, eth_to_wei, format_bp, format_eth, format_gwei, format_share
from withdrawal_safe.models import ValidatorPhase
from withdrawal_safe.parsing import load_scenario, parse_amount_wei, parse_phase, parse_scenario

ETH = 10**18


def test_parse_scenario_strict_compliance() -> None:
    """Validates parsing against a realistic scenario file."""

    # 1. Scenario as written by an operator, amounts mixing wei strings, hex and ETH decimals
    data = {
        "mode": "full_withdrawal",
        "balance_eth": "33.5",
        "beacon_balance_wei": "0x0",
        "num_associated_validators": "2",
        "num_exited_validators": 1,
        "validator": {
            "phase": "exited",
            "exit_request_timestamp": "1700000000",
            "exit_timestamp": 1700864000,
        },
        "splits": {"operator": 5, "tnft": "29", "bnft": 29, "treasury": 37},
        "penalty": {"principal_eth": "0.5", "daily_rate_bps": 250},
        "now": 1800000000,
    }

    # 2. Parse
    s = parse_scenario(data)

    # 3. Verify
    assert s.mode == "full_withdrawal"
    assert s.balance_wei == 33 * ETH + ETH // 2
    assert s.beacon_balance_wei == 0
    assert s.num_associated == 2
    assert s.num_exited == 1
    assert s.info.phase == ValidatorPhase.EXITED
    assert s.info.exit_request_timestamp == 1_700_000_000
    assert s.info.exit_timestamp == 1_700_864_000
    assert s.splits.total == 100
    assert s.penalty.principal_wei == ETH // 2
    assert s.penalty.daily_rate_bps == 250
    assert s.beacon_validator is None
    assert s.now == 1_800_000_000


def test_parse_scenario_defaults() -> None:
    s = parse_scenario({"splits": {"treasury": 1}})
    assert s.mode == "tvl"
    assert s.balance_wei == 0
    assert s.num_associated == 1
    assert s.num_exited == 0
    assert s.info.phase == ValidatorPhase.LIVE
    assert s.penalty.principal_wei == ETH
    assert s.penalty.daily_rate_bps == 300
    assert s.now is None


@pytest.mark.parametrize(
    "data",
    [
        {"mode": "liquidate", "splits": {"treasury": 1}},
        {"mode": "tvl"},
        {"splits": {"operator": 0, "tnft": 0, "bnft": 0, "treasury": 0}},
        {"validator": {"phase": "RETIRED"}, "splits": {"treasury": 1}},
        {"penalty": {"daily_rate_bps": 20_000}, "splits": {"treasury": 1}},
    ],
)
def test_parse_scenario_rejects_invalid_input(data) -> None:
    with pytest.raises(ValueError):
        parse_scenario(data)


def test_load_scenario_requires_object() -> None:
    with pytest.raises(ValueError):
        load_scenario(b"[1, 2, 3]")
    with pytest.raises(ValueError):
        load_scenario(b"{not json")
    s = load_scenario(json.dumps({"splits": {"treasury": 1}, "beacon_validator": 42}).encode())
    assert s.beacon_validator == 42


def test_parse_amount_prefers_wei() -> None:
    assert parse_amount_wei({"x_wei": "5", "x_eth": "1"}, "x") == 5
    assert parse_amount_wei({"x_eth": 2}, "x") == 2 * ETH
    assert parse_amount_wei({}, "x", default=7) == 7


def test_parse_phase_is_case_insensitive() -> None:
    assert parse_phase(" being_slashed ") == ValidatorPhase.BEING_SLASHED
    with pytest.raises(ValueError):
        parse_phase("unknown")


def test_as_int_robustness() -> None:
    """Challenge as_int with various types found in wild JSONs."""
    assert as_int("123") == 123
    assert as_int("0x10") == 16
    assert as_int(123) == 123
    assert as_int(None) == 0
    assert as_int(None, default=9) == 9
    assert as_int(True) == 1
    assert as_int("  10  ") == 10


def test_eth_to_wei() -> None:
    assert eth_to_wei("1") == ETH
    assert eth_to_wei("0.000000001") == 10**9
    assert eth_to_wei(" 32 ") == 32 * ETH
    with pytest.raises(ValueError):
        eth_to_wei("one")


def test_formatters() -> None:
    assert format_eth(33 * ETH) == "33 ETH"
    assert format_eth(0) == "0 ETH"
    assert format_eth(ETH // 4) == "0.25 ETH"
    assert format_eth(ETH, approx=True) == "~1 ETH"
    assert format_bp(300) == "3.00%"
    assert format_gwei(32_000_000_000) == "32,000,000,000 gwei"
    assert format_share(1, 4) == "25.00%"
    assert format_share(1, 0) == "n/a"

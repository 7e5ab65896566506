"""Scenario parsing for offline payout computations."""

import json
from dataclasses import dataclass
from typing import Any

from withdrawal_safe.formatters import as_int, eth_to_wei
from withdrawal_safe.models import PenaltyConfig, RewardSplitConfig, ValidatorInfo, ValidatorPhase

SCENARIO_MODES = ("tvl", "full_withdrawal", "rewards")


@dataclass(frozen=True)
class Scenario:
    """Inputs of one payout computation."""

    mode: str
    balance_wei: int
    beacon_balance_wei: int
    num_associated: int
    num_exited: int
    info: ValidatorInfo
    splits: RewardSplitConfig
    penalty: PenaltyConfig
    # Validator index or pubkey to look up on a beacon node instead of `beacon_balance_wei`.
    beacon_validator: int | str | None = None
    now: int | None = None


def parse_amount_wei(data: dict[str, Any], name: str, *, default: int = 0) -> int:
    """Read `<name>_wei` (int/str/hex) or `<name>_eth` (decimal ETH) from `data`."""
    if f"{name}_wei" in data:
        return as_int(data[f"{name}_wei"])
    if f"{name}_eth" in data:
        return eth_to_wei(data[f"{name}_eth"])
    return default


def parse_phase(value: Any) -> ValidatorPhase:
    try:
        return ValidatorPhase(str(value).strip().upper())
    except ValueError as ex:
        raise ValueError(f"Unknown validator phase: {value}") from ex


def parse_scenario(data: dict[str, Any]) -> Scenario:
    """
    Parse a scenario JSON object.

    Example:
        {"mode": "tvl", "balance_eth": "33", "num_associated_validators": 1, "num_exited_validators": 1,
         "validator": {"phase": "EXITED"}, "splits": {"operator": 5, "tnft": 29, "bnft": 29, "treasury": 37}}
    """
    mode = str(data.get("mode", "tvl"))
    if mode not in SCENARIO_MODES:
        raise ValueError(f"Unknown scenario mode: {mode} (expected one of {', '.join(SCENARIO_MODES)})")

    validator = data.get("validator") or {}
    info = ValidatorInfo(
        phase=parse_phase(validator.get("phase", ValidatorPhase.LIVE.value)),
        exit_request_timestamp=as_int(validator.get("exit_request_timestamp")),
        exit_timestamp=as_int(validator.get("exit_timestamp")),
    )

    splits_raw = data.get("splits")
    if not isinstance(splits_raw, dict):
        raise ValueError("Scenario is missing the 'splits' object")
    splits = RewardSplitConfig(
        operator=as_int(splits_raw.get("operator")),
        tnft=as_int(splits_raw.get("tnft")),
        bnft=as_int(splits_raw.get("bnft")),
        treasury=as_int(splits_raw.get("treasury")),
    )

    penalty_raw = data.get("penalty") or {}
    default_penalty = PenaltyConfig()
    penalty = PenaltyConfig(
        principal_wei=parse_amount_wei(penalty_raw, "principal", default=default_penalty.principal_wei),
        daily_rate_bps=as_int(penalty_raw.get("daily_rate_bps"), default=default_penalty.daily_rate_bps),
    )

    beacon_validator = data.get("beacon_validator")
    return Scenario(
        mode=mode,
        balance_wei=parse_amount_wei(data, "balance"),
        beacon_balance_wei=parse_amount_wei(data, "beacon_balance"),
        num_associated=as_int(data.get("num_associated_validators"), default=1),
        num_exited=as_int(data.get("num_exited_validators")),
        info=info,
        splits=splits,
        penalty=penalty,
        beacon_validator=beacon_validator,
        now=as_int(data["now"]) if "now" in data else None,
    )


def load_scenario(raw_bytes: bytes) -> Scenario:
    """Parse scenario JSON from raw bytes."""
    data = json.loads(raw_bytes.decode("utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Unexpected scenario format (expected JSON object)")
    return parse_scenario(data)

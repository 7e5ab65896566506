"""Execution-layer and consensus-layer balance lookups."""

from collections.abc import Iterable
from typing import TYPE_CHECKING

import requests
from loguru import logger

from withdrawal_safe.constants import BEACON_VALIDATOR_PATH, WEI_PER_GWEI
from withdrawal_safe.formatters import as_int

if TYPE_CHECKING:
    from web3 import Web3  # pragma: no cover


def build_beacon_url(base_url: str, validator: int | str, *, state_id: str = "head") -> str:
    """Build the beacon API URL for a validator from a node base URL."""
    base = base_url.rstrip("/")
    # Accept both https://node and https://node/eth/v1 style bases.
    if base.endswith("/eth/v1"):
        base = base[: -len("/eth/v1")]
    return base + BEACON_VALIDATOR_PATH.format(state_id=state_id, validator_id=validator)


class Web3BalanceSource:
    """Reads ETH balances through a web3 provider."""

    def __init__(self, w3: "Web3", *, block_identifier: int | str = "latest") -> None:
        self.w3 = w3
        self.block_identifier = block_identifier

    def balance_of(self, address: str) -> int:
        checksum = self.w3.to_checksum_address(address)
        return int(self.w3.eth.get_balance(checksum, block_identifier=self.block_identifier))


class BeaconBalanceSource:
    """Reads validator balances from beacon node REST endpoints, trying each in order."""

    def __init__(self, base_urls: Iterable[str], *, timeout_s: int = 30, state_id: str = "head") -> None:
        self.base_urls = tuple(base_urls)
        if not self.base_urls:
            raise ValueError("At least one beacon API URL is required")
        self.timeout_s = timeout_s
        self.state_id = state_id

    def balance_gwei(self, validator: int | str) -> int:
        last_err: Exception | None = None
        for base in self.base_urls:
            url = build_beacon_url(base, validator, state_id=self.state_id)
            try:
                resp = requests.get(url, timeout=self.timeout_s)
                resp.raise_for_status()
                data = resp.json()["data"]
                return as_int(data["balance"])
            except (requests.RequestException, KeyError, TypeError, ValueError) as ex:
                logger.debug(f"Beacon balance lookup failed at {url}: {ex}")
                last_err = ex
        raise RuntimeError(f"Failed to fetch balance of validator {validator} from all beacon endpoints") from last_err

    def balance_wei(self, validator: int | str) -> int:
        return self.balance_gwei(validator) * WEI_PER_GWEI

"""Data models for withdrawal safe accounting."""

from dataclasses import dataclass, field
from enum import Enum

from eth_abi import encode
from web3 import Web3

from withdrawal_safe.constants import DEFAULT_PENALTY_DAILY_RATE_BPS, DEFAULT_PENALTY_PRINCIPAL_WEI, TOTAL_BASIS_POINTS

WITHDRAWAL_ABI_TYPE = "(address,address,address,uint256,uint32,address[],uint256[])"


class ValidatorPhase(Enum):
    """Lifecycle phase of a validator, as recorded by the orchestrator."""

    NOT_INITIALIZED = "NOT_INITIALIZED"
    STAKE_DEPOSITED = "STAKE_DEPOSITED"
    WAITING_FOR_APPROVAL = "WAITING_FOR_APPROVAL"
    LIVE = "LIVE"
    BEING_SLASHED = "BEING_SLASHED"
    EXITED = "EXITED"
    FULLY_WITHDRAWN = "FULLY_WITHDRAWN"


# Phases in which a validator counts as associated with its safe.
ASSOCIATED_PHASES = frozenset({ValidatorPhase.LIVE, ValidatorPhase.BEING_SLASHED, ValidatorPhase.EXITED})


@dataclass(frozen=True)
class ValidatorInfo:
    """Per-validator record supplied by the orchestrator on each call."""

    phase: ValidatorPhase
    # Unix timestamps; 0 means "never happened".
    exit_request_timestamp: int = 0
    exit_timestamp: int = 0


@dataclass(frozen=True)
class RewardSplitConfig:
    """Proportional weights for splitting staking rewards (never principal)."""

    operator: int
    tnft: int
    bnft: int
    treasury: int

    def __post_init__(self) -> None:
        for name in ("operator", "tnft", "bnft", "treasury"):
            if getattr(self, name) < 0:
                raise ValueError(f"Reward split weight {name} must be non-negative: {getattr(self, name)}")
        if self.total == 0:
            raise ValueError("Reward split weights must not all be zero")

    @property
    def total(self) -> int:
        return self.operator + self.tnft + self.bnft + self.treasury


@dataclass(frozen=True)
class PenaltyConfig:
    """Parameters of the non-exit penalty."""

    principal_wei: int = DEFAULT_PENALTY_PRINCIPAL_WEI
    daily_rate_bps: int = DEFAULT_PENALTY_DAILY_RATE_BPS

    def __post_init__(self) -> None:
        if self.principal_wei < 0:
            raise ValueError(f"Penalty principal must be non-negative: {self.principal_wei}")
        if not 0 <= self.daily_rate_bps <= TOTAL_BASIS_POINTS:
            raise ValueError(f"Penalty daily rate must be within [0, {TOTAL_BASIS_POINTS}] bps: {self.daily_rate_bps}")


@dataclass(frozen=True)
class Payouts:
    """Amounts (wei) owed to each beneficiary class."""

    operator: int
    tnft: int
    bnft: int
    treasury: int

    @property
    def total(self) -> int:
        return self.operator + self.tnft + self.bnft + self.treasury


@dataclass(frozen=True)
class StakingBreakdown:
    """A validator's share of the safe's value, decomposed into rewards and principal (wei)."""

    staking_rewards: int
    principal: int

    @property
    def total(self) -> int:
        return self.staking_rewards + self.principal


@dataclass(frozen=True)
class Withdrawal:
    """A withdrawal queued in the restaking delegation layer."""

    staker: str
    delegated_to: str
    withdrawer: str
    nonce: int
    start_block: int
    strategies: tuple[str, ...]
    # Shares per strategy, in wei for the beacon-chain ETH strategy.
    shares: tuple[int, ...]

    @property
    def root(self) -> bytes:
        """Content hash identifying this withdrawal (keccak-256 of its ABI encoding)."""
        payload = encode(
            [WITHDRAWAL_ABI_TYPE],
            [
                (
                    Web3.to_checksum_address(self.staker),
                    Web3.to_checksum_address(self.delegated_to),
                    Web3.to_checksum_address(self.withdrawer),
                    self.nonce,
                    self.start_block,
                    [Web3.to_checksum_address(s) for s in self.strategies],
                    list(self.shares),
                )
            ],
        )
        return bytes(Web3.keccak(payload))

    @property
    def total_shares(self) -> int:
        return sum(self.shares)


@dataclass(frozen=True)
class DelayedWithdrawal:
    """Entry of the legacy delayed-withdrawal router."""

    amount: int
    created_at_block: int = 0


@dataclass(frozen=True)
class PayoutRecipients:
    """Addresses of the four beneficiaries of a safe."""

    operator: str
    tnft: str
    bnft: str
    treasury: str


@dataclass
class DistributionResult:
    """Outcome of a fund distribution: what each address actually received."""

    delivered: dict[str, int] = field(default_factory=dict)
    redirected_to_treasury: int = 0

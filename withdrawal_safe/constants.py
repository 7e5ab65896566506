"""Constants and configuration for withdrawal safe accounting."""

from decimal import Decimal

WEI_PER_ETH = 10**18
WEI_PER_GWEI = 10**9
GWEI_PER_ETH = 10**9

# Principal band of a single validator. Exited validators are never credited with less than
# the slashing floor nor more than a full deposit.
FULL_PRINCIPAL_WEI = 32 * WEI_PER_ETH
FULL_PRINCIPAL_GWEI = 32 * GWEI_PER_ETH
SLASHING_FLOOR_WEI = 16 * WEI_PER_ETH

# Fixed principal split between B-NFT and T-NFT holders.
BNFT_PRINCIPAL_THRESHOLD_WEI = 31 * WEI_PER_ETH
TNFT_PRINCIPAL_WEI = 30 * WEI_PER_ETH
MIN_BNFT_PRINCIPAL_WEI = 1 * WEI_PER_ETH

# Share of the non-exit penalty paid to the operator is capped at 0.2 ETH; the rest goes to treasury.
MAX_OPERATOR_INCENTIVE_WEI = 2 * 10**17

TOTAL_BASIS_POINTS = 100_00
SECONDS_PER_DAY = 24 * 3600
PENALTY_MAX_DAYS = 365
# Decay is compounded in blocks of at most this many days so integer powers stay small.
PENALTY_CHUNK_DAYS = 7
DEFAULT_PENALTY_PRINCIPAL_WEI = 1 * WEI_PER_ETH
DEFAULT_PENALTY_DAILY_RATE_BPS = 300

# Gas stipend forwarded to best-effort recipients (operator, T-NFT, B-NFT).
TRANSFER_GAS_LIMIT = 12_000

# Strategy address the restaking layer uses for native beacon-chain ETH.
BEACON_CHAIN_ETH_STRATEGY = "0xbeaC0eeEeeeeEEeEeEEEEeeEEeEeeeEeeEEBEaC0"

# Beacon node REST path for a single validator (state id, validator index or pubkey).
BEACON_VALIDATOR_PATH = "/eth/v1/beacon/states/{state_id}/validators/{validator_id}"

# Used only when neither --beacon-url nor BEACON_API_URL are provided.
DEFAULT_PUBLIC_BEACON_API_URLS = ("https://ethereum-beacon-api.publicnode.com",)

DECIMAL_WEI_PER_ETH = Decimal(WEI_PER_ETH)

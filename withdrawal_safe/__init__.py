"""Withdrawal safe accounting for liquid-staking validators."""

from typing import NoReturn

from withdrawal_safe.errors import (
    AuthorizationError,
    IncorrectAmountError,
    InsufficientBalanceError,
    InvalidTransitionError,
    SlashedError,
    StateError,
    TransferError,
    WithdrawalSafeError,
)
from withdrawal_safe.models import PenaltyConfig, Payouts, RewardSplitConfig, ValidatorInfo, ValidatorPhase
from withdrawal_safe.safe import LegacyState, ModernState, WithdrawalSafe

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "AuthorizationError",
    "IncorrectAmountError",
    "InsufficientBalanceError",
    "InvalidTransitionError",
    "LegacyState",
    "ModernState",
    "Payouts",
    "PenaltyConfig",
    "RewardSplitConfig",
    "SlashedError",
    "StateError",
    "TransferError",
    "ValidatorInfo",
    "ValidatorPhase",
    "WithdrawalSafe",
    "WithdrawalSafeError",
]


def _entry_point() -> NoReturn:
    """Entry point for the withdrawal-safe script."""
    import sys

    from withdrawal_safe.cli import main

    raise SystemExit(main(sys.argv[1:]))

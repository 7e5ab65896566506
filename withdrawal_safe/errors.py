"""Exceptions raised by the withdrawal safe engine."""


class WithdrawalSafeError(Exception):
    """Base exception for withdrawal safe accounting."""


class AuthorizationError(WithdrawalSafeError):
    """Caller is not allowed to perform the operation."""


class StateError(WithdrawalSafeError):
    """Registry or ledger is in a state that forbids the operation."""


class InvalidTransitionError(WithdrawalSafeError):
    """Illegal validator phase transition."""


class InsufficientBalanceError(WithdrawalSafeError):
    """Balance is below a required floor."""


class IncorrectAmountError(WithdrawalSafeError):
    """An amount or split postcondition does not hold (accounting defect)."""


class SlashedError(WithdrawalSafeError):
    """Withdrawable amount is below one full principal unit."""


class TransferError(WithdrawalSafeError):
    """
    Fund distribution failed on the treasury fallback.

    `delivered` holds what already left the safe before the failure; `undelivered_wei` is the amount the
    treasury still has to receive.
    """

    def __init__(self, message: str, *, delivered: dict[str, int] | None = None, undelivered_wei: int = 0) -> None:
        super().__init__(message)
        self.delivered = dict(delivered or {})
        self.undelivered_wei = undelivered_wei

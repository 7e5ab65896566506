"""Distribution of payouts to beneficiaries."""

from loguru import logger

from withdrawal_safe.constants import TRANSFER_GAS_LIMIT
from withdrawal_safe.errors import TransferError
from withdrawal_safe.models import DistributionResult, PayoutRecipients, Payouts
from withdrawal_safe.services import FundTransfer


def distribute_funds(payouts: Payouts, recipients: PayoutRecipients, transfer: FundTransfer) -> DistributionResult:
    """
    Send payouts to operator, T-NFT and B-NFT holders on a best-effort basis.

    Whatever a recipient fails to accept is added to the treasury's amount. The treasury transfer must
    succeed, otherwise TransferError is raised.
    """
    result = DistributionResult()
    to_treasury = payouts.treasury

    for address, amount in (
        (recipients.operator, payouts.operator),
        (recipients.tnft, payouts.tnft),
        (recipients.bnft, payouts.bnft),
    ):
        if amount == 0:
            continue
        if transfer.send(address, amount, gas_limit=TRANSFER_GAS_LIMIT):
            result.delivered[address] = result.delivered.get(address, 0) + amount
        else:
            logger.warning(f"Transfer of {amount} wei to {address} failed; redirecting to treasury")
            to_treasury += amount
            result.redirected_to_treasury += amount

    if to_treasury > 0:
        if not transfer.send(recipients.treasury, to_treasury):
            raise TransferError(
                f"Transfer of {to_treasury} wei to treasury {recipients.treasury} failed",
                delivered=result.delivered,
                undelivered_wei=to_treasury,
            )
        result.delivered[recipients.treasury] = result.delivered.get(recipients.treasury, 0) + to_treasury

    return result

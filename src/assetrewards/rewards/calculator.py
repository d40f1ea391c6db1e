"""
assetrewards/rewards/calculator.py

Pro-rata payout calculation.

Each eligible holder receives

    floor(total_amount * balance / eligible_supply)

truncated down to the funding asset's smallest unit. The remainder left by
truncation is not distributed, so the same snapshot always yields the same
payments.
"""

import logging

from ..assets import unit_step
from ..config import AMOUNT_DECIMALS
from .payouts import Payment, PayoutEntry
from .requests import RewardRequest
from .snapshots import OwnershipSnapshot

logger = logging.getLogger("assetrewards.rewards.calculator")


def calculate_payout(
    request: RewardRequest,
    snapshot: OwnershipSnapshot,
    funding_units: int = AMOUNT_DECIMALS,
) -> PayoutEntry:
    """
    Split a reward across the snapshot's holders.

    Args:
        request: The scheduled reward
        snapshot: Holder balances of the target asset at the trigger height
        funding_units: Decimal places of the funding asset (8 for the
            native currency)

    Returns:
        PayoutEntry with one pending payment per holder whose share is
        non-zero, excluding the request's exception addresses

    Raises:
        ValueError: If the snapshot is for a different asset or height
    """
    if snapshot.asset_name != request.target_asset or snapshot.height != request.trigger_height:
        raise ValueError(
            f"Snapshot {snapshot.asset_name}@{snapshot.height} does not match reward "
            f"{request.reward_id} ({request.target_asset}@{request.trigger_height})"
        )

    step = unit_step(funding_units)
    excluded = set(request.exception_addresses)
    eligible = {
        address: balance
        for address, balance in snapshot.owners.items()
        if address not in excluded and balance > 0
    }
    eligible_supply = sum(eligible.values())

    payments = []
    if eligible_supply > 0:
        for address, balance in eligible.items():
            share = request.total_amount * balance // eligible_supply
            share -= share % step
            if share > 0:
                payments.append(Payment(address=address, amount=share))

    entry = PayoutEntry.from_payments(
        reward_id=request.reward_id,
        target_asset=request.target_asset,
        funding_asset=request.funding_asset,
        payments=payments,
    )

    undistributed = request.total_amount - entry.total_amount
    logger.info(
        f"Calculated {len(payments)} payments for reward {request.reward_id} "
        f"({len(snapshot.owners) - len(eligible)} holders excluded, "
        f"{undistributed} units undistributed)"
    )
    return entry

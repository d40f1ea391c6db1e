"""
assetrewards/rewards/lifecycle.py

Reward lifecycle: schedule -> calculate -> execute.

RewardsController ties the request table, the snapshot source, the
payout ledger and the batch executor together and returns a plain result
document for every operation.

The request and payout tables are independent: nothing enforces that a
payout entry has a matching request. Cancelling one never touches the
other. `reconcile` reports the gaps between them instead of repairing
them.

All operations on one reward id must be serialized by the caller.
"""

import logging
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from ..assets import check_rewardable_asset, parse_amount
from ..blockchain.transfer import TransferBuilder
from ..config import AMOUNT_DECIMALS, RewardsConfig
from ..errors import (
    InvalidParameterError,
    NotFoundError,
    RewardsDisabledError,
    RewardsError,
    SnapshotUnavailableError,
)
from .calculator import calculate_payout
from .executor import BatchExecutor
from .payouts import PayoutEntry, PayoutLedger
from .requests import RequestStore, RewardRequest
from .snapshots import SnapshotProvider

logger = logging.getLogger("assetrewards.rewards.lifecycle")


def parse_exception_addresses(value: Union[None, str, Iterable[str]]) -> List[str]:
    """Accept a comma-delimited string or an iterable of addresses."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return sorted({addr.strip() for addr in value if addr and addr.strip()})


def _payouts(entry: PayoutEntry, with_status: bool = False) -> List[Dict[str, Any]]:
    rows = []
    for payment in entry.payments.values():
        row = {"address": payment.address, "payout_amount": payment.amount}
        if with_status:
            row["status"] = payment.status.value
            row["transaction_id"] = payment.transaction_id
        rows.append(row)
    return rows


class RewardsController:
    """
    Entry point for every reward operation.

    Usage:
        controller = RewardsController(
            config, RequestStore(backend), PayoutLedger(backend),
            SnapshotStore(backend), transfer_builder=builder,
            chain_height=client.get_block_height,
        )
        scheduled = await controller.schedule(1000, "EVR", "STOCK1")
        ...
        await controller.calculate(scheduled["reward_id"])
        report = await controller.execute(scheduled["reward_id"])
    """

    def __init__(
        self,
        config: RewardsConfig,
        requests: RequestStore,
        ledger: PayoutLedger,
        snapshots: SnapshotProvider,
        transfer_builder: Optional[TransferBuilder] = None,
        chain_height: Optional[Callable[[], int]] = None,
        asset_units: Optional[Callable[[str], Optional[int]]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        """
        Args:
            config: Process settings, including the enable gate
            requests: Reward request table
            ledger: Payout ledger
            snapshots: Ownership snapshot source
            transfer_builder: Transfer collaborator (needed for execute)
            chain_height: Returns the current chain height (needed for
                schedule when no height is passed)
            asset_units: Returns an asset's decimal places; assets it does
                not know use 8
            id_factory: Generates reward ids (random UUID4 by default)
        """
        self.config = config
        self.requests = requests
        self.ledger = ledger
        self.snapshots = snapshots
        self.chain_height = chain_height
        self.asset_units = asset_units
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))

        self.executor: Optional[BatchExecutor] = None
        if transfer_builder is not None:
            self.executor = BatchExecutor(
                ledger,
                transfer_builder,
                batch_size=config.batch_size,
                native_currency=config.native_currency,
            )

    def _require_enabled(self) -> None:
        if not self.config.enabled:
            raise RewardsDisabledError()

    def _funding_units(self, funding_asset: str) -> int:
        if self.config.is_native(funding_asset) or self.asset_units is None:
            return AMOUNT_DECIMALS
        units = self.asset_units(funding_asset)
        return AMOUNT_DECIMALS if units is None else units

    # ========================================================================
    # REQUESTS
    # ========================================================================

    async def schedule(
        self,
        amount: Any,
        funding_asset: str,
        target_asset: str,
        exception_addresses: Union[None, str, Iterable[str]] = None,
        wallet_name: str = "",
        current_height: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Schedule a reward at the current height plus the configured offset.

        Returns:
            {reward_id, trigger_height}

        Raises:
            InvalidParameterError: Bad amount or asset name
            DuplicateIDError: The generated id collided (store unchanged)
            StorageError: The request could not be saved
        """
        self._require_enabled()

        is_native = self.config.is_native(funding_asset)
        total_amount = parse_amount(amount, is_native=is_native)
        if total_amount <= 0:
            raise InvalidParameterError("Invalid amount to reward")

        if not is_native:
            check_rewardable_asset(funding_asset, "funding_asset")
        check_rewardable_asset(target_asset, "target_asset")

        if current_height is None:
            if self.chain_height is None:
                raise InvalidParameterError("No chain height available to schedule against")
            current_height = self.chain_height()

        request = RewardRequest(
            reward_id=self._new_id(),
            wallet_name=wallet_name,
            trigger_height=current_height + self.config.height_offset,
            total_amount=total_amount,
            funding_asset=funding_asset,
            target_asset=target_asset,
            exception_addresses=tuple(parse_exception_addresses(exception_addresses)),
        )
        await self.requests.schedule(request)

        return {
            "reward_id": request.reward_id,
            "trigger_height": request.trigger_height,
        }

    async def get(self, reward_id: str) -> Dict[str, Any]:
        """Fields of a scheduled reward."""
        self._require_enabled()
        request = await self.requests.get(reward_id)
        return request.to_dict()

    async def cancel(self, reward_id: str) -> Dict[str, Any]:
        """Remove the request row only. Any payout entry stays."""
        self._require_enabled()
        await self.requests.remove(reward_id)
        return {"reward_id": reward_id, "reward_status": "Removed"}

    # ========================================================================
    # PAYOUTS
    # ========================================================================

    async def calculate(self, reward_id: str) -> Dict[str, Any]:
        """
        Compute and store the payout entry for a reward.

        An entry that already has paid or dropped payments is returned as
        stored rather than recalculated.

        Raises:
            NotFoundError: No such reward request
            SnapshotUnavailableError: Snapshot not taken yet (retry later)
            StorageError: The entry could not be saved
        """
        self._require_enabled()
        request = await self.requests.get(reward_id)

        snapshot = await self.snapshots.get_snapshot(request.target_asset, request.trigger_height)
        if snapshot is None:
            logger.warning(
                f"Snapshot of {request.target_asset} at height {request.trigger_height} "
                f"not available yet for reward {reward_id}"
            )
            raise SnapshotUnavailableError(request.target_asset, request.trigger_height)

        entry = await self._existing_with_progress(reward_id)
        if entry is None:
            entry = calculate_payout(request, snapshot, self._funding_units(request.funding_asset))
            await self.ledger.store(entry)
        else:
            logger.warning(
                f"Reward {reward_id} already has executed payments, keeping stored payout"
            )

        result = request.to_dict()
        result["payouts"] = _payouts(entry)
        return result

    async def _existing_with_progress(self, reward_id: str) -> Optional[PayoutEntry]:
        try:
            entry = await self.ledger.get(reward_id)
        except NotFoundError:
            return None
        return entry if entry.has_progress else None

    async def get_payments(self, reward_id: str) -> Dict[str, Any]:
        """Stored payout entry with per-payment status."""
        self._require_enabled()
        entry = await self.ledger.get(reward_id)
        return {
            "reward_id": entry.reward_id,
            "target_asset": entry.target_asset,
            "funding_asset": entry.funding_asset,
            "payouts": _payouts(entry, with_status=True),
        }

    async def cancel_payments(self, reward_id: str) -> Dict[str, Any]:
        """Remove the payout row only. The request stays."""
        self._require_enabled()
        await self.ledger.remove(reward_id)
        return {"reward_id": reward_id, "payment_status": "Removed"}

    async def execute(self, reward_id: str, wallet_name: str = "") -> Dict[str, Any]:
        """
        Send every pending payment of a reward from `wallet_name`.

        With no wallet name the one stored on the request is used.

        Rejected batches do not fail the call; inspect `batch_results` and
        `pending_count` and call again to retry them.

        Raises:
            NotFoundError: No payout entry for this reward
        """
        self._require_enabled()
        if self.executor is None:
            raise RewardsError("No transfer builder configured; cannot execute payments")

        if not wallet_name:
            wallet_name = await self._scheduled_wallet(reward_id)

        report = await self.executor.execute(reward_id, wallet_name)
        return report.to_dict()

    async def _scheduled_wallet(self, reward_id: str) -> str:
        # The request row may already be cancelled; payouts do not depend on it
        try:
            request = await self.requests.get(reward_id)
        except NotFoundError:
            return ""
        return request.wallet_name

    # ========================================================================
    # HEIGHT MONITOR GLUE
    # ========================================================================

    async def on_block_connected(self, height: int) -> List[RewardRequest]:
        """
        Called once per connected block.

        Returns:
            Requests that became payable at this height
        """
        if not self.config.enabled:
            return []
        if not await self.requests.has_any_scheduled_at_height(height):
            return []

        due = await self.requests.list_payable_for_asset("", height)
        logger.info(f"{len(due)} rewards payable at height {height}")
        return due

    async def calculate_due(self, height: int, asset_name: str = "") -> Dict[str, str]:
        """
        Calculate payouts for every reward due at `height`.

        Missing snapshots are reported, not raised; those rewards can be
        calculated on a later call.

        Returns:
            {reward_id: "calculated" | "snapshot_unavailable"}
        """
        self._require_enabled()
        results: Dict[str, str] = {}
        for request in await self.requests.list_payable_for_asset(asset_name, height):
            try:
                await self.calculate(request.reward_id)
                results[request.reward_id] = "calculated"
            except SnapshotUnavailableError:
                results[request.reward_id] = "snapshot_unavailable"
        return results

    async def reconcile(self, current_height: int) -> Dict[str, List[str]]:
        """
        Report inconsistencies between the request and payout tables.

        Returns:
            orphaned_payouts: payout entries with no request row
            uncalculated: requests at or past their trigger height with no payout
            incomplete: payout entries still holding pending payments
        """
        self._require_enabled()
        requests = {r.reward_id: r for r in await self.requests.list_all()}
        entries = {e.reward_id: e for e in await self.ledger.list_all()}

        report = {
            "orphaned_payouts": sorted(set(entries) - set(requests)),
            "uncalculated": sorted(
                reward_id for reward_id, request in requests.items()
                if reward_id not in entries and request.trigger_height <= current_height
            ),
            "incomplete": sorted(
                reward_id for reward_id, entry in entries.items() if entry.pending()
            ),
        }

        if any(report.values()):
            logger.warning(
                f"Reconciliation at height {current_height}: "
                f"{len(report['orphaned_payouts'])} orphaned payouts, "
                f"{len(report['uncalculated'])} uncalculated, "
                f"{len(report['incomplete'])} incomplete"
            )
        return report

"""
assetrewards/rewards/executor.py

Batched, restartable execution of a payout entry.

Flow for one invocation:
1. Load the latest ledger state and take the PENDING payments
2. Split them into consecutive batches of at most `batch_size`
3. Per batch, in order:
   - drop destinations that fail validation (never retried)
   - send one transfer for the rest
   - accepted: mark them PAID
   - rejected: leave them PENDING for a later invocation
   - checkpoint the entry if any payment changed status
4. Report every batch individually

Batches run strictly one after another. A checkpoint follows every batch
that paid or dropped something, so a crash after a broadcast loses at
most that one batch's status. An invocation that changes nothing writes
nothing. If a checkpoint cannot be written the invocation stops before
sending anything else.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..blockchain.transfer import TransferBuilder
from ..config import MAX_PAYMENTS_PER_TRANSACTION, NATIVE_CURRENCY
from ..errors import InvalidDestinationError, RewardsError, TransferRejectedError
from .payouts import Payment, PaymentStatus, PayoutEntry, PayoutLedger

logger = logging.getLogger("assetrewards.rewards.executor")


class BatchOutcome(Enum):
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    SKIPPED = "Skipped"  # every destination in the batch was dropped


class LedgerUpdate(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class BatchResult:
    """Outcome of one transfer attempt."""
    index: int
    outcome: BatchOutcome
    expected_count: int  # payments attempted in this batch
    actual_count: int    # payments placed in the transfer
    transaction_id: Optional[str] = None
    dropped: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is BatchOutcome.SUCCEEDED

    @property
    def transition_count(self) -> int:
        """Payments this batch moved out of PENDING."""
        paid = self.actual_count if self.succeeded else 0
        return paid + len(self.dropped)

    def to_dict(self) -> dict:
        result = {
            "result": self.outcome.value,
            "expected_count": self.expected_count,
            "actual_count": self.actual_count,
        }
        if self.transaction_id is not None:
            result["transaction_id"] = self.transaction_id
        if self.dropped:
            result["dropped_addresses"] = list(self.dropped)
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class ExecutionReport:
    """Everything one `execute` invocation did."""
    reward_id: str
    batches: List[BatchResult] = field(default_factory=list)
    ledger_update: Optional[LedgerUpdate] = None
    paid_count: int = 0
    dropped_count: int = 0
    pending_count: int = 0
    # Status changes counted above that the failed checkpoint did not save
    unsaved_count: int = 0

    @property
    def attempted_count(self) -> int:
        return sum(b.expected_count for b in self.batches)

    @property
    def included_count(self) -> int:
        return sum(b.actual_count for b in self.batches)

    @property
    def complete(self) -> bool:
        """No payment is left pending."""
        return self.pending_count == 0

    def to_dict(self) -> dict:
        result = {
            "reward_id": self.reward_id,
            "batch_results": [b.to_dict() for b in self.batches],
            "attempted_count": self.attempted_count,
            "included_count": self.included_count,
            "paid_count": self.paid_count,
            "dropped_count": self.dropped_count,
            "pending_count": self.pending_count,
        }
        if self.ledger_update is not None:
            result["payout_db_update"] = self.ledger_update.value
        if self.unsaved_count:
            result["unsaved_count"] = self.unsaved_count
        return result


def make_batches(payments: List[Payment], batch_size: int) -> List[List[Payment]]:
    """Consecutive slices of at most `batch_size` payments."""
    return [payments[i:i + batch_size] for i in range(0, len(payments), batch_size)]


class BatchExecutor:
    """
    Drives the transfer collaborator for pending payments of a payout.

    Safe to call repeatedly on the same reward id; each call only
    touches payments that are still PENDING in the ledger. Callers must
    serialize calls per reward id.

    The report's counts reflect this invocation's in-memory view. When
    `ledger_update` is FAILED, `unsaved_count` of them are not in the
    ledger yet.

    Usage:
        executor = BatchExecutor(ledger, builder, batch_size=50)
        report = await executor.execute(reward_id, wallet_name="main")
        if not report.complete:
            # some batches were rejected; run again later
            ...
    """

    def __init__(
        self,
        ledger: PayoutLedger,
        transfer_builder: TransferBuilder,
        batch_size: int = MAX_PAYMENTS_PER_TRANSACTION,
        native_currency: str = NATIVE_CURRENCY,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.ledger = ledger
        self.transfer_builder = transfer_builder
        self.batch_size = batch_size
        self.native_currency = native_currency

    async def execute(self, reward_id: str, wallet_name: str) -> ExecutionReport:
        """
        Pay every pending payment of a reward, batch by batch.

        Args:
            reward_id: Payout entry to execute
            wallet_name: Funding wallet for the transfers

        Returns:
            ExecutionReport

        Raises:
            NotFoundError: If no payout entry exists
        """
        entry = await self.ledger.get(reward_id)
        report = ExecutionReport(reward_id=reward_id)

        pending = entry.pending()
        if not pending:
            logger.info(f"Reward {reward_id} has no pending payments")
            self._tally(entry, report)
            return report

        batches = make_batches(pending, self.batch_size)
        logger.info(
            f"Executing reward {reward_id}: {len(pending)} pending payments "
            f"in {len(batches)} batches of up to {self.batch_size}"
        )

        for index, batch in enumerate(batches):
            result = await self._run_batch(entry, index, batch, wallet_name)
            report.batches.append(result)

            if not result.transition_count:
                continue

            if not await self._checkpoint(entry):
                report.ledger_update = LedgerUpdate.FAILED
                report.unsaved_count = result.transition_count
                logger.error(
                    f"Stopping reward {reward_id} after batch {index}: "
                    f"payment status could not be saved"
                )
                break
            report.ledger_update = LedgerUpdate.SUCCEEDED

        self._tally(entry, report)
        logger.info(
            f"Reward {reward_id} execution finished: {report.paid_count} paid, "
            f"{report.dropped_count} dropped, {report.pending_count} pending"
        )
        return report

    async def _run_batch(
        self,
        entry: PayoutEntry,
        index: int,
        batch: List[Payment],
        wallet_name: str,
    ) -> BatchResult:
        recipients: Dict[str, int] = {}
        dropped: List[str] = []

        for payment in batch:
            try:
                self.transfer_builder.check_destination(payment.address)
            except InvalidDestinationError:
                logger.warning(
                    f"Dropping payment to invalid destination {payment.address} "
                    f"(reward {entry.reward_id})"
                )
                payment.mark_dropped()
                dropped.append(payment.address)
                continue
            recipients[payment.address] = payment.amount

        result = BatchResult(
            index=index,
            outcome=BatchOutcome.FAILED,
            expected_count=len(batch),
            actual_count=len(recipients),
            dropped=dropped,
        )

        if not recipients:
            result.outcome = BatchOutcome.SKIPPED
            return result

        logger.info(
            f"Submitting batch {index} of reward {entry.reward_id}: "
            f"{len(recipients)} recipients, {sum(recipients.values())} {entry.funding_asset}"
        )

        try:
            transaction_id = await self._send(entry.funding_asset, wallet_name, recipients)
        except TransferRejectedError as e:
            logger.warning(f"Batch {index} of reward {entry.reward_id} rejected: {e}")
            result.error = str(e)
            return result

        for payment in batch:
            if payment.status is PaymentStatus.PENDING:
                payment.mark_paid(transaction_id)

        result.outcome = BatchOutcome.SUCCEEDED
        result.transaction_id = transaction_id
        logger.info(f"Batch {index} of reward {entry.reward_id} accepted in {transaction_id}")
        return result

    async def _send(self, funding_asset: str, wallet_name: str, recipients: Dict[str, int]) -> str:
        if funding_asset == self.native_currency:
            return await self.transfer_builder.send_native(wallet_name, recipients)
        return await self.transfer_builder.send_asset(wallet_name, funding_asset, recipients)

    async def _checkpoint(self, entry: PayoutEntry) -> bool:
        try:
            await self.ledger.update(entry)
            return True
        except RewardsError as e:
            logger.error(f"Failed to update payout ledger for reward {entry.reward_id}: {e}")
            return False

    @staticmethod
    def _tally(entry: PayoutEntry, report: ExecutionReport) -> None:
        counts = entry.status_counts()
        report.paid_count = counts[PaymentStatus.PAID.value]
        report.dropped_count = counts[PaymentStatus.DROPPED.value]
        report.pending_count = counts[PaymentStatus.PENDING.value]

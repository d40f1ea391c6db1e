"""
assetrewards/rewards/payouts.py

Payout entries and the durable payout ledger.

A payout entry is the computed list of payments for one reward. Payments
are keyed by destination address and kept in address order. Once an entry
is computed its destinations never change; only payment status moves,
and only forward:

    PENDING -> PAID      (included in an accepted transfer)
    PENDING -> DROPPED   (destination failed validation, never retried)
"""

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from ..errors import NotFoundError
from ..storage import RecordTable, StorageBackend

logger = logging.getLogger("assetrewards.rewards.payouts")


class PaymentStatus(Enum):
    """Lifecycle of a single payment."""
    PENDING = "pending"
    PAID = "paid"
    DROPPED = "dropped"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


@dataclass
class Payment:
    """One destination's share of a reward."""
    address: str
    amount: int  # base units of the funding asset
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.status.is_terminal

    def mark_paid(self, transaction_id: str) -> None:
        if self.completed:
            raise ValueError(f"Payment to {self.address} already {self.status.value}")
        self.status = PaymentStatus.PAID
        self.transaction_id = transaction_id

    def mark_dropped(self) -> None:
        if self.completed:
            raise ValueError(f"Payment to {self.address} already {self.status.value}")
        self.status = PaymentStatus.DROPPED

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "amount": self.amount,
            "status": self.status.value,
            "transaction_id": self.transaction_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Payment":
        return cls(
            address=data["address"],
            amount=int(data["amount"]),
            status=PaymentStatus(data.get("status", PaymentStatus.PENDING.value)),
            transaction_id=data.get("transaction_id"),
        )


@dataclass
class PayoutEntry:
    """Computed payments for one reward request."""
    reward_id: str
    target_asset: str
    funding_asset: str
    payments: Dict[str, Payment] = field(default_factory=dict)

    def __post_init__(self):
        self.payments = {addr: self.payments[addr] for addr in sorted(self.payments)}

    @classmethod
    def from_payments(
        cls,
        reward_id: str,
        target_asset: str,
        funding_asset: str,
        payments: Iterable[Payment],
    ) -> "PayoutEntry":
        by_address: Dict[str, Payment] = {}
        for payment in payments:
            if payment.address in by_address:
                raise ValueError(f"Duplicate destination {payment.address}")
            by_address[payment.address] = payment
        return cls(reward_id, target_asset, funding_asset, by_address)

    def with_status(self, status: PaymentStatus) -> List[Payment]:
        return [p for p in self.payments.values() if p.status is status]

    def pending(self) -> List[Payment]:
        return self.with_status(PaymentStatus.PENDING)

    @property
    def has_progress(self) -> bool:
        """True once any payment reached a terminal state."""
        return any(p.completed for p in self.payments.values())

    @property
    def total_amount(self) -> int:
        return sum(p.amount for p in self.payments.values())

    def status_counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in PaymentStatus}
        for payment in self.payments.values():
            counts[payment.status.value] += 1
        return counts

    def copy(self) -> "PayoutEntry":
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "reward_id": self.reward_id,
            "target_asset": self.target_asset,
            "funding_asset": self.funding_asset,
            "payments": [p.to_dict() for p in self.payments.values()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PayoutEntry":
        return cls.from_payments(
            reward_id=data["reward_id"],
            target_asset=data["target_asset"],
            funding_asset=data["funding_asset"],
            payments=[Payment.from_dict(p) for p in data.get("payments", [])],
        )


def check_transition(current: PayoutEntry, proposed: PayoutEntry) -> None:
    """
    Validate that `proposed` only moves payment status forward.

    Raises:
        ValueError: If destinations differ or a terminal payment changed
    """
    if current.reward_id != proposed.reward_id:
        raise ValueError(f"Reward id mismatch: {current.reward_id} != {proposed.reward_id}")
    if set(current.payments) != set(proposed.payments):
        raise ValueError(f"Destination set of {current.reward_id} cannot change")

    for address, before in current.payments.items():
        after = proposed.payments[address]
        if after.amount != before.amount:
            raise ValueError(f"Payout amount for {address} cannot change")
        if before.completed and (after.status is not before.status
                                 or after.transaction_id != before.transaction_id):
            raise ValueError(
                f"Payment to {address} is {before.status.value} and cannot become "
                f"{after.status.value}"
            )


class PayoutLedger:
    """Table of payout entries keyed by reward id."""

    NAMESPACE = "payouts"

    def __init__(self, backend: StorageBackend):
        self._table: RecordTable[PayoutEntry] = RecordTable(
            self.NAMESPACE, backend, PayoutEntry.to_dict, PayoutEntry.from_dict
        )

    async def store(self, entry: PayoutEntry) -> None:
        """
        Insert or overwrite an entry.

        Raises:
            StorageError: If the write failed
        """
        await self._table.put(entry.reward_id, entry)
        logger.info(
            f"Stored payout for reward {entry.reward_id}: "
            f"{len(entry.payments)} payments totalling {entry.total_amount}"
        )

    async def get(self, reward_id: str) -> PayoutEntry:
        """
        Raises:
            NotFoundError: If no payout has been calculated for this id
        """
        entry = await self._table.get(reward_id)
        if entry is None:
            raise NotFoundError("Payout entry", reward_id)
        return entry

    async def remove(self, reward_id: str) -> None:
        """
        Raises:
            NotFoundError: If no payout exists for this id
            StorageError: If the delete failed
        """
        if not await self._table.delete(reward_id):
            raise NotFoundError("Payout entry", reward_id)
        logger.info(f"Removed payout entry for reward {reward_id}")

    async def update(self, entry: PayoutEntry) -> None:
        """
        Replace the stored payment set of an existing entry.

        The replacement is a single-record write: either the whole new
        payment set is stored or the previous one stays.

        Raises:
            NotFoundError: If the entry no longer exists
            ValueError: If the update would add/remove destinations or
                move a payment out of a terminal state
            StorageError: If the write failed
        """
        current = await self.get(entry.reward_id)
        check_transition(current, entry)
        await self._table.put(entry.reward_id, entry)

        counts = entry.status_counts()
        logger.debug(f"Updated payout {entry.reward_id}: {counts}")

    async def list_all(self) -> List[PayoutEntry]:
        """Every stored entry, ordered by reward id."""
        return await self._table.values()

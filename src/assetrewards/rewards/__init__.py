"""
assetrewards/rewards/

Reward requests, payout calculation, the payout ledger and batch execution.
"""

from .requests import RewardRequest, RequestStore
from .payouts import Payment, PaymentStatus, PayoutEntry, PayoutLedger
from .snapshots import OwnershipSnapshot, SnapshotProvider, SnapshotStore
from .calculator import calculate_payout
from .executor import BatchExecutor, BatchOutcome, BatchResult, ExecutionReport, LedgerUpdate
from .lifecycle import RewardsController, parse_exception_addresses

__all__ = [
    "RewardRequest",
    "RequestStore",
    "Payment",
    "PaymentStatus",
    "PayoutEntry",
    "PayoutLedger",
    "OwnershipSnapshot",
    "SnapshotProvider",
    "SnapshotStore",
    "calculate_payout",
    "BatchExecutor",
    "BatchOutcome",
    "BatchResult",
    "ExecutionReport",
    "LedgerUpdate",
    "RewardsController",
    "parse_exception_addresses",
]

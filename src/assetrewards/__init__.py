"""
assetrewards - Scheduled pro-rata token rewards for Evrmore assets

Holders of a target asset receive a share of a funding amount in
proportion to their balance at a trigger height:
- RequestStore keeps scheduled rewards
- PayoutCalculator turns an ownership snapshot into a payout list
- PayoutLedger tracks every payment as pending, paid or dropped
- BatchExecutor sends pending payments in bounded, resumable batches

Usage:
    from assetrewards import RewardsConfig, RewardsController, open_backend
    from assetrewards import RequestStore, PayoutLedger, SnapshotStore

    backend = open_backend(config.storage_dir)
    controller = RewardsController(
        config, RequestStore(backend), PayoutLedger(backend),
        SnapshotStore(backend), transfer_builder=builder,
    )

    scheduled = await controller.schedule(1000, "EVR", "STOCK1", current_height=height)
    await controller.calculate(scheduled["reward_id"])
    report = await controller.execute(scheduled["reward_id"], "rewards")
"""

from .config import RewardsConfig
from .errors import (
    RewardsError,
    NotFoundError,
    DuplicateIDError,
    StorageError,
    SnapshotUnavailableError,
    TransferRejectedError,
    InvalidDestinationError,
    InvalidParameterError,
    RewardsDisabledError,
)
from .storage import StorageBackend, MemoryBackend, FileBackend, open_backend
from .rewards import (
    RewardRequest,
    RequestStore,
    Payment,
    PaymentStatus,
    PayoutEntry,
    PayoutLedger,
    OwnershipSnapshot,
    SnapshotProvider,
    SnapshotStore,
    calculate_payout,
    BatchExecutor,
    ExecutionReport,
    RewardsController,
)

__version__ = "0.1.0"

__all__ = [
    "RewardsConfig",
    # Errors
    "RewardsError",
    "NotFoundError",
    "DuplicateIDError",
    "StorageError",
    "SnapshotUnavailableError",
    "TransferRejectedError",
    "InvalidDestinationError",
    "InvalidParameterError",
    "RewardsDisabledError",
    # Storage
    "StorageBackend",
    "MemoryBackend",
    "FileBackend",
    "open_backend",
    # Rewards
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
    "ExecutionReport",
    "RewardsController",
]

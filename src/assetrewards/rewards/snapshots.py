"""
assetrewards/rewards/snapshots.py

Ownership snapshots: frozen holder balances of an asset at a height.

Snapshots are produced by an external subsystem. The calculator only
reads them through SnapshotProvider. SnapshotStore keeps them in the
same storage engine as the reward tables.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from ..storage import RecordTable, StorageBackend

logger = logging.getLogger("assetrewards.rewards.snapshots")


@dataclass(frozen=True)
class OwnershipSnapshot:
    """Holder balances (base units) of `asset_name` as of `height`."""
    asset_name: str
    height: int
    owners: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self):
        frozen = {addr: int(self.owners[addr]) for addr in sorted(self.owners)}
        object.__setattr__(self, "owners", MappingProxyType(frozen))

    @property
    def total_supply(self) -> int:
        return sum(self.owners.values())

    def to_dict(self) -> dict:
        return {
            "asset_name": self.asset_name,
            "height": self.height,
            "owners": [
                {"address": addr, "amount_owned": amount}
                for addr, amount in self.owners.items()
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OwnershipSnapshot":
        owners: Dict[str, int] = {}
        for row in data.get("owners", []):
            owners[row["address"]] = int(row["amount_owned"])
        return cls(asset_name=data["asset_name"], height=int(data["height"]), owners=owners)


class SnapshotProvider(ABC):
    """Read-only access to ownership snapshots."""

    @abstractmethod
    async def get_snapshot(self, asset_name: str, height: int) -> Optional[OwnershipSnapshot]:
        """
        Get the snapshot for (asset, height).

        Returns:
            The snapshot, or None if it has not been taken yet
        """
        pass


def snapshot_key(asset_name: str, height: int) -> str:
    return f"{asset_name}@{height}"


class SnapshotStore(SnapshotProvider):
    """Snapshots persisted in a RecordTable, keyed by asset@height."""

    NAMESPACE = "snapshots"

    def __init__(self, backend: StorageBackend):
        self._table: RecordTable[OwnershipSnapshot] = RecordTable(
            self.NAMESPACE, backend, OwnershipSnapshot.to_dict, OwnershipSnapshot.from_dict
        )

    async def get_snapshot(self, asset_name: str, height: int) -> Optional[OwnershipSnapshot]:
        return await self._table.get(snapshot_key(asset_name, height))

    async def record(self, snapshot: OwnershipSnapshot) -> None:
        """
        Persist a snapshot.

        Re-recording an identical snapshot is a no-op.

        Raises:
            ValueError: If a different snapshot exists for the same (asset, height)
            StorageError: If the write failed
        """
        key = snapshot_key(snapshot.asset_name, snapshot.height)
        existing = await self._table.get(key)
        if existing is not None:
            if existing.to_dict() != snapshot.to_dict():
                raise ValueError(f"Snapshot {key} already recorded with different balances")
            return

        await self._table.put(key, snapshot)
        logger.info(
            f"Recorded snapshot of {snapshot.asset_name} at height {snapshot.height} "
            f"({len(snapshot.owners)} owners)"
        )

    async def list_keys(self) -> List[str]:
        return await self._table.keys()

"""
assetrewards/rewards/requests.py

Durable table of scheduled reward requests.

One row per reward id. The height index is rebuilt from the table the
first time it is needed, so the per-block check stays a dictionary lookup
after a restart.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from ..errors import DuplicateIDError, NotFoundError
from ..storage import RecordTable, StorageBackend

logger = logging.getLogger("assetrewards.rewards.requests")


@dataclass(frozen=True)
class RewardRequest:
    """A scheduled instruction to pay holders of `target_asset` at `trigger_height`."""
    reward_id: str
    wallet_name: str
    trigger_height: int
    total_amount: int  # base units
    funding_asset: str
    target_asset: str
    exception_addresses: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        # Stored sorted and de-duplicated so equal requests serialize identically
        object.__setattr__(
            self, "exception_addresses", tuple(sorted(set(self.exception_addresses)))
        )

    def to_dict(self) -> dict:
        return {
            "reward_id": self.reward_id,
            "wallet_name": self.wallet_name,
            "trigger_height": self.trigger_height,
            "total_amount": self.total_amount,
            "funding_asset": self.funding_asset,
            "target_asset": self.target_asset,
            "exception_addresses": list(self.exception_addresses),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RewardRequest":
        return cls(
            reward_id=data["reward_id"],
            wallet_name=data["wallet_name"],
            trigger_height=int(data["trigger_height"]),
            total_amount=int(data["total_amount"]),
            funding_asset=data["funding_asset"],
            target_asset=data["target_asset"],
            exception_addresses=tuple(data.get("exception_addresses", [])),
        )


class RequestStore:
    """
    Table of reward requests keyed by reward id.

    Usage:
        store = RequestStore(FileBackend(path))
        await store.schedule(request)

        if await store.has_any_scheduled_at_height(height):
            due = await store.list_payable_for_asset("", height)
    """

    NAMESPACE = "reward_requests"

    def __init__(self, backend: StorageBackend):
        self._table: RecordTable[RewardRequest] = RecordTable(
            self.NAMESPACE, backend, RewardRequest.to_dict, RewardRequest.from_dict
        )
        self._height_index: Optional[Dict[int, Set[str]]] = None

    async def _index(self) -> Dict[int, Set[str]]:
        if self._height_index is None:
            index: Dict[int, Set[str]] = {}
            for request in await self._table.values():
                index.setdefault(request.trigger_height, set()).add(request.reward_id)
            self._height_index = index
            logger.debug(f"Loaded height index with {len(index)} heights")
        return self._height_index

    async def schedule(self, request: RewardRequest) -> None:
        """
        Insert a new reward request.

        Raises:
            DuplicateIDError: If the reward id already exists (store unchanged)
            StorageError: If the write failed
        """
        if await self._table.contains(request.reward_id):
            logger.error(f"Refusing to overwrite existing reward {request.reward_id}")
            raise DuplicateIDError(request.reward_id)

        index = await self._index()
        await self._table.put(request.reward_id, request)
        index.setdefault(request.trigger_height, set()).add(request.reward_id)

        logger.info(
            f"Scheduled reward {request.reward_id} of {request.total_amount} "
            f"{request.funding_asset} to holders of {request.target_asset} "
            f"at height {request.trigger_height}"
        )

    async def get(self, reward_id: str) -> RewardRequest:
        """
        Raises:
            NotFoundError: If no request has this id
        """
        request = await self._table.get(reward_id)
        if request is None:
            raise NotFoundError("Reward request", reward_id)
        return request

    async def remove(self, reward_id: str) -> None:
        """
        Delete a request. Payout entries are not touched.

        Raises:
            NotFoundError: If no request has this id
            StorageError: If the delete failed
        """
        request = await self._table.get(reward_id)
        if request is None:
            raise NotFoundError("Reward request", reward_id)

        index = await self._index()
        await self._table.delete(reward_id)

        ids = index.get(request.trigger_height)
        if ids is not None:
            ids.discard(reward_id)
            if not ids:
                del index[request.trigger_height]

        logger.info(f"Removed reward {reward_id}")

    async def has_any_scheduled_at_height(self, height: int) -> bool:
        """Cheap check, called once per connected block."""
        return bool((await self._index()).get(height))

    async def list_payable_for_asset(self, asset_name: str, height: int) -> List[RewardRequest]:
        """
        Requests due at `height` for `asset_name`.

        An empty asset name matches every asset. Results are ordered by
        reward id.
        """
        ids = sorted((await self._index()).get(height, ()))
        payable = []
        for reward_id in ids:
            request = await self._table.get(reward_id)
            if request is None:
                continue
            if asset_name and request.target_asset != asset_name:
                continue
            payable.append(request)
        return payable

    async def list_all(self) -> List[RewardRequest]:
        """Every stored request, ordered by reward id."""
        return await self._table.values()

"""
Shared fixtures for assetrewards tests.
"""

from typing import Dict, Iterable, List, Optional, Tuple

import pytest

from assetrewards.blockchain.transfer import TransferBuilder
from assetrewards.errors import TransferRejectedError
from assetrewards.rewards import PayoutLedger, RequestStore, SnapshotStore
from assetrewards.storage import MemoryBackend


class FakeTransferBuilder(TransferBuilder):
    """
    Records every transfer instead of touching a chain.

    Addresses in `invalid` fail validation. Calls whose index (0-based,
    counted across both send methods) is in `reject` raise
    TransferRejectedError.
    """

    def __init__(self, invalid: Iterable[str] = (), reject: Iterable[int] = ()):
        self.invalid = set(invalid)
        self.reject = set(reject)
        self.calls: List[Tuple[str, str, Optional[str], Dict[str, int]]] = []

    def is_valid_destination(self, address: str) -> bool:
        return address not in self.invalid

    async def send_native(self, wallet_name, recipients):
        return self._record("native", wallet_name, None, recipients)

    async def send_asset(self, wallet_name, asset_name, recipients):
        return self._record("asset", wallet_name, asset_name, recipients)

    def _record(self, kind, wallet_name, asset_name, recipients):
        index = len(self.calls)
        self.calls.append((kind, wallet_name, asset_name, dict(recipients)))
        if index in self.reject:
            raise TransferRejectedError(f"transfer {index} rejected")
        return f"{index:064x}"

    def recipients_of(self, index: int) -> Dict[str, int]:
        return self.calls[index][3]


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def request_store(backend):
    return RequestStore(backend)


@pytest.fixture
def ledger(backend):
    return PayoutLedger(backend)


@pytest.fixture
def snapshot_store(backend):
    return SnapshotStore(backend)


@pytest.fixture
def make_builder():
    """Factory for FakeTransferBuilder."""
    return FakeTransferBuilder

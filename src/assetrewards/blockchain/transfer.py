"""
assetrewards/blockchain/transfer.py

Interface of the transfer-building collaborator.

The batch executor hands it one batch of recipients at a time. Native
currency and asset transfers are separate calls because funding, balance
and fee checks differ between the two.
"""

from abc import ABC, abstractmethod
from typing import Dict

from ..errors import InvalidDestinationError


class TransferBuilder(ABC):
    """
    Builds, signs and broadcasts multi-recipient transfers.

    Implementations raise TransferRejectedError for any failure of a
    batch and return the transaction id when the network accepted it.
    """

    @abstractmethod
    def is_valid_destination(self, address: str) -> bool:
        """Structural validation of a destination address."""
        pass

    def check_destination(self, address: str) -> None:
        """
        Raises:
            InvalidDestinationError: If the address fails validation
        """
        if not self.is_valid_destination(address):
            raise InvalidDestinationError(address)

    @abstractmethod
    async def send_native(self, wallet_name: str, recipients: Dict[str, int]) -> str:
        """
        Pay native currency to every recipient in one transaction.

        Args:
            wallet_name: Funding wallet
            recipients: {address: amount in base units}

        Returns:
            Transaction id

        Raises:
            TransferRejectedError: If the transfer was not accepted
        """
        pass

    @abstractmethod
    async def send_asset(
        self,
        wallet_name: str,
        asset_name: str,
        recipients: Dict[str, int],
    ) -> str:
        """
        Transfer `asset_name` to every recipient in one transaction.

        Args:
            wallet_name: Funding wallet
            asset_name: Asset to transfer
            recipients: {address: amount in base units}

        Returns:
            Transaction id

        Raises:
            TransferRejectedError: If the transfer was not accepted
        """
        pass

"""
assetrewards/blockchain/

Chain-facing collaborators: address validation and transfer building.

Currently supports Evrmore through ElectrumX + python-evrmorelib. Other
chains plug in by implementing TransferBuilder.
"""

from .transfer import TransferBuilder
from .addresses import EVRMORELIB_AVAILABLE, is_valid_address, address_to_scripthash

__all__ = [
    "TransferBuilder",
    "EVRMORELIB_AVAILABLE",
    "is_valid_address",
    "address_to_scripthash",
]

"""
assetrewards/blockchain/addresses.py

Address decoding with python-evrmorelib.

Structural validation only: base58check, known version byte, and a
payload that maps to a standard P2PKH or P2SH script.
"""

import hashlib
import logging

logger = logging.getLogger("assetrewards.blockchain.addresses")

# Check for python-evrmorelib
try:
    from evrmore import SelectParams
    from evrmore.wallet import P2PKHEvrmoreAddress, P2SHEvrmoreAddress
    EVRMORELIB_AVAILABLE = True
except ImportError:
    EVRMORELIB_AVAILABLE = False
    logger.warning("python-evrmorelib not available - address validation disabled")

from ..errors import InvalidDestinationError


def select_network(network: str = "mainnet") -> None:
    """Select the address/version parameters for `network`."""
    if not EVRMORELIB_AVAILABLE:
        raise ImportError("python-evrmorelib required for address handling")
    SelectParams(network)


def decode_address(address: str):
    """
    Decode a P2PKH or P2SH address.

    Raises:
        InvalidDestinationError: If the address does not decode
    """
    if not EVRMORELIB_AVAILABLE:
        raise ImportError("python-evrmorelib required for address handling")

    for address_cls in (P2PKHEvrmoreAddress, P2SHEvrmoreAddress):
        try:
            return address_cls(address)
        except Exception:
            continue
    raise InvalidDestinationError(address)


def is_valid_address(address: str) -> bool:
    if not isinstance(address, str) or not address:
        return False
    try:
        decode_address(address)
    except InvalidDestinationError:
        return False
    return True


def address_to_script(address: str) -> bytes:
    """scriptPubKey bytes paying to `address`."""
    return bytes(decode_address(address).to_scriptPubKey())


def address_to_scripthash(address: str) -> str:
    """
    ElectrumX scripthash: SHA256(scriptPubKey), byte-reversed, as hex.
    """
    script_hash = hashlib.sha256(address_to_script(address)).digest()
    return script_hash[::-1].hex()

"""
assetrewards/blockchain/tx_builder.py

Transfer builder using ElectrumX + python-evrmorelib.

Builds, signs and broadcasts Evrmore transactions client-side without
requiring a full node. Supports:
- Multi-recipient native currency payments
- Multi-recipient asset transfers (asset change back to the funding wallet)
- Fee funding and change from the wallet's native UTXOs

Funding wallets are registered by name; the executor only ever refers
to a wallet by that name.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

logger = logging.getLogger("assetrewards.blockchain.tx_builder")

# Check for python-evrmorelib
try:
    from evrmore import SelectParams
    from evrmore.core import (
        CMutableTransaction,
        CMutableTxIn,
        CMutableTxOut,
        COutPoint,
        b2x,
        lx,
    )
    from evrmore.core.script import (
        CScript,
        OP_DROP,
        OP_EVR_ASSET,
        SignatureHash,
        SIGHASH_ALL,
    )
    from evrmore.wallet import CEvrmoreSecret, P2PKHEvrmoreAddress
    EVRMORELIB_AVAILABLE = True
except ImportError:
    EVRMORELIB_AVAILABLE = False
    logger.warning("python-evrmorelib not available - transaction building disabled")

from ..config import COIN
from ..electrumx import ElectrumXError
from ..errors import InvalidDestinationError, TransferRejectedError
from .addresses import decode_address, is_valid_address
from .transfer import TransferBuilder

if TYPE_CHECKING:
    from ..electrumx import UTXO, ElectrumXClient


# ============================================================================
# CONSTANTS
# ============================================================================

MIN_RELAY_FEE = 1000  # Minimum relay fee in base units
DUST_THRESHOLD = 546  # Dust threshold in base units
ASSET_TRANSFER_MARKER = b"rvnt"  # Asset script payload prefix for transfers
DEFAULT_FEE_RATE = 0.00001  # Native currency per byte


# ============================================================================
# FUNDING WALLET
# ============================================================================

@dataclass
class FundingWallet:
    """A named single-key wallet that funds reward transfers."""
    name: str
    secret: "CEvrmoreSecret"

    @classmethod
    def from_wif(cls, name: str, wif: str, network: str = "mainnet") -> "FundingWallet":
        if not EVRMORELIB_AVAILABLE:
            raise ImportError("python-evrmorelib required for transaction building")
        SelectParams(network)
        return cls(name=name, secret=CEvrmoreSecret(wif))

    @property
    def address(self) -> str:
        return str(P2PKHEvrmoreAddress.from_pubkey(self.secret.pub))

    def script_pubkey(self) -> "CScript":
        return P2PKHEvrmoreAddress.from_pubkey(self.secret.pub).to_scriptPubKey()


# ============================================================================
# SCRIPTS
# ============================================================================

def asset_transfer_payload(asset_name: str, amount: int) -> bytes:
    """Marker, length-prefixed asset name, 8-byte little-endian amount."""
    name = asset_name.encode("ascii")
    return ASSET_TRANSFER_MARKER + bytes([len(name)]) + name + amount.to_bytes(8, "little")


def asset_transfer_script(address: str, asset_name: str, amount: int) -> "CScript":
    """
    Script for an asset transfer output:

        <standard script for address> OP_EVR_ASSET <payload> OP_DROP
    """
    base = decode_address(address).to_scriptPubKey()
    suffix = CScript([OP_EVR_ASSET, asset_transfer_payload(asset_name, amount), OP_DROP])
    return CScript(bytes(base) + bytes(suffix))


def _select(utxos: List["UTXO"], target: int) -> Tuple[List["UTXO"], int]:
    """Largest-first selection until `target` is covered."""
    selected = []
    total = 0
    for utxo in sorted(utxos, key=lambda u: u.value, reverse=True):
        if total >= target:
            break
        selected.append(utxo)
        total += utxo.value
    return selected, total


# ============================================================================
# TRANSFER BUILDER
# ============================================================================

class EvrmoreTransferBuilder(TransferBuilder):
    """
    Builds Evrmore reward transfers.

    Uses ElectrumX for UTXO queries and broadcasting, and
    python-evrmorelib for transaction construction and signing.

    Example:
        from assetrewards.electrumx import ElectrumXClient
        from assetrewards.blockchain.tx_builder import EvrmoreTransferBuilder, FundingWallet

        client = ElectrumXClient([("electrum1.evrmore.org", 50002)])
        builder = EvrmoreTransferBuilder(client)
        builder.register_wallet(FundingWallet.from_wif("rewards", wif))

        txid = await builder.send_asset("rewards", "TOKEN", {"Eaddr1": 10_000})
    """

    def __init__(
        self,
        electrumx_client: "ElectrumXClient",
        fee_rate: float = DEFAULT_FEE_RATE,
    ):
        """
        Initialize transfer builder.

        Args:
            electrumx_client: ElectrumX client (connected on first use)
            fee_rate: Fee rate in native currency per byte
        """
        if not EVRMORELIB_AVAILABLE:
            raise ImportError("python-evrmorelib required for transaction building")

        self.client = electrumx_client
        self.fee_rate = fee_rate
        self._wallets: Dict[str, FundingWallet] = {}
        self._default_wallet: Optional[FundingWallet] = None

    def register_wallet(self, wallet: FundingWallet, default: bool = False) -> None:
        """
        Register a funding wallet under its name.

        A default wallet funds requests naming a wallet that is not registered.
        """
        self._wallets[wallet.name] = wallet
        if default:
            self._default_wallet = wallet

    def _wallet(self, wallet_name: str) -> FundingWallet:
        wallet = self._wallets.get(wallet_name) or self._default_wallet
        if wallet is None:
            raise TransferRejectedError(f"Unknown funding wallet: {wallet_name!r}")
        return wallet

    def is_valid_destination(self, address: str) -> bool:
        return is_valid_address(address)

    def estimate_fee(self, num_inputs: int, num_outputs: int) -> int:
        """
        Estimate transaction fee.

        Input: ~148 bytes (P2PKH). Output: ~34 bytes, asset outputs are
        larger so outputs are sized at 60.
        """
        estimated_size = 10 + (num_inputs * 148) + (num_outputs * 60)
        return max(MIN_RELAY_FEE, int(estimated_size * self.fee_rate * COIN))

    # ========================================================================
    # BUILDING
    # ========================================================================

    def build_native_tx(
        self,
        wallet: FundingWallet,
        recipients: Dict[str, int],
        utxos: List["UTXO"],
    ) -> "CMutableTransaction":
        """
        Build and sign a native currency payment.

        Raises:
            ValueError: On insufficient funds
            InvalidDestinationError: If a recipient does not decode
        """
        total_out = sum(recipients.values())
        num_outputs = len(recipients) + 1  # recipients + change

        selected = []
        selected_amount = 0
        fee = self.estimate_fee(0, num_outputs)
        for utxo in sorted(utxos, key=lambda u: u.value, reverse=True):
            if selected_amount >= total_out + fee:
                break
            selected.append(utxo)
            selected_amount += utxo.value
            fee = self.estimate_fee(len(selected), num_outputs)

        if selected_amount < total_out + fee:
            raise ValueError(
                f"Insufficient funds: have {selected_amount}, need {total_out + fee}"
            )

        tx = CMutableTransaction()
        for utxo in selected:
            tx.vin.append(CMutableTxIn(COutPoint(lx(utxo.txid), utxo.vout)))

        for address, amount in recipients.items():
            tx.vout.append(CMutableTxOut(amount, decode_address(address).to_scriptPubKey()))

        change = selected_amount - total_out - fee
        if change > DUST_THRESHOLD:
            tx.vout.append(CMutableTxOut(change, wallet.script_pubkey()))

        self._sign(tx, wallet, [wallet.script_pubkey()] * len(selected))
        return tx

    def build_asset_tx(
        self,
        wallet: FundingWallet,
        asset_name: str,
        recipients: Dict[str, int],
        asset_utxos: List["UTXO"],
        fee_utxos: List["UTXO"],
    ) -> "CMutableTransaction":
        """
        Build and sign an asset transfer.

        Asset inputs cover the recipients; native inputs cover the fee.

        Raises:
            ValueError: On insufficient asset balance or fee funds
            InvalidDestinationError: If a recipient does not decode
        """
        total_out = sum(recipients.values())

        selected_assets, asset_amount = _select(asset_utxos, total_out)
        if asset_amount < total_out:
            raise ValueError(
                f"Insufficient {asset_name}: have {asset_amount}, need {total_out}"
            )
        asset_change = asset_amount - total_out

        num_outputs = len(recipients) + 2  # recipients + asset change + native change
        selected_fee = []
        fee_amount = 0
        fee = self.estimate_fee(len(selected_assets), num_outputs)
        for utxo in sorted(fee_utxos, key=lambda u: u.value, reverse=True):
            if fee_amount >= fee:
                break
            selected_fee.append(utxo)
            fee_amount += utxo.value
            fee = self.estimate_fee(len(selected_assets) + len(selected_fee), num_outputs)

        if fee_amount < fee:
            raise ValueError(f"Insufficient funds for fees: have {fee_amount}, need {fee}")

        tx = CMutableTransaction()
        prev_scripts = []

        for utxo in selected_assets:
            tx.vin.append(CMutableTxIn(COutPoint(lx(utxo.txid), utxo.vout)))
            prev_scripts.append(asset_transfer_script(wallet.address, asset_name, utxo.value))

        for utxo in selected_fee:
            tx.vin.append(CMutableTxIn(COutPoint(lx(utxo.txid), utxo.vout)))
            prev_scripts.append(wallet.script_pubkey())

        for address, amount in recipients.items():
            tx.vout.append(CMutableTxOut(0, asset_transfer_script(address, asset_name, amount)))

        if asset_change > 0:
            tx.vout.append(
                CMutableTxOut(0, asset_transfer_script(wallet.address, asset_name, asset_change))
            )

        change = fee_amount - fee
        if change > DUST_THRESHOLD:
            tx.vout.append(CMutableTxOut(change, wallet.script_pubkey()))

        self._sign(tx, wallet, prev_scripts)
        return tx

    def _sign(
        self,
        tx: "CMutableTransaction",
        wallet: FundingWallet,
        prev_scripts: List["CScript"],
    ) -> None:
        for index, prev_script in enumerate(prev_scripts):
            sighash = SignatureHash(prev_script, tx, index, SIGHASH_ALL)
            signature = wallet.secret.sign(sighash) + bytes([SIGHASH_ALL])
            tx.vin[index].scriptSig = CScript([signature, wallet.secret.pub])

    # ========================================================================
    # SENDING
    # ========================================================================

    def _send_native_sync(self, wallet: FundingWallet, recipients: Dict[str, int]) -> str:
        utxos = self.client.get_unspent(wallet.address)
        tx = self.build_native_tx(wallet, recipients, utxos)
        return self.client.broadcast(b2x(tx.serialize()))

    def _send_asset_sync(
        self,
        wallet: FundingWallet,
        asset_name: str,
        recipients: Dict[str, int],
    ) -> str:
        asset_utxos = self.client.get_asset_unspent(wallet.address, asset_name)
        fee_utxos = self.client.get_unspent(wallet.address)
        tx = self.build_asset_tx(wallet, asset_name, recipients, asset_utxos, fee_utxos)
        return self.client.broadcast(b2x(tx.serialize()))

    async def send_native(self, wallet_name: str, recipients: Dict[str, int]) -> str:
        wallet = self._wallet(wallet_name)
        logger.info(f"Sending native payment to {len(recipients)} recipients from {wallet.name}")
        try:
            return await asyncio.to_thread(self._send_native_sync, wallet, recipients)
        except (ElectrumXError, InvalidDestinationError, ValueError) as e:
            logger.warning(f"Native payment rejected: {e}")
            raise TransferRejectedError(str(e)) from e

    async def send_asset(
        self,
        wallet_name: str,
        asset_name: str,
        recipients: Dict[str, int],
    ) -> str:
        wallet = self._wallet(wallet_name)
        logger.info(f"Sending {asset_name} to {len(recipients)} recipients from {wallet.name}")
        try:
            return await asyncio.to_thread(
                self._send_asset_sync, wallet, asset_name, recipients
            )
        except (ElectrumXError, InvalidDestinationError, ValueError) as e:
            logger.warning(f"{asset_name} transfer rejected: {e}")
            raise TransferRejectedError(str(e)) from e

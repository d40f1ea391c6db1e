"""
assetrewards/electrumx.py

ElectrumX JSON-RPC client used by the Evrmore transfer builder.

Provides:
- Native and asset UTXO queries for the funding wallet
- Asset metadata (decimal places of a funding asset)
- Transaction broadcasting
- Current chain height (for scheduling)

Requests are newline-delimited JSON over TCP or SSL, one request in
flight at a time.
"""

import json
import logging
import socket
import ssl
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from .blockchain.addresses import address_to_scripthash
from .config import COIN

logger = logging.getLogger("assetrewards.electrumx")


CLIENT_NAME = "assetrewards"
PROTOCOL_VERSION = "1.10"
DEFAULT_TIMEOUT = 30.0
BUFFER_SIZE = 4096


class ElectrumXError(Exception):
    """Exception raised for ElectrumX errors."""
    pass


@dataclass
class UTXO:
    """Unspent output. `value` is base units of the native currency or of `asset`."""
    txid: str
    vout: int
    value: int
    height: int
    asset: Optional[str] = None

    @property
    def is_asset(self) -> bool:
        return self.asset is not None

    def to_dict(self) -> dict:
        return {
            "txid": self.txid,
            "vout": self.vout,
            "value": self.value,
            "height": self.height,
            "asset": self.asset,
        }


def _parse_utxo(item: Dict[str, Any]) -> UTXO:
    asset = item.get("asset")
    value = item.get("value", 0)

    # Some servers nest asset info as {"name": ..., "amount": <whole units>}
    if isinstance(asset, dict):
        value = int(Decimal(str(asset.get("amount", 0))) * COIN)
        asset = asset.get("name") or None

    return UTXO(
        txid=item["tx_hash"],
        vout=item["tx_pos"],
        value=int(value),
        height=item.get("height", 0),
        asset=asset or None,
    )


class ElectrumXClient:
    """
    Blocking ElectrumX client.

    Example:
        with ElectrumXClient([("electrum.example.org", 50002)]) as client:
            height = client.get_block_height()
            utxos = client.get_unspent(address)
            txid = client.broadcast(signed_hex)
    """

    def __init__(
        self,
        servers: List[Tuple[str, int]],
        use_ssl: bool = True,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        if not servers:
            raise ValueError("At least one ElectrumX server is required")
        self.servers = servers
        self.use_ssl = use_ssl
        self.timeout = timeout

        self._sock: Optional[socket.socket] = None
        self._buffer = b""
        self._request_id = 0
        self.server_version: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def _open_socket(self, host: str, port: int) -> socket.socket:
        sock = socket.create_connection((host, port), timeout=self.timeout)
        if not self.use_ssl:
            return sock
        # ElectrumX servers commonly run self-signed certificates
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        return context.wrap_socket(sock, server_hostname=host)

    def connect(self) -> bool:
        """
        Connect to the first server that answers the version handshake.

        Returns:
            True if connected
        """
        for host, port in self.servers:
            logger.info(f"Connecting to ElectrumX server {host}:{port}...")
            try:
                self._sock = self._open_socket(host, port)
                result = self._call("server.version", CLIENT_NAME, PROTOCOL_VERSION)
                self.server_version = result[0] if isinstance(result, list) and result else None
                logger.info(f"Connected to {host}:{port} (version: {self.server_version})")
                return True
            except (OSError, ElectrumXError) as e:
                logger.warning(f"Failed to connect to {host}:{port}: {e}")
                self.close()

        logger.error("Failed to connect to any ElectrumX server")
        return False

    def close(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
        self._sock = None
        self._buffer = b""
        self.server_version = None

    def _ensure_connected(self) -> None:
        if not self.connected and not self.connect():
            raise ElectrumXError("Not connected to any ElectrumX server")

    def _read_line(self) -> bytes:
        while b"\n" not in self._buffer:
            chunk = self._sock.recv(BUFFER_SIZE)
            if not chunk:
                raise ConnectionError("Connection closed by server")
            self._buffer += chunk
        line, self._buffer = self._buffer.split(b"\n", 1)
        return line

    def _call(self, method: str, *params) -> Any:
        """
        Make a JSON-RPC call.

        Raises:
            ElectrumXError: On transport, protocol or server error
        """
        if self._sock is None:
            raise ElectrumXError("Not connected to server")

        self._request_id += 1
        request = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": list(params)}

        try:
            self._sock.sendall(json.dumps(request).encode() + b"\n")
            response = json.loads(self._read_line())
        except (OSError, ValueError) as e:
            self.close()
            raise ElectrumXError(f"{method} failed: {e}") from e

        error = response.get("error")
        if error:
            msg = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise ElectrumXError(f"Server error: {msg}")

        return response.get("result")

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    def get_unspent(self, address: str) -> List[UTXO]:
        """Native-currency UTXOs of an address."""
        self._ensure_connected()
        result = self._call("blockchain.scripthash.listunspent", address_to_scripthash(address))
        return [u for u in map(_parse_utxo, result or []) if not u.is_asset]

    def get_asset_unspent(self, address: str, asset_name: str) -> List[UTXO]:
        """UTXOs of an address holding `asset_name`."""
        self._ensure_connected()
        result = self._call(
            "blockchain.scripthash.listunspent", address_to_scripthash(address), asset_name
        )
        return [u for u in map(_parse_utxo, result or []) if u.asset == asset_name]

    def get_asset_units(self, asset_name: str) -> Optional[int]:
        """
        Decimal places (divisions) of an asset.

        Returns:
            0..8, or None if the server does not know the asset
        """
        self._ensure_connected()
        meta = self._call("blockchain.asset.get_meta", asset_name)
        if not meta or "divisions" not in meta:
            return None
        return int(meta["divisions"])

    def broadcast(self, tx_hex: str) -> str:
        """
        Broadcast a signed transaction.

        Returns:
            Transaction id

        Raises:
            ElectrumXError: If the server rejected the transaction
        """
        self._ensure_connected()
        result = self._call("blockchain.transaction.broadcast", tx_hex)
        if isinstance(result, str) and len(result) == 64:
            logger.info(f"Transaction broadcast successful: {result}")
            return result
        raise ElectrumXError(f"Broadcast failed: {result}")

    def get_block_height(self) -> int:
        """Current chain tip height."""
        self._ensure_connected()
        result = self._call("blockchain.headers.subscribe")
        return int(result.get("height", 0))

    def __enter__(self) -> "ElectrumXClient":
        self._ensure_connected()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def parse_server(value: str, default_port: int = 50002) -> Tuple[str, int]:
    """Parse 'host[:port]'."""
    host, sep, port = value.rpartition(":")
    if not sep:
        return value, default_port
    return host, int(port)

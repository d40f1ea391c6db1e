"""
Tests for assetrewards/electrumx.py

Tests the ElectrumX client against a mocked socket.
"""

import json

import pytest
from unittest.mock import patch

from assetrewards.electrumx import (
    CLIENT_NAME,
    PROTOCOL_VERSION,
    UTXO,
    ElectrumXClient,
    ElectrumXError,
    parse_server,
)


# ============================================================================
# TEST DATA
# ============================================================================

SCRIPTHASH = "ab" * 32

SAMPLE_UTXO_RESPONSE = [
    {"tx_hash": "abc123", "tx_pos": 0, "value": 1000000, "height": 500000},
    {"tx_hash": "def456", "tx_pos": 1, "value": 2000000, "height": 500001},
    {"tx_hash": "fff000", "tx_pos": 2, "value": 500, "height": 500001, "asset": "GOLD"},
]

SAMPLE_ASSET_UTXO_RESPONSE = [
    {
        "tx_hash": "ghi789",
        "tx_pos": 0,
        "value": 0,
        "height": 500002,
        "asset": {"name": "GOLD", "amount": 100.5},
    },
    {"tx_hash": "jkl012", "tx_pos": 1, "value": 2500000000, "height": 500003, "asset": "GOLD"},
]


class FakeSocket:
    """Answers each JSON-RPC request with the next queued response."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.sent = []
        self._pending = b""
        self.closed = False

    def sendall(self, data):
        request = json.loads(data.decode())
        self.sent.append(request)
        response = self.responses.pop(0)
        response.setdefault("id", request["id"])
        # Split the reply to exercise buffering across recv calls
        raw = json.dumps(response).encode() + b"\n"
        self._pending += raw

    def recv(self, size):
        chunk, self._pending = self._pending[:7], self._pending[7:]
        return chunk

    def close(self):
        self.closed = True


def connected_client(responses):
    client = ElectrumXClient([("localhost", 50001)], use_ssl=False)
    client._sock = FakeSocket(responses)
    return client


# ============================================================================
# TESTS
# ============================================================================

class TestUTXO:

    def test_native(self):
        utxo = UTXO(txid="abc", vout=0, value=100, height=1)
        assert not utxo.is_asset
        assert utxo.to_dict()["asset"] is None

    def test_asset(self):
        assert UTXO(txid="abc", vout=0, value=100, height=1, asset="GOLD").is_asset


class TestCall:

    def test_request_format(self):
        client = connected_client([{"result": 42}])
        assert client._call("some.method", "a", 1) == 42

        sent = client._sock.sent[0]
        assert sent["method"] == "some.method"
        assert sent["params"] == ["a", 1]
        assert sent["jsonrpc"] == "2.0"

    def test_server_error(self):
        client = connected_client([{"error": {"code": 1, "message": "bad things"}}])
        with pytest.raises(ElectrumXError, match="bad things"):
            client._call("some.method")

    def test_not_connected(self):
        client = ElectrumXClient([("localhost", 50001)], use_ssl=False)
        with pytest.raises(ElectrumXError):
            client._call("some.method")

    def test_connection_closed(self):
        client = connected_client([])
        client._sock.sendall = lambda data: None
        with pytest.raises(ElectrumXError):
            client._call("some.method")
        assert not client.connected


class TestConnect:

    def test_first_reachable_server(self):
        sock = FakeSocket([{"result": ["ElectrumX 1.16", PROTOCOL_VERSION]}])
        client = ElectrumXClient([("down", 1), ("up", 2)], use_ssl=False)

        with patch("assetrewards.electrumx.socket.create_connection") as create:
            create.side_effect = [OSError("refused"), sock]
            assert client.connect() is True

        assert client.server_version == "ElectrumX 1.16"
        assert sock.sent[0]["params"] == [CLIENT_NAME, PROTOCOL_VERSION]

    def test_no_server_reachable(self):
        client = ElectrumXClient([("down", 1)], use_ssl=False)
        with patch("assetrewards.electrumx.socket.create_connection", side_effect=OSError("refused")):
            assert client.connect() is False
            with pytest.raises(ElectrumXError):
                client.get_block_height()

    def test_requires_servers(self):
        with pytest.raises(ValueError):
            ElectrumXClient([])


class TestQueries:

    @pytest.fixture(autouse=True)
    def scripthash(self):
        with patch("assetrewards.electrumx.address_to_scripthash", return_value=SCRIPTHASH):
            yield

    def test_get_unspent_excludes_assets(self):
        client = connected_client([{"result": SAMPLE_UTXO_RESPONSE}])
        utxos = client.get_unspent("Eaddr")

        assert [u.txid for u in utxos] == ["abc123", "def456"]
        assert utxos[1].value == 2000000
        assert client._sock.sent[0]["params"] == [SCRIPTHASH]

    def test_get_asset_unspent(self):
        client = connected_client([{"result": SAMPLE_ASSET_UTXO_RESPONSE}])
        utxos = client.get_asset_unspent("Eaddr", "GOLD")

        assert client._sock.sent[0]["params"] == [SCRIPTHASH, "GOLD"]
        assert [u.asset for u in utxos] == ["GOLD", "GOLD"]
        assert utxos[0].value == 10_050_000_000
        assert utxos[1].value == 2_500_000_000

    def test_get_asset_units(self):
        meta = {"sats_in_circulation": 100000000000, "divisions": 0, "reissuable": False}
        client = connected_client([{"result": meta}])

        assert client.get_asset_units("WHOLEUNITS") == 0
        assert client._sock.sent[0]["method"] == "blockchain.asset.get_meta"
        assert client._sock.sent[0]["params"] == ["WHOLEUNITS"]

    def test_get_asset_units_unknown(self):
        client = connected_client([{"result": None}])
        assert client.get_asset_units("NOSUCH") is None

    def test_broadcast(self):
        txid = "cd" * 32
        client = connected_client([{"result": txid}])
        assert client.broadcast("0100") == txid
        assert client._sock.sent[0]["params"] == ["0100"]

    def test_broadcast_rejected(self):
        client = connected_client([{"error": {"message": "bad-txns-inputs-missingorspent"}}])
        with pytest.raises(ElectrumXError):
            client.broadcast("0100")

    def test_get_block_height(self):
        client = connected_client([{"result": {"height": 1234567, "hex": "00"}}])
        assert client.get_block_height() == 1234567
        assert client._sock.sent[0]["method"] == "blockchain.headers.subscribe"

    def test_context_manager_closes(self):
        client = connected_client([{"result": {"height": 1}}])
        sock = client._sock
        with client:
            client.get_block_height()
        assert sock.closed
        assert not client.connected


class TestParseServer:

    def test_host_and_port(self):
        assert parse_server("electrum.example.org:50001") == ("electrum.example.org", 50001)

    def test_default_port(self):
        assert parse_server("electrum.example.org") == ("electrum.example.org", 50002)

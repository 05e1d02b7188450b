import json
import threading
from pathlib import Path

import pytest
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted
from web3.providers.rpc import HTTPProvider

from mint_api.adapter.chain.contract import DEFAULT_ERC721_ABI, ContractMintClient, load_abi
from mint_api.errors import MinterNotConfigured, NetworkFailure, RemoteOperationFailure

# Well-known throwaway key from the web3.py docs.
PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
CONTRACT = "0x" + "cd" * 20
RECIPIENT = "0x" + "ab" * 20


def _client() -> ContractMintClient:
    return ContractMintClient(
        w3=Web3(HTTPProvider("http://127.0.0.1:1")),
        private_key=PRIVATE_KEY,
        contract_address=CONTRACT,
        abi=DEFAULT_ERC721_ABI,
        chain_id=31337,
        gas_limit=200000,
    )


def test_missing_key_is_not_configured() -> None:
    with pytest.raises(MinterNotConfigured):
        ContractMintClient(private_key="", contract_address=CONTRACT)


def test_signer_address_derived_from_key() -> None:
    client = _client()

    assert Web3.is_checksum_address(client.signer_address)
    assert client.contract.address == Web3.to_checksum_address(CONTRACT)


def test_contract_revert_maps_to_remote_failure(monkeypatch) -> None:
    client = _client()

    def _revert(to_address: str, token_uri: str) -> dict:
        raise ContractLogicError("execution reverted: not minter")

    monkeypatch.setattr(client, "_send", _revert)

    with pytest.raises(RemoteOperationFailure, match="not minter"):
        client.mint_to(RECIPIENT, "ipfs://QmMeta")


def test_rpc_value_error_maps_to_remote_failure(monkeypatch) -> None:
    client = _client()

    def _broke(to_address: str, token_uri: str) -> dict:
        raise ValueError({"code": -32000, "message": "insufficient funds for gas * price + value"})

    monkeypatch.setattr(client, "_send", _broke)

    with pytest.raises(RemoteOperationFailure, match="insufficient funds"):
        client.mint_to(RECIPIENT, "ipfs://QmMeta")


def test_unreachable_node_maps_to_network_failure(monkeypatch) -> None:
    client = _client()

    def _offline(to_address: str, token_uri: str) -> dict:
        raise ConnectionError("connection refused")

    monkeypatch.setattr(client, "_send", _offline)

    with pytest.raises(NetworkFailure):
        client.mint_to(RECIPIENT, "ipfs://QmMeta")


def test_mint_to_checksums_recipient(monkeypatch) -> None:
    client = _client()
    seen: list[str] = []

    def _record(to_address: str, token_uri: str) -> dict:
        seen.append(to_address)
        return {"tx_hash": "0x01", "block_number": 1, "status": 1, "token_id": None}

    monkeypatch.setattr(client, "_send", _record)

    client.mint_to(RECIPIENT, "ipfs://QmMeta")

    assert seen == [Web3.to_checksum_address(RECIPIENT)]


def test_load_abi_accepts_artifact(tmp_path: Path) -> None:
    artifact = tmp_path / "NFT.json"
    artifact.write_text(json.dumps({"contractName": "NFT", "abi": DEFAULT_ERC721_ABI}), encoding="utf-8")

    assert load_abi(str(artifact)) == DEFAULT_ERC721_ABI
    assert load_abi(None) is DEFAULT_ERC721_ABI


class _Signed:
    def __init__(self, transaction: dict) -> None:
        self.raw_transaction = b"raw-%d" % transaction["nonce"]


class _Account:
    def __init__(self, eth: "_StubEth") -> None:
        self._eth = eth

    def sign_transaction(self, transaction: dict, private_key: str) -> _Signed:
        self._eth.signed.append(dict(transaction))
        return _Signed(transaction)


class _StubEth:
    def __init__(self, status: int = 1, pending_count: int = 0) -> None:
        self.status = status
        self.pending_count = pending_count
        self.gas_price = 30
        self.signed: list[dict] = []
        self.estimated: list[dict] = []
        self.count_blocks: list[str] = []
        self.account = _Account(self)
        self.receipt_hook = None
        self.receipt_error: Exception | None = None

    def get_transaction_count(self, address: str, block_identifier: str = "latest") -> int:
        self.count_blocks.append(block_identifier)
        return self.pending_count

    def estimate_gas(self, transaction: dict) -> int:
        self.estimated.append(dict(transaction))
        return 123456

    def send_raw_transaction(self, raw: bytes) -> bytes:
        return bytes(32 - len(raw)) + raw

    def wait_for_transaction_receipt(self, tx_hash: bytes, timeout: float) -> dict:
        if self.receipt_hook is not None:
            self.receipt_hook()
        if self.receipt_error is not None:
            raise self.receipt_error
        return {"transactionHash": tx_hash, "blockNumber": 42, "status": self.status, "logs": []}


class _StubW3:
    def __init__(self, eth: _StubEth) -> None:
        self.eth = eth


class _MintCall:
    def __init__(self, to_address: str, token_uri: str) -> None:
        self.args = (to_address, token_uri)

    def build_transaction(self, params: dict) -> dict:
        return {**params, "to": CONTRACT, "data": "0xmint"}


class _TransferEvent:
    def __init__(self, token_ids: list[int]) -> None:
        self._token_ids = token_ids

    def process_receipt(self, receipt: dict, errors=None) -> list[dict]:
        return [{"args": {"tokenId": token_id}} for token_id in self._token_ids]


class _Events:
    def __init__(self, token_ids: list[int]) -> None:
        self._token_ids = token_ids

    def Transfer(self) -> _TransferEvent:  # noqa: N802
        return _TransferEvent(self._token_ids)


class _StubContract:
    def __init__(self, token_ids: list[int]) -> None:
        self.functions = {"mintTo": _MintCall}
        self.events = _Events(token_ids)


def _stubbed_client(eth: _StubEth, gas_limit: int = 200000, token_ids: list[int] | None = None) -> ContractMintClient:
    client = _client()
    client.w3 = _StubW3(eth)
    client.contract = _StubContract(token_ids if token_ids is not None else [])
    client._gas_limit = gas_limit
    return client


def test_mint_sends_signed_transaction_and_reads_token_id() -> None:
    eth = _StubEth(pending_count=5)
    client = _stubbed_client(eth, token_ids=[17])

    result = client.mint_to(RECIPIENT, "ipfs://QmMeta")

    assert result["token_id"] == 17
    assert result["block_number"] == 42
    assert result["tx_hash"].startswith("0x")
    signed = eth.signed[0]
    assert signed["nonce"] == 5
    assert signed["gas"] == 200000
    assert signed["gasPrice"] == 30
    assert signed["chainId"] == 31337
    assert signed["from"] == client.signer_address
    assert eth.count_blocks == ["pending"]
    assert eth.estimated == []


def test_mint_estimates_gas_without_fixed_limit() -> None:
    eth = _StubEth()
    client = _stubbed_client(eth, gas_limit=0)

    client.mint_to(RECIPIENT, "ipfs://QmMeta")

    assert len(eth.estimated) == 1
    assert "gas" not in eth.estimated[0]
    assert eth.signed[0]["gas"] == 123456


def test_mint_without_transfer_event_has_no_token_id() -> None:
    client = _stubbed_client(_StubEth(), token_ids=[])

    assert client.mint_to(RECIPIENT, "ipfs://QmMeta")["token_id"] is None


def test_reverted_receipt_raises_remote_failure() -> None:
    client = _stubbed_client(_StubEth(status=0))

    with pytest.raises(RemoteOperationFailure, match="reverted: 0x"):
        client.mint_to(RECIPIENT, "ipfs://QmMeta")


def test_receipt_timeout_reports_tx_hash() -> None:
    eth = _StubEth()
    eth.receipt_error = TimeExhausted("timed out")
    client = _stubbed_client(eth)

    with pytest.raises(RemoteOperationFailure) as exc_info:
        client.mint_to(RECIPIENT, "ipfs://QmMeta")

    expected_hash = Web3.to_hex(bytes(32 - len(b"raw-0")) + b"raw-0")
    assert expected_hash in exc_info.value.detail
    assert "may still land" in exc_info.value.detail


def test_concurrent_mints_get_distinct_nonces() -> None:
    eth = _StubEth(pending_count=0)
    barrier = threading.Barrier(2, timeout=5)
    eth.receipt_hook = barrier.wait
    client = _stubbed_client(eth)
    errors: list[Exception] = []

    def _mint() -> None:
        try:
            client.mint_to(RECIPIENT, "ipfs://QmMeta")
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=_mint) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert errors == []
    assert sorted(tx["nonce"] for tx in eth.signed) == [0, 1]


def test_failed_send_does_not_advance_nonce() -> None:
    eth = _StubEth(pending_count=3)
    client = _stubbed_client(eth)

    def _reject(raw: bytes) -> bytes:
        raise ValueError("replacement transaction underpriced")

    eth.send_raw_transaction = _reject
    with pytest.raises(RemoteOperationFailure, match="underpriced"):
        client.mint_to(RECIPIENT, "ipfs://QmMeta")

    del eth.send_raw_transaction
    client.mint_to(RECIPIENT, "ipfs://QmMeta")

    assert [tx["nonce"] for tx in eth.signed] == [3, 3]

import json
import logging
import threading
from pathlib import Path

from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception
from web3.logs import DISCARD
from web3.providers.rpc import HTTPProvider

from mint_api.config import settings
from mint_api.errors import MinterNotConfigured, NetworkFailure, RemoteOperationFailure

logger = logging.getLogger("mint_api.chain")

# mintTo(address,string) as exposed by thirdweb/OpenZeppelin style ERC-721 drops.
DEFAULT_ERC721_ABI = [
    {
        "type": "function",
        "name": "mintTo",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "_to", "type": "address"},
            {"name": "_uri", "type": "string"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "event",
        "name": "Transfer",
        "anonymous": False,
        "inputs": [
            {"name": "from", "type": "address", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "tokenId", "type": "uint256", "indexed": True},
        ],
    },
]


def load_abi(path: str | None) -> list[dict]:
    if not path:
        return DEFAULT_ERC721_ABI
    with open(Path(path), "r", encoding="utf-8") as f:
        abi = json.load(f)
    # Hardhat/Foundry artifacts wrap the ABI.
    if isinstance(abi, dict):
        abi = abi.get("abi", [])
    return abi


class ContractMintClient:
    """Signs and sends mint transactions with the operator's private key."""

    def __init__(
        self,
        w3: Web3 | None = None,
        private_key: str | None = None,
        contract_address: str | None = None,
        abi: list[dict] | None = None,
        mint_function: str | None = None,
        chain_id: int | None = None,
        gas_limit: int | None = None,
    ) -> None:
        private_key = private_key if private_key is not None else settings.minter_private_key
        contract_address = contract_address if contract_address is not None else settings.nft_contract_address
        if not private_key or not contract_address:
            raise MinterNotConfigured("minter private key or contract address is not configured")

        self.w3 = w3 or Web3(HTTPProvider(settings.chain_rpc_url))
        self._private_key = private_key
        self.account = self.w3.eth.account.from_key(private_key)
        self.contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=abi if abi is not None else load_abi(settings.nft_contract_abi_path),
        )
        self._mint_function = mint_function or settings.nft_mint_function
        self._chain_id = chain_id if chain_id is not None else settings.chain_id
        self._gas_limit = gas_limit if gas_limit is not None else settings.mint_gas_limit
        self._nonce_lock = threading.Lock()
        self._next_nonce: int | None = None

    @property
    def signer_address(self) -> str:
        return self.account.address

    def mint_to(self, to_address: str, token_uri: str) -> dict:
        try:
            return self._send(Web3.to_checksum_address(to_address), token_uri)
        except (MinterNotConfigured, RemoteOperationFailure):
            raise
        except OSError as exc:
            raise NetworkFailure(f"chain node unreachable: {exc}") from exc
        except (Web3Exception, ValueError) as exc:
            raise RemoteOperationFailure(f"mint transaction failed: {exc}") from exc

    def _send(self, to_address: str, token_uri: str) -> dict:
        with self._nonce_lock:
            tx_hash = self._sign_and_send(to_address, token_uri)

        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=settings.mint_receipt_timeout_s
            )
        except TimeExhausted as exc:
            raise RemoteOperationFailure(
                f"mint transaction {Web3.to_hex(tx_hash)} not mined within "
                f"{settings.mint_receipt_timeout_s}s; it may still land"
            ) from exc
        if receipt["status"] != 1:
            raise RemoteOperationFailure(f"mint transaction reverted: {Web3.to_hex(tx_hash)}")

        return {
            "tx_hash": Web3.to_hex(receipt["transactionHash"]),
            "block_number": receipt["blockNumber"],
            "status": receipt["status"],
            "token_id": self._token_id(receipt),
        }

    def _sign_and_send(self, to_address: str, token_uri: str) -> bytes:
        # Caller holds _nonce_lock. The pending count can lag our own sends.
        pending = self.w3.eth.get_transaction_count(self.account.address, "pending")
        nonce = max(pending, self._next_nonce or 0)

        mint_call = self.contract.functions[self._mint_function](to_address, token_uri)
        tx_params = {
            "from": self.account.address,
            "nonce": nonce,
            "gasPrice": self.w3.eth.gas_price,
            "chainId": self._chain_id,
        }
        if self._gas_limit:
            tx_params["gas"] = self._gas_limit
        transaction = mint_call.build_transaction(tx_params)
        if not self._gas_limit:
            transaction["gas"] = self.w3.eth.estimate_gas(transaction)

        signed_txn = self.w3.eth.account.sign_transaction(transaction, private_key=self._private_key)
        try:
            tx_hash = self.w3.eth.send_raw_transaction(signed_txn.raw_transaction)
        except Exception:
            self._next_nonce = None
            raise
        self._next_nonce = nonce + 1
        logger.info(
            "mint_tx_sent",
            extra={"tx_hash": Web3.to_hex(tx_hash), "to_address": to_address, "nonce": nonce},
        )
        return tx_hash

    def _token_id(self, receipt) -> int | None:
        try:
            events = self.contract.events.Transfer().process_receipt(receipt, errors=DISCARD)
        except (Web3Exception, AttributeError):
            return None
        for event in events:
            return int(event["args"]["tokenId"])
        return None

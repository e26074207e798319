"""On-chain recording of published audio: gasless relay or self-funded wallet."""

import json
import logging
from dataclasses import dataclass, field
from typing import Optional, Union

import httpx
from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector

from src.config import get_settings
from src.services.errors import ChainSubmissionError
from src.services.wallet import WalletConnection

logger = logging.getLogger(__name__)

SAVE_RECORDING_SIGNATURE = "saveRecording(string,string,string,bool,bool,string,uint256)"
SAVE_RECORDING_TYPES = ["string", "string", "string", "bool", "bool", "string", "uint256"]


@dataclass
class ChainRecord:
    """Payload of one ``saveRecording`` call."""

    content_hash: str
    title: str
    description: str
    tags: list[str] = field(default_factory=list)
    is_public: bool = True
    is_agent_content: bool = False
    category: str = ""
    price: int = 0

    @property
    def description_payload(self) -> str:
        return json.dumps({"description": self.description, "tags": self.tags})


@dataclass
class ChainReceipt:
    reference: str


@dataclass(frozen=True)
class RelayCommit:
    """Gasless submission through a pre-authorized delegated sub-account."""

    delegated_account: str
    owner_address: str


@dataclass(frozen=True)
class DirectWalletCommit:
    """Self-funded transaction signed by the connected wallet."""

    account: str


CommitStrategy = Union[RelayCommit, DirectWalletCommit]


def select_commit_strategy(wallet: WalletConnection) -> CommitStrategy:
    """Prefer the gasless relay whenever a delegated session exists."""
    if wallet.delegated_account:
        return RelayCommit(delegated_account=wallet.delegated_account, owner_address=wallet.address)
    return DirectWalletCommit(account=wallet.address)


def strategy_name(strategy: CommitStrategy) -> str:
    return "relay" if isinstance(strategy, RelayCommit) else "wallet"


def encode_save_recording(record: ChainRecord) -> str:
    """ABI-encode the ``saveRecording`` call as 0x-prefixed calldata."""
    selector = function_signature_to_4byte_selector(SAVE_RECORDING_SIGNATURE)
    args = encode(
        SAVE_RECORDING_TYPES,
        [
            record.content_hash,
            record.title,
            record.description_payload,
            record.is_public,
            record.is_agent_content,
            record.category,
            record.price,
        ],
    )
    return "0x" + (selector + args).hex()


class ChainRecorder:
    """Submits ``ChainRecord``s using the strategy chosen for the batch."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        settings = get_settings()
        self._relay_url = settings.relay_url
        self._rpc_url = settings.wallet_rpc_url
        self._contract = settings.voice_records_contract
        self._chain_id = settings.chain_id
        self._timeout = settings.http_timeout_seconds
        self._client = client
        self._rpc_id = 0

    async def _post(self, url: str, payload: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, json=payload)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(url, json=payload)

    async def submit(self, strategy: CommitStrategy, record: ChainRecord) -> ChainReceipt:
        if isinstance(strategy, RelayCommit):
            return await self.submit_via_relay(strategy, record)
        return await self.submit_via_wallet(strategy, record)

    async def submit_via_relay(self, strategy: RelayCommit, record: ChainRecord) -> ChainReceipt:
        payload = {
            "userAddress": strategy.owner_address,
            "subAccount": strategy.delegated_account,
            "ipfsHash": record.content_hash,
            "title": record.title,
            "description": record.description_payload,
            "isPublic": record.is_public,
        }
        try:
            response = await self._post(self._relay_url, payload)
            response.raise_for_status()
            tx_hash = response.json()["txHash"]
        except httpx.HTTPStatusError as e:
            detail = e.response.text[:200]
            logger.error(f"Relay rejected {record.content_hash}: {e.response.status_code} {detail}")
            raise ChainSubmissionError(f"Relay submission failed ({e.response.status_code}): {detail}") from e
        except (httpx.RequestError, KeyError, ValueError) as e:
            logger.error(f"Relay submission for {record.content_hash} failed: {e}")
            raise ChainSubmissionError(f"Relay submission failed: {e}") from e

        return ChainReceipt(reference=tx_hash)

    async def submit_via_wallet(self, strategy: DirectWalletCommit, record: ChainRecord) -> ChainReceipt:
        self._rpc_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._rpc_id,
            "method": "eth_sendTransaction",
            "params": [
                {
                    "from": strategy.account,
                    "to": self._contract,
                    "data": encode_save_recording(record),
                    "chainId": hex(self._chain_id),
                }
            ],
        }
        try:
            response = await self._post(self._rpc_url, payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Wallet RPC call for {record.content_hash} failed: {e}")
            raise ChainSubmissionError(f"Wallet transaction failed: {e}") from e
        except ValueError as e:
            raise ChainSubmissionError("Wallet RPC returned invalid JSON") from e

        if "error" in body:
            error = body["error"] or {}
            # 4001 is the EIP-1193 code for a user rejecting the request
            if error.get("code") == 4001:
                raise ChainSubmissionError("Transaction rejected in wallet")
            raise ChainSubmissionError(f"Wallet transaction failed: {error.get('message', 'unknown error')}")

        tx_hash = body.get("result")
        if not tx_hash:
            raise ChainSubmissionError("Wallet RPC returned no transaction hash")
        return ChainReceipt(reference=tx_hash)

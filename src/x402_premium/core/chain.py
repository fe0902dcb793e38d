"""
Chain access boundary.

The gateway never speaks RPC directly; it goes through a :class:`ChainClient`.
:class:`JsonRpcChainClient` is the default implementation, talking plain
Ethereum JSON-RPC over ``requests`` and signing transfers locally with
``eth_account``.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import requests
from eth_account import Account
from eth_utils import is_hex, to_checksum_address
from hexbytes import HexBytes

from .errors import ChainRpcError
from .sessions import SessionLike, SessionProvider

__all__ = [
    "ChainClient",
    "ChainReceipt",
    "ChainTransaction",
    "JsonRpcChainClient",
    "is_transaction_hash",
]


def is_transaction_hash(value: str) -> bool:
    return isinstance(value, str) and value.startswith("0x") and len(value) == 66 and is_hex(value)


def _to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(str(value), 16) if str(value).startswith("0x") else int(value)


@dataclass(frozen=True)
class ChainTransaction:
    transaction_id: str
    sender: Optional[str]
    recipient: Optional[str]
    value: int

    @classmethod
    def from_rpc(cls, payload: Dict[str, Any]) -> "ChainTransaction":
        return cls(
            transaction_id=payload.get("hash", ""),
            sender=payload.get("from"),
            recipient=payload.get("to"),
            value=_to_int(payload.get("value")),
        )


@dataclass(frozen=True)
class ChainReceipt:
    transaction_id: str
    success: bool
    block_number: Optional[int]

    @classmethod
    def from_rpc(cls, payload: Dict[str, Any]) -> "ChainReceipt":
        block = payload.get("blockNumber")
        return cls(
            transaction_id=payload.get("transactionHash", ""),
            success=_to_int(payload.get("status")) == 1,
            block_number=_to_int(block) if block is not None else None,
        )


class ChainClient(Protocol):
    """Operations the gateway needs from a chain-access collaborator."""

    @property
    def address(self) -> Optional[str]:
        """Address of the signing account, or ``None`` when read-only."""
        ...

    async def get_balance(self, address: str) -> int: ...

    async def get_fee_estimate(self) -> int: ...

    async def send_transfer(self, to: str, amount: int) -> str: ...

    async def get_transaction_receipt(self, transaction_id: str) -> Optional[ChainReceipt]: ...

    async def get_transaction(self, transaction_id: str) -> Optional[ChainTransaction]: ...


class JsonRpcChainClient:
    """
    Minimal Ethereum JSON-RPC client for native-token transfers.

    Blocking ``requests`` calls are pushed to a worker thread so callers on
    the event loop only suspend while the node is answering.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        chain_id: int,
        private_key: Optional[str] = None,
        gas_limit: int = 21_000,
        timeout: float = 30.0,
        session: SessionLike = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.gas_limit = gas_limit
        self.timeout = timeout
        self.http = SessionProvider.of(session)
        self._account = Account.from_key(private_key) if private_key else None
        self._ids = itertools.count(1)
        self._nonce_lock = asyncio.Lock()
        self._next_nonce: Optional[int] = None

    @property
    def address(self) -> Optional[str]:
        return self._account.address if self._account is not None else None

    def _call(self, method: str, params: List[Any]) -> Any:
        body = {"jsonrpc": "2.0", "method": method, "params": params, "id": next(self._ids)}
        try:
            with self.http.session() as session:
                response = session.post(self.rpc_url, json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ChainRpcError(method, f"transport error: {exc}") from exc

        if response.status_code >= 400:
            raise ChainRpcError(
                method, f"node responded with {response.status_code}: {response.text}"
            )
        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            raise ChainRpcError(method, f"invalid JSON from node: {response.text}") from exc

        error = payload.get("error")
        if error:
            raise ChainRpcError(method, error.get("message", str(error)), error.get("code"))
        return payload.get("result")

    async def _rpc(self, method: str, *params: Any) -> Any:
        return await asyncio.to_thread(self._call, method, list(params))

    async def get_balance(self, address: str) -> int:
        return _to_int(await self._rpc("eth_getBalance", address, "latest"))

    async def get_fee_estimate(self) -> int:
        """Current gas price in wei."""
        return _to_int(await self._rpc("eth_gasPrice"))

    async def send_transfer(self, to: str, amount: int) -> str:
        if self._account is None:
            raise ChainRpcError("eth_sendRawTransaction", "no signing account configured")

        # One signer: nonce lookup, signing and submission must not interleave.
        async with self._nonce_lock:
            pending, gas_price = await asyncio.gather(
                self._rpc("eth_getTransactionCount", self._account.address, "pending"),
                self._rpc("eth_gasPrice"),
            )
            nonce = _to_int(pending)
            if self._next_nonce is not None and self._next_nonce > nonce:
                nonce = self._next_nonce
            transaction = {
                "to": to_checksum_address(to),
                "value": amount,
                "gas": self.gas_limit,
                "gasPrice": _to_int(gas_price),
                "nonce": nonce,
                "chainId": self.chain_id,
            }
            signed = self._account.sign_transaction(transaction)
            raw = HexBytes(signed.raw_transaction)
            logging.info(
                "Submitting transfer of %s wei to %s (nonce %d)", amount, transaction["to"], nonce
            )
            transaction_id = await self._rpc(
                "eth_sendRawTransaction", "0x" + raw.hex().removeprefix("0x")
            )
            self._next_nonce = nonce + 1
        return str(transaction_id)

    async def get_transaction_receipt(self, transaction_id: str) -> Optional[ChainReceipt]:
        payload = await self._rpc("eth_getTransactionReceipt", transaction_id)
        return ChainReceipt.from_rpc(payload) if payload else None

    async def get_transaction(self, transaction_id: str) -> Optional[ChainTransaction]:
        payload = await self._rpc("eth_getTransactionByHash", transaction_id)
        return ChainTransaction.from_rpc(payload) if payload else None

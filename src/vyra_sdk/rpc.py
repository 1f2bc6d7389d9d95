"""Network collaborators: the node provider and the contract-call client.

Coordinators depend only on the ``Provider`` and ``ContractCaller``
protocols. ``JsonRpcProvider`` and ``ContractClient`` are the default
implementations over plain JSON-RPC.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import httpx
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector, to_bytes, to_checksum_address, to_hex

from .errors import ContractRevert, ErrorCode, InvalidInput, NetworkTransient, RpcError
from .messages.signing import MessageSigner

logger = logging.getLogger(__name__)

ONE_GWEI = 10**9
GAS_LIMIT_BUFFER_PCT = 20

_ERROR_STRING_SELECTOR = "0x08c379a0"
_SIGNATURE_RE = re.compile(
    r"^\s*(?P<name>[A-Za-z_][A-Za-z0-9_]*)\((?P<inputs>[^()]*)\)"
    r"\s*(?:returns\s*\((?P<outputs>[^()]*)\))?\s*$"
)


@dataclass
class FeeData:
    """Current network fee data."""

    gas_price: Optional[int]
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None


@dataclass
class TransactionReceipt:
    tx_hash: str
    block_number: int
    status: bool
    gas_used: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "txHash": self.tx_hash,
            "blockNumber": self.block_number,
            "status": self.status,
            "gasUsed": str(self.gas_used),
        }


@dataclass
class TransactionHandle:
    """A submitted transaction; confirmation happens separately."""

    hash: str


class Provider(Protocol):
    """Read access to a node."""

    async def get_chain_id(self) -> int: ...

    async def get_block_number(self) -> int: ...

    async def get_balance(self, address: str) -> int: ...

    async def get_transaction_count(self, address: str, block: str = "pending") -> int: ...

    async def get_fee_data(self) -> FeeData: ...

    async def estimate_gas(self, call: Dict[str, Any]) -> int: ...

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]: ...

    async def wait_for_transaction(
        self, tx_hash: str, confirmations: int = 1, timeout: float = 120.0
    ) -> TransactionReceipt: ...


class ContractCaller(Protocol):
    """Reads and signed writes against contracts."""

    async def call(self, contract: str, signature: str, args: Sequence[Any] = ()) -> Tuple[Any, ...]: ...

    async def send(
        self,
        contract: str,
        signature: str,
        args: Sequence[Any],
        signer: MessageSigner,
        *,
        value: int = 0,
        overrides: Optional[Dict[str, int]] = None,
    ) -> TransactionHandle: ...


def _to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    return int(value, 16)


def decode_revert_reason(data: Any) -> Optional[str]:
    """Decode a standard ``Error(string)`` revert payload, if present."""
    if not isinstance(data, str) or not data.startswith(_ERROR_STRING_SELECTOR):
        return None
    try:
        (reason,) = decode(["string"], to_bytes(hexstr=data[len(_ERROR_STRING_SELECTOR):]))
    except (DecodingError, ValueError):
        return None
    return reason


def _classify_rpc_error(method: str, error: Any) -> Exception:
    if not isinstance(error, dict):
        return RpcError(f"RPC error ({method}): {error}")

    message = str(error.get("message", ""))
    code = error.get("code")
    data = error.get("data")
    if isinstance(data, dict):
        data = data.get("data")
    lowered = message.lower()

    if code == 3 or "revert" in lowered:
        reason = decode_revert_reason(data) or message
        return ContractRevert(
            f"Execution reverted: {reason}",
            reason=reason,
            data=data if isinstance(data, str) else None,
        )
    if code == -32005 or "rate limit" in lowered:
        return NetworkTransient(f"RPC rate limited ({method})", code=ErrorCode.RATE_LIMIT_EXCEEDED)
    return RpcError(f"RPC error ({method}): {message}", details={"rpcCode": code})


def _format_call(call: Dict[str, Any]) -> Dict[str, Any]:
    formatted: Dict[str, Any] = {}
    for key, value in call.items():
        if value is None:
            continue
        if key in ("value", "gas", "gasPrice") and isinstance(value, int):
            formatted[key] = hex(value)
        elif key == "data" and isinstance(value, (bytes, bytearray)):
            formatted[key] = to_hex(value)
        else:
            formatted[key] = value
    return formatted


class JsonRpcProvider:
    """Ethereum JSON-RPC provider over ``httpx``.

    Transport failures are mapped to ``NetworkTransient`` codes (timeouts,
    rate limits, unavailable nodes) so that ``RetryPolicy`` can classify them;
    execution reverts become ``ContractRevert``.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_seconds: float = 30.0,
        poll_interval: float = 2.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._url = rpc_url
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = client is None
        self._poll_interval = poll_interval
        self._request_id = 0

    @property
    def url(self) -> str:
        return self._url

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}
        try:
            response = await self._client.post(self._url, json=payload)
        except httpx.TimeoutException as exc:
            raise NetworkTransient(f"RPC timeout ({method})", code=ErrorCode.TIMEOUT) from exc
        except httpx.TransportError as exc:
            raise NetworkTransient(f"RPC transport error ({method}): {exc}") from exc

        if response.status_code == 429:
            raise NetworkTransient(f"RPC rate limited ({method})", code=ErrorCode.RATE_LIMIT_EXCEEDED)
        if response.status_code in (502, 503, 504):
            raise NetworkTransient(
                f"RPC node unavailable ({method}): HTTP {response.status_code}",
                code=ErrorCode.SERVICE_UNAVAILABLE,
            )
        if response.status_code >= 400:
            raise RpcError(
                f"RPC request failed ({method}): HTTP {response.status_code}",
                details={"status": response.status_code},
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise RpcError(f"RPC returned invalid JSON ({method})") from exc

        if data.get("error"):
            raise _classify_rpc_error(method, data["error"])
        return data.get("result")

    async def get_chain_id(self) -> int:
        return _to_int(await self._rpc("eth_chainId", []))

    async def get_block_number(self) -> int:
        return _to_int(await self._rpc("eth_blockNumber", []))

    async def get_balance(self, address: str) -> int:
        return _to_int(await self._rpc("eth_getBalance", [to_checksum_address(address), "latest"]))

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return _to_int(
            await self._rpc("eth_getTransactionCount", [to_checksum_address(address), block])
        )

    async def get_fee_data(self) -> FeeData:
        """Gas price plus EIP-1559 fields when the latest block has a base fee.

        ``max_fee_per_gas`` is ``2 * baseFee + priorityFee``.
        """
        gas_price = _to_int(await self._rpc("eth_gasPrice", []))
        block = await self._rpc("eth_getBlockByNumber", ["latest", False]) or {}
        base_fee = block.get("baseFeePerGas")
        if base_fee is None:
            return FeeData(gas_price=gas_price)

        try:
            priority_fee = _to_int(await self._rpc("eth_maxPriorityFeePerGas", []))
        except RpcError:
            priority_fee = ONE_GWEI
        return FeeData(
            gas_price=gas_price,
            max_fee_per_gas=_to_int(base_fee) * 2 + priority_fee,
            max_priority_fee_per_gas=priority_fee,
        )

    async def estimate_gas(self, call: Dict[str, Any]) -> int:
        return _to_int(await self._rpc("eth_estimateGas", [_format_call(call)]))

    async def call(self, call: Dict[str, Any]) -> bytes:
        result = await self._rpc("eth_call", [_format_call(call), "latest"])
        return to_bytes(hexstr=result or "0x")

    async def send_raw_transaction(self, raw_transaction: bytes) -> str:
        return await self._rpc("eth_sendRawTransaction", [to_hex(raw_transaction)])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        receipt = await self._rpc("eth_getTransactionReceipt", [tx_hash])
        if not receipt:
            return None
        return TransactionReceipt(
            tx_hash=receipt.get("transactionHash", tx_hash),
            block_number=_to_int(receipt["blockNumber"]),
            status=_to_int(receipt.get("status", "0x1")) == 1,
            gas_used=_to_int(receipt.get("gasUsed", "0x0")),
        )

    async def wait_for_transaction(
        self, tx_hash: str, confirmations: int = 1, timeout: float = 120.0
    ) -> TransactionReceipt:
        """Poll until the receipt has ``confirmations`` blocks on top of it.

        Raises:
            NetworkTransient: With code ``TIMEOUT`` when ``timeout`` elapses
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt is not None:
                if confirmations <= 1:
                    return receipt
                head = await self.get_block_number()
                if head - receipt.block_number + 1 >= confirmations:
                    return receipt
            if loop.time() >= deadline:
                raise NetworkTransient(
                    f"Timed out waiting for {tx_hash}", code=ErrorCode.TIMEOUT
                )
            await asyncio.sleep(self._poll_interval)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


@dataclass(frozen=True)
class ContractFunction:
    """A function parsed from ``"name(type,...) returns (type,...)"``."""

    name: str
    inputs: Tuple[str, ...]
    outputs: Tuple[str, ...] = ()

    @classmethod
    def parse(cls, signature: str) -> "ContractFunction":
        match = _SIGNATURE_RE.match(signature)
        if match is None:
            raise InvalidInput(f"Invalid function signature: {signature}", field="signature")

        def split(types: Optional[str]) -> Tuple[str, ...]:
            if not types or not types.strip():
                return ()
            return tuple(part.strip() for part in types.split(","))

        return cls(match.group("name"), split(match.group("inputs")), split(match.group("outputs")))

    @property
    def canonical(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.canonical)

    def encode_call(self, args: Sequence[Any]) -> bytes:
        if len(args) != len(self.inputs):
            raise InvalidInput(
                f"{self.canonical} expects {len(self.inputs)} arguments, got {len(args)}"
            )
        return self.selector + encode(list(self.inputs), list(args))

    def decode_result(self, data: bytes) -> Tuple[Any, ...]:
        if not self.outputs:
            return ()
        return tuple(decode(list(self.outputs), data))


class ContractClient:
    """``ContractCaller`` that ABI-encodes calls and submits signed transactions."""

    def __init__(self, provider: JsonRpcProvider, chain_id: int):
        self._provider = provider
        self._chain_id = chain_id

    async def call(self, contract: str, signature: str, args: Sequence[Any] = ()) -> Tuple[Any, ...]:
        function = ContractFunction.parse(signature)
        result = await self._provider.call(
            {"to": to_checksum_address(contract), "data": function.encode_call(args)}
        )
        return function.decode_result(result)

    async def send(
        self,
        contract: str,
        signature: str,
        args: Sequence[Any],
        signer: MessageSigner,
        *,
        value: int = 0,
        overrides: Optional[Dict[str, int]] = None,
    ) -> TransactionHandle:
        function = ContractFunction.parse(signature)
        data = function.encode_call(args)
        sender = to_checksum_address(await signer.get_address())
        target = to_checksum_address(contract)
        overrides = dict(overrides or {})

        nonce = overrides.get("nonce")
        if nonce is None:
            nonce = await self._provider.get_transaction_count(sender, "pending")

        gas = overrides.get("gas")
        if gas is None:
            # Reverting calls fail here, before anything is signed or broadcast
            estimate = await self._provider.estimate_gas(
                {"from": sender, "to": target, "data": data, "value": value}
            )
            gas = estimate * (100 + GAS_LIMIT_BUFFER_PCT) // 100

        transaction: Dict[str, Any] = {
            "chainId": self._chain_id,
            "nonce": nonce,
            "to": target,
            "data": to_hex(data),
            "value": value,
            "gas": gas,
        }
        if "gasPrice" in overrides:
            transaction["gasPrice"] = overrides["gasPrice"]
        else:
            max_fee = overrides.get("maxFeePerGas")
            priority_fee = overrides.get("maxPriorityFeePerGas")
            if max_fee is None or priority_fee is None:
                fee_data = await self._provider.get_fee_data()
                if fee_data.max_fee_per_gas is None:
                    transaction["gasPrice"] = fee_data.gas_price or 0
                else:
                    max_fee = max_fee if max_fee is not None else fee_data.max_fee_per_gas
                    priority_fee = (
                        priority_fee
                        if priority_fee is not None
                        else fee_data.max_priority_fee_per_gas
                    )
            if "gasPrice" not in transaction:
                transaction["type"] = 2
                transaction["maxFeePerGas"] = max_fee
                transaction["maxPriorityFeePerGas"] = priority_fee

        raw = await signer.sign_transaction(transaction)
        tx_hash = await self._provider.send_raw_transaction(raw)
        logger.info("Submitted %s to %s from %s: %s", function.name, target, sender, tx_hash)
        return TransactionHandle(hash=tx_hash)

"""Tests for the JSON-RPC provider and the contract client."""

import json

import httpx
import pytest
from eth_abi import encode
from eth_account import Account
from eth_utils import to_hex

from conftest import TEST_ADDRESS, TEST_PRIVATE_KEY
from vyra_sdk.errors import ContractRevert, ErrorCode, InvalidInput, NetworkTransient, RpcError
from vyra_sdk.messages import LocalSigner
from vyra_sdk.rpc import ContractClient, ContractFunction, JsonRpcProvider, decode_revert_reason

RPC_URL = "http://node.test"
TOKEN = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
RECIPIENT = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


def _revert_data(reason: str) -> str:
    return "0x08c379a0" + encode(["string"], [reason]).hex()


class FakeNode:
    """Answers JSON-RPC requests from a method table and records them."""

    def __init__(self, results=None):
        self.results = dict(results or {})
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append(payload)
        result = self.results[payload["method"]]
        if isinstance(result, httpx.Response):
            return result
        if callable(result):
            result = result(payload["params"])
        if isinstance(result, dict) and "error" in result:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], **result})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})

    def provider(self) -> JsonRpcProvider:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return JsonRpcProvider(RPC_URL, client=client, poll_interval=0)

    def methods(self):
        return [request["method"] for request in self.requests]


class TestJsonRpcProvider:
    """Tests for request encoding and error mapping."""

    @pytest.mark.asyncio
    async def test_basic_reads(self):
        """Test hex results are decoded to ints."""
        node = FakeNode({"eth_chainId": "0x7a69", "eth_blockNumber": "0x10", "eth_getBalance": "0xde0b6b3a7640000"})
        provider = node.provider()

        assert await provider.get_chain_id() == 31337
        assert await provider.get_block_number() == 16
        assert await provider.get_balance(TEST_ADDRESS.lower()) == 10**18
        assert node.requests[2]["params"] == [TEST_ADDRESS, "latest"]

    @pytest.mark.asyncio
    async def test_fee_data_eip1559(self):
        """Test max fee is twice the base fee plus the priority fee."""
        node = FakeNode(
            {
                "eth_gasPrice": hex(3 * 10**9),
                "eth_getBlockByNumber": {"baseFeePerGas": hex(10**9)},
                "eth_maxPriorityFeePerGas": hex(2 * 10**9),
            }
        )

        fee_data = await node.provider().get_fee_data()

        assert fee_data.gas_price == 3 * 10**9
        assert fee_data.max_priority_fee_per_gas == 2 * 10**9
        assert fee_data.max_fee_per_gas == 4 * 10**9

    @pytest.mark.asyncio
    async def test_fee_data_legacy(self):
        """Test blocks without a base fee yield legacy fee data."""
        node = FakeNode({"eth_gasPrice": "0x1", "eth_getBlockByNumber": {"number": "0x1"}})

        fee_data = await node.provider().get_fee_data()

        assert fee_data.gas_price == 1
        assert fee_data.max_fee_per_gas is None

    @pytest.mark.asyncio
    async def test_http_errors_are_classified(self):
        """Test HTTP status codes map to transient or RPC errors."""
        cases = [
            (429, NetworkTransient, ErrorCode.RATE_LIMIT_EXCEEDED),
            (503, NetworkTransient, ErrorCode.SERVICE_UNAVAILABLE),
            (400, RpcError, ErrorCode.RPC_ERROR),
        ]
        for status, error_type, code in cases:
            node = FakeNode({"eth_chainId": httpx.Response(status, text="nope")})
            with pytest.raises(error_type) as exc_info:
                await node.provider().get_chain_id()
            assert exc_info.value.code == code

    @pytest.mark.asyncio
    async def test_transport_errors_are_transient(self):
        """Test connection failures and timeouts are retryable network errors."""

        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        def slow(request):
            raise httpx.ReadTimeout("slow", request=request)

        for handler, code in ((refuse, ErrorCode.NETWORK_ERROR), (slow, ErrorCode.TIMEOUT)):
            client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            with pytest.raises(NetworkTransient) as exc_info:
                await JsonRpcProvider(RPC_URL, client=client).get_chain_id()
            assert exc_info.value.code == code

    @pytest.mark.asyncio
    async def test_revert_is_decoded(self):
        """Test execution reverts become ContractRevert with the decoded reason."""
        node = FakeNode(
            {
                "eth_estimateGas": {
                    "error": {"code": 3, "message": "execution reverted", "data": _revert_data("Invoice expired")}
                }
            }
        )

        with pytest.raises(ContractRevert) as exc_info:
            await node.provider().estimate_gas({"to": TOKEN, "data": b"\x01"})

        assert exc_info.value.reason == "Invoice expired"
        assert node.requests[0]["params"][0]["data"] == "0x01"

    @pytest.mark.asyncio
    async def test_other_rpc_errors(self):
        """Test rate-limit codes and generic JSON-RPC errors."""
        node = FakeNode(
            {
                "eth_chainId": {"error": {"code": -32005, "message": "limit"}},
                "eth_blockNumber": {"error": {"code": -32601, "message": "method not found"}},
            }
        )
        provider = node.provider()

        with pytest.raises(NetworkTransient) as exc_info:
            await provider.get_chain_id()
        assert exc_info.value.code == ErrorCode.RATE_LIMIT_EXCEEDED

        with pytest.raises(RpcError) as rpc_info:
            await provider.get_block_number()
        assert rpc_info.value.details["rpcCode"] == -32601

    def test_decode_revert_reason(self):
        """Test only Error(string) payloads are decoded."""
        assert decode_revert_reason(_revert_data("nope")) == "nope"
        assert decode_revert_reason("0xdeadbeef") is None
        assert decode_revert_reason(None) is None

    @pytest.mark.asyncio
    async def test_wait_for_transaction(self):
        """Test polling until the receipt has enough confirmations."""
        receipts = iter([None, {"blockNumber": "0x5", "status": "0x1", "gasUsed": "0x5208"}])
        blocks = iter(["0x5", "0x6"])
        node = FakeNode(
            {
                "eth_getTransactionReceipt": lambda params: next(receipts, {"blockNumber": "0x5", "status": "0x1"}),
                "eth_blockNumber": lambda params: next(blocks),
            }
        )

        receipt = await node.provider().wait_for_transaction("0xabc", confirmations=2, timeout=5)

        assert receipt.block_number == 5
        assert receipt.status is True
        assert node.methods().count("eth_blockNumber") == 2

    @pytest.mark.asyncio
    async def test_wait_for_transaction_timeout(self):
        """Test a missing receipt times out."""
        node = FakeNode({"eth_getTransactionReceipt": None})

        with pytest.raises(NetworkTransient) as exc_info:
            await node.provider().wait_for_transaction("0xabc", timeout=0)

        assert exc_info.value.code == ErrorCode.TIMEOUT


class TestContractFunction:
    """Tests for signature parsing and ABI encoding."""

    def test_parse(self):
        """Test inputs, outputs and the selector."""
        function = ContractFunction.parse("transfer(address,uint256) returns (bool)")

        assert function.name == "transfer"
        assert function.inputs == ("address", "uint256")
        assert function.outputs == ("bool",)
        assert function.selector == bytes.fromhex("a9059cbb")

    def test_parse_without_outputs(self):
        """Test signatures without a returns clause."""
        function = ContractFunction.parse("revokeSessionKey()")

        assert function.inputs == ()
        assert function.decode_result(b"") == ()

    def test_invalid_signature(self):
        """Test malformed signatures are refused."""
        with pytest.raises(InvalidInput):
            ContractFunction.parse("not a signature")

    def test_encode_and_decode(self):
        """Test calldata layout and result decoding."""
        function = ContractFunction.parse("balanceOf(address) returns (uint256)")

        data = function.encode_call([TOKEN])

        assert data[:4] == function.selector
        assert data[4:] == encode(["address"], [TOKEN])
        assert function.decode_result(encode(["uint256"], [42])) == (42,)
        with pytest.raises(InvalidInput):
            function.encode_call([])


class TestContractClient:
    """Tests for contract reads and signed submissions."""

    @pytest.mark.asyncio
    async def test_call(self):
        """Test eth_call encoding and decoding."""
        node = FakeNode({"eth_call": to_hex(encode(["uint256"], [7]))})

        result = await ContractClient(node.provider(), 31337).call(
            TOKEN, "balanceOf(address) returns (uint256)", [RECIPIENT]
        )

        assert result == (7,)
        assert node.requests[0]["params"][0]["to"] == TOKEN

    @pytest.mark.asyncio
    async def test_send_eip1559(self):
        """Test a type 2 transaction is signed with a buffered gas limit."""
        node = FakeNode(
            {
                "eth_getTransactionCount": "0x3",
                "eth_estimateGas": hex(50_000),
                "eth_gasPrice": hex(10**9),
                "eth_getBlockByNumber": {"baseFeePerGas": hex(10**9)},
                "eth_maxPriorityFeePerGas": hex(10**9),
                "eth_sendRawTransaction": lambda params: "0x" + "ff" * 32,
            }
        )
        client = ContractClient(node.provider(), 31337)

        handle = await client.send(
            TOKEN, "transfer(address,uint256) returns (bool)", [RECIPIENT, 1], LocalSigner(TEST_PRIVATE_KEY)
        )

        assert handle.hash == "0x" + "ff" * 32
        raw = node.requests[-1]["params"][0]
        decoded = Account.recover_transaction(raw)
        assert decoded == TEST_ADDRESS

    @pytest.mark.asyncio
    async def test_send_with_overrides_skips_lookups(self):
        """Test explicit nonce, gas and gas price avoid node lookups."""
        node = FakeNode({"eth_sendRawTransaction": "0x" + "ee" * 32})
        client = ContractClient(node.provider(), 31337)

        await client.send(
            TOKEN,
            "transfer(address,uint256) returns (bool)",
            [RECIPIENT, 1],
            LocalSigner(TEST_PRIVATE_KEY),
            overrides={"nonce": 0, "gas": 60_000, "gasPrice": 10**9},
        )

        assert node.methods() == ["eth_sendRawTransaction"]

    @pytest.mark.asyncio
    async def test_reverting_send_is_not_broadcast(self):
        """Test a revert during estimation stops before signing."""
        node = FakeNode(
            {
                "eth_getTransactionCount": "0x0",
                "eth_estimateGas": {"error": {"code": 3, "message": "execution reverted"}},
            }
        )
        client = ContractClient(node.provider(), 31337)

        with pytest.raises(ContractRevert):
            await client.send(
                TOKEN, "transfer(address,uint256) returns (bool)", [RECIPIENT, 1], LocalSigner(TEST_PRIVATE_KEY)
            )

        assert "eth_sendRawTransaction" not in node.methods()

"""Shared fixtures: in-memory stand-ins for the node and the contracts."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest
from eth_account import Account

from vyra_sdk.config import ResolvedOptions, VyraConfig
from vyra_sdk.coordinators import (
    BridgeCoordinator,
    InvoiceCoordinator,
    PaymasterCoordinator,
    WalletCoordinator,
)
from vyra_sdk.messages import LocalSigner, SigningAuthority
from vyra_sdk.nonces import InMemoryNonceSource
from vyra_sdk.rpc import FeeData, TransactionHandle, TransactionReceipt

# Test wallet (DO NOT use in production)
TEST_PRIVATE_KEY = "0x" + "ab" * 32  # Deterministic test key
TEST_ACCOUNT = Account.from_key(TEST_PRIVATE_KEY)
TEST_ADDRESS = TEST_ACCOUNT.address

FIXED_NOW = 1_700_000_000
ONE_VYR = 10**18


class FakeProvider:
    """Scriptable ``Provider``. Errors queued in ``failures[method]`` are raised first."""

    def __init__(self, chain_id: int = 31337):
        self.chain_id = chain_id
        self.block_number = 100
        self.balances: Dict[str, int] = {}
        self.fee_data = FeeData(gas_price=2 * 10**9, max_fee_per_gas=5 * 10**9, max_priority_fee_per_gas=10**9)
        self.gas_estimate: Any = 50_000
        self.receipts: Dict[str, TransactionReceipt] = {}
        self.failures: Dict[str, List[Exception]] = {}
        self.calls: Dict[str, int] = {}
        self.estimate_requests: List[Dict[str, Any]] = []
        self.closed = False

    def _enter(self, method: str) -> None:
        self.calls[method] = self.calls.get(method, 0) + 1
        queued = self.failures.get(method)
        if queued:
            raise queued.pop(0)

    async def get_chain_id(self) -> int:
        self._enter("get_chain_id")
        return self.chain_id

    async def get_block_number(self) -> int:
        self._enter("get_block_number")
        return self.block_number

    async def get_balance(self, address: str) -> int:
        self._enter("get_balance")
        return self.balances.get(address, 0)

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        self._enter("get_transaction_count")
        return 0

    async def get_fee_data(self) -> FeeData:
        self._enter("get_fee_data")
        return self.fee_data

    async def estimate_gas(self, call: Dict[str, Any]) -> int:
        self._enter("estimate_gas")
        self.estimate_requests.append(call)
        if isinstance(self.gas_estimate, Exception):
            raise self.gas_estimate
        return self.gas_estimate

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        self._enter("get_transaction_receipt")
        return self.receipts.get(tx_hash)

    async def wait_for_transaction(
        self, tx_hash: str, confirmations: int = 1, timeout: float = 120.0
    ) -> TransactionReceipt:
        self._enter("wait_for_transaction")
        receipt = self.receipts.get(tx_hash)
        if receipt is None:
            receipt = TransactionReceipt(
                tx_hash=tx_hash, block_number=self.block_number, status=True, gas_used=21_000
            )
        return receipt

    async def close(self) -> None:
        self.closed = True


@dataclass
class SentTransaction:
    contract: str
    function: str
    args: List[Any]
    overrides: Optional[Dict[str, int]]
    tx_hash: str


def _function_name(signature: str) -> str:
    return signature.split("(", 1)[0]


class FakeContracts:
    """Scriptable ``ContractCaller``.

    View results are registered by function name and returned as tuples the
    way ``eth_abi`` decodes them (addresses lowercase). A registered value may
    be a callable taking the call arguments, or an exception to raise.
    """

    def __init__(self):
        self.views: Dict[str, Any] = {}
        self.view_calls: List[Tuple[str, str, Tuple[Any, ...]]] = []
        self.sent: List[SentTransaction] = []
        self.send_error: Optional[Exception] = None

    def set_view(self, name: str, result: Any) -> None:
        self.views[name] = result

    def sent_functions(self) -> List[str]:
        return [tx.function for tx in self.sent]

    async def call(self, contract: str, signature: str, args: Sequence[Any] = ()) -> Tuple[Any, ...]:
        name = _function_name(signature)
        self.view_calls.append((contract, name, tuple(args)))
        if name not in self.views:
            raise AssertionError(f"No view registered for {name}")
        result = self.views[name]
        if callable(result) and not isinstance(result, Exception):
            result = result(*args)
        if isinstance(result, Exception):
            raise result
        return result

    async def send(
        self,
        contract: str,
        signature: str,
        args: Sequence[Any],
        signer: Any,
        *,
        value: int = 0,
        overrides: Optional[Dict[str, int]] = None,
    ) -> TransactionHandle:
        if self.send_error is not None:
            raise self.send_error
        tx_hash = "0x" + f"{len(self.sent) + 1:064x}"
        self.sent.append(
            SentTransaction(contract, _function_name(signature), list(args), overrides, tx_hash)
        )
        return TransactionHandle(hash=tx_hash)


@pytest.fixture
def config() -> VyraConfig:
    return VyraConfig.for_network(31337)


@pytest.fixture
def options() -> ResolvedOptions:
    return ResolvedOptions(call_timeout=5.0, max_retries=3, retry_base_delay=0.0)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def contracts() -> FakeContracts:
    fake = FakeContracts()
    fake.set_view("balanceOf", (1_000 * ONE_VYR,))
    fake.set_view("getRequiredVyrAmount", lambda gas: (gas * 10**12,))
    return fake


@pytest.fixture
def signer() -> LocalSigner:
    return LocalSigner(TEST_PRIVATE_KEY)


@pytest.fixture
def authority(signer: LocalSigner) -> SigningAuthority:
    return SigningAuthority(signer)


@pytest.fixture
def nonce_source() -> InMemoryNonceSource:
    return InMemoryNonceSource()


@pytest.fixture
def make_coordinator(config, provider, contracts, authority, nonce_source, options) -> Callable[[type], Any]:
    def make(cls: type) -> Any:
        return cls(
            config,
            provider,
            contracts,
            authority,
            nonce_source=nonce_source,
            options=options,
            clock=lambda: FIXED_NOW,
        )

    return make


@pytest.fixture
def merchant(make_coordinator) -> InvoiceCoordinator:
    return make_coordinator(InvoiceCoordinator)


@pytest.fixture
def paymaster(make_coordinator) -> PaymasterCoordinator:
    return make_coordinator(PaymasterCoordinator)


@pytest.fixture
def bridge(make_coordinator) -> BridgeCoordinator:
    return make_coordinator(BridgeCoordinator)


@pytest.fixture
def wallet(make_coordinator) -> WalletCoordinator:
    return make_coordinator(WalletCoordinator)

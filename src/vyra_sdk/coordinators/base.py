"""Shared plumbing for the coordinators.

Every coordinator is built from the same collaborators:

- a ``Provider`` for chain reads,
- a ``ContractCaller`` for contract reads and signed writes,
- a ``SigningAuthority`` shared across coordinators,
- a ``NonceSource`` for message nonces.

Reads go through ``_read`` (timeout plus retry). Writes go through
``_submit`` (timeout only) while the caller holds the signer, and are never
retried.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Sequence, Tuple, TypeVar

from ..config import ResolvedOptions, VyraConfig
from ..errors import (
    ContractRevert,
    ErrorCode,
    InsufficientBalance,
    InvalidInput,
    NetworkMismatch,
    NetworkTransient,
    NotConnected,
)
from ..fees import FeeEngine
from ..messages.signing import SignerHandle, SigningAuthority
from ..nonces import InMemoryNonceSource, NonceSource
from ..retry import RetryPolicy
from ..rpc import ContractCaller, Provider, TransactionHandle, TransactionReceipt
from ..utils import to_decimal_string

logger = logging.getLogger(__name__)

T = TypeVar("T")

BALANCE_OF = "balanceOf(address) returns (uint256)"
GET_REQUIRED_VYR_AMOUNT = "getRequiredVyrAmount(uint256) returns (uint256)"


async def with_timeout(awaitable: Awaitable[T], timeout: float) -> T:
    """Bound one network call; a timeout becomes ``NetworkTransient(TIMEOUT)``."""
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as exc:
        raise NetworkTransient(
            f"Network call timed out after {timeout}s", code=ErrorCode.TIMEOUT
        ) from exc


def parse_gas(value: Any, field: str = "gas_estimate") -> int:
    """Accept gas as an int or a base-10 integer string."""
    if isinstance(value, bool):
        raise InvalidInput(f"Invalid {field}: {value!r}", field=field)
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value < 0:
        raise InvalidInput(f"Invalid {field}: {value!r}", field=field)
    return value


class Coordinator:
    """Base class holding the collaborators and the call helpers."""

    def __init__(
        self,
        config: VyraConfig,
        provider: Provider,
        contracts: ContractCaller,
        authority: SigningAuthority,
        *,
        nonce_source: Optional[NonceSource] = None,
        options: Optional[ResolvedOptions] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self._provider = provider
        self._contracts = contracts
        self._authority = authority
        self._nonces = nonce_source or InMemoryNonceSource()
        self._options = options or ResolvedOptions()
        self._fees = FeeEngine(self._options.fees)
        self._retry = RetryPolicy(
            max_attempts=self._options.max_retries,
            base_delay=self._options.retry_base_delay,
        )
        self._clock = clock
        self._verified_chain_id: Optional[int] = None

    @property
    def authority(self) -> SigningAuthority:
        return self._authority

    @property
    def fees(self) -> FeeEngine:
        return self._fees

    def _now(self) -> int:
        return int(self._clock())

    def _require_connected(self) -> None:
        if not self._authority.is_connected:
            raise NotConnected()

    async def _guard(self, awaitable: Awaitable[T]) -> T:
        return await with_timeout(awaitable, self._options.call_timeout)

    async def _read(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Idempotent read: per-attempt timeout, retried on transient failures."""
        return await self._retry.run(lambda: self._guard(operation()))

    async def _call(self, contract: str, signature: str, args: Sequence[Any] = ()) -> Tuple[Any, ...]:
        return await self._read(lambda: self._contracts.call(contract, signature, args))

    async def _chain_id(self) -> int:
        """Configured chain id, checked once against the node.

        Raises:
            NetworkMismatch: If the node reports a different chain
        """
        if self._verified_chain_id is None:
            actual = await self._read(self._provider.get_chain_id)
            if actual != self.config.chain_id:
                raise NetworkMismatch(self.config.chain_id, actual)
            self._verified_chain_id = actual
        return self._verified_chain_id

    async def _submit(
        self,
        handle: SignerHandle,
        contract: str,
        signature: str,
        args: Sequence[Any],
        *,
        overrides: Optional[dict] = None,
    ) -> TransactionHandle:
        """Submit a signed write. Callers must hold ``handle``; never retried."""
        return await self._guard(
            self._contracts.send(contract, signature, args, handle.signer, overrides=overrides)
        )

    async def _wait_for_receipt(self, tx_hash: str) -> TransactionReceipt:
        return await self._retry.run(
            lambda: with_timeout(
                self._provider.wait_for_transaction(
                    tx_hash,
                    self._options.confirmations,
                    self._options.confirmation_timeout,
                ),
                self._options.confirmation_timeout + self._options.call_timeout,
            )
        )

    async def _confirm(self, tx_hash: str) -> TransactionReceipt:
        """Wait for the receipt and raise ``ContractRevert`` if it failed."""
        receipt = await self._wait_for_receipt(tx_hash)
        if not receipt.status:
            raise ContractRevert("Transaction reverted", tx_hash=tx_hash)
        return receipt

    async def _token_balance(self, address: str) -> int:
        (balance,) = await self._call(self.config.token_address, BALANCE_OF, [address])
        return balance

    async def _require_balance(self, address: str, required: int) -> None:
        """Local VYR balance check ahead of a submission."""
        available = await self._token_balance(address)
        if available < required:
            raise InsufficientBalance(
                "Insufficient VYR balance",
                required=to_decimal_string(required),
                available=to_decimal_string(available),
            )

    async def _required_vyr_amount(self, gas_estimate: int) -> int:
        (amount,) = await self._call(
            self.config.paymaster_address, GET_REQUIRED_VYR_AMOUNT, [gas_estimate]
        )
        return amount

"""Wallet operations: balances, VYR transfers and message signing."""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..errors import ContractRevert, GasEstimateFailed, InvalidInput, OperationCode, RpcError, VyraError
from ..messages.signing import recover_text_signer
from ..messages.types import GasEstimate, PaymentRequest
from ..response import VyraResponse, enveloped
from ..rpc import ContractFunction
from ..utils import normalize_address, parse_payment_amount, to_decimal_string
from .base import Coordinator

logger = logging.getLogger(__name__)

TRANSFER = "transfer(address,uint256) returns (bool)"

BalanceCallback = Callable[[int], Any]


@dataclass
class TransactionOptions:
    """Optional gas overrides for a submission."""

    gas_limit: Optional[int] = None
    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    nonce: Optional[int] = None

    def to_overrides(self) -> Dict[str, int]:
        if self.gas_price is not None and (
            self.max_fee_per_gas is not None or self.max_priority_fee_per_gas is not None
        ):
            raise InvalidInput(
                "gas_price cannot be combined with EIP-1559 fee fields", field="gas_price"
            )
        overrides: Dict[str, int] = {}
        for key, value in (
            ("gas", self.gas_limit),
            ("gasPrice", self.gas_price),
            ("maxFeePerGas", self.max_fee_per_gas),
            ("maxPriorityFeePerGas", self.max_priority_fee_per_gas),
            ("nonce", self.nonce),
        ):
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidInput(f"Invalid transaction option {key}: {value!r}", field=key)
            overrides[key] = value
        return overrides


@dataclass
class WalletInfo:
    address: str
    balance: int
    """Native balance in wei."""

    vyra_balance: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "balance": to_decimal_string(self.balance),
            "vyraBalance": to_decimal_string(self.vyra_balance),
        }


@dataclass
class SentPayment:
    """A submitted VYR transfer with its fee preview."""

    to: str
    amount: int
    fee: int
    net_amount: int
    tx_hash: str
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "to": self.to,
            "amount": to_decimal_string(self.amount),
            "fee": to_decimal_string(self.fee),
            "netAmount": to_decimal_string(self.net_amount),
            "txHash": self.tx_hash,
        }
        if self.description:
            result["description"] = self.description
        return result


class BalanceWatcher:
    """Polls a VYR balance in a background task.

    The callback runs on the first poll and whenever the balance changes.
    Polling never touches the signer, so it cannot block or be blocked by a
    payment in flight.
    """

    def __init__(
        self,
        address: str,
        fetch: Callable[[], Awaitable[int]],
        callback: BalanceCallback,
        interval: float = 30.0,
    ):
        self.address = address
        self.interval = interval
        self.last_balance: Optional[int] = None
        self._fetch = fetch
        self._callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()

    async def _poll_once(self) -> None:
        try:
            balance = await self._fetch()
        except VyraError as exc:
            logger.warning("Balance poll for %s failed: %s", self.address, exc)
            return
        except Exception:
            logger.exception("Balance poll for %s failed", self.address)
            return
        if balance == self.last_balance:
            return
        self.last_balance = balance
        try:
            result = self._callback(balance)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Balance callback failed for %s", self.address)

    async def _run(self) -> None:
        while True:
            await self._poll_once()
            await asyncio.sleep(self.interval)


class WalletCoordinator(Coordinator):
    """Balances, transfers and text signing for the connected wallet."""

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._watchers: List[BalanceWatcher] = []
        self._authority.add_disconnect_listener(self.stop_watchers)

    async def _resolve_address(self, address: Optional[str]) -> str:
        if address is not None:
            return normalize_address(address)
        return await self._authority.get_address()

    @enveloped(OperationCode.WALLET_INFO_FETCH_FAILED)
    async def get_wallet_info(self) -> WalletInfo:
        address = await self._authority.get_address()
        balance, vyra_balance = await asyncio.gather(
            self._read(lambda: self._provider.get_balance(address)),
            self._token_balance(address),
        )
        return WalletInfo(address=address, balance=balance, vyra_balance=vyra_balance)

    @enveloped(OperationCode.BALANCE_FETCH_FAILED)
    async def get_token_balance(self, address: Optional[str] = None) -> str:
        """VYR balance of ``address`` (default: the connected wallet)."""
        return to_decimal_string(await self._token_balance(await self._resolve_address(address)))

    @enveloped(OperationCode.PAYMENT_SEND_FAILED)
    async def send_payment(
        self, request: PaymentRequest, options: Optional[TransactionOptions] = None
    ) -> VyraResponse[SentPayment]:
        """Transfer VYR to ``request.to``.

        Raises:
            InsufficientBalance: If the balance check ahead of submission fails
        """
        to = normalize_address(request.to, "to")
        amount = parse_payment_amount(request.amount)
        overrides = options.to_overrides() if options is not None else None

        self._require_connected()
        await self._chain_id()

        async with self._authority.hold() as handle:
            await self._require_balance(handle.address, amount)
            tx = await self._submit(
                handle, self.config.token_address, TRANSFER, [to, amount], overrides=overrides
            )

        fee = self._fees.transfer_fee(amount)
        logger.info("Sent %s VYR to %s: %s", to_decimal_string(amount), to, tx.hash)
        payment = SentPayment(
            to=to,
            amount=amount,
            fee=fee,
            net_amount=amount - fee,
            tx_hash=tx.hash,
            description=request.description,
        )
        return VyraResponse.ok(payment, tx_hash=tx.hash)

    @enveloped(OperationCode.GAS_ESTIMATE_FAILED)
    async def estimate_gas_for_payment(self, request: PaymentRequest) -> GasEstimate:
        """Estimate gas for a transfer and its VYR cost via the paymaster rate."""
        to = normalize_address(request.to, "to")
        amount = parse_payment_amount(request.amount)
        sender = await self._authority.get_address()
        data = ContractFunction.parse(TRANSFER).encode_call([to, amount])

        try:
            gas_limit = await self._read(
                lambda: self._provider.estimate_gas(
                    {"from": sender, "to": self.config.token_address, "data": data}
                )
            )
        except (ContractRevert, RpcError) as exc:
            raise GasEstimateFailed(
                f"Gas estimation failed: {exc.message}", details=dict(exc.details)
            ) from exc

        fee_data = await self._read(self._provider.get_fee_data)
        vyr_cost = await self._required_vyr_amount(gas_limit)
        return GasEstimate(
            gas_limit=gas_limit,
            gas_price=fee_data.gas_price or 0,
            vyr_cost=to_decimal_string(vyr_cost),
            max_fee_per_gas=fee_data.max_fee_per_gas,
            max_priority_fee_per_gas=fee_data.max_priority_fee_per_gas,
        )

    @enveloped(OperationCode.MESSAGE_SIGN_FAILED)
    async def sign_message(self, message: str) -> str:
        """Sign human-readable text (``personal_sign``). Digest-like text is refused."""
        return await self._authority.sign_text(message)

    @enveloped(OperationCode.MESSAGE_VERIFY_FAILED)
    async def verify_message(self, message: str, signature: str) -> str:
        """Recover the address that signed ``message``."""
        return recover_text_signer(message, signature)

    async def watch_balance(
        self, callback: BalanceCallback, interval: Optional[float] = None
    ) -> BalanceWatcher:
        """Start polling the connected wallet's VYR balance.

        The watcher stops on ``stop()`` or when the wallet disconnects.
        """
        address = await self._authority.get_address()
        watcher = BalanceWatcher(
            address,
            lambda: self._token_balance(address),
            callback,
            interval if interval is not None else self._options.balance_poll_interval,
        )
        self._watchers.append(watcher)
        watcher.start()
        return watcher

    def stop_watchers(self) -> None:
        for watcher in self._watchers:
            watcher.stop()
        self._watchers.clear()

    def close(self) -> None:
        """Stop watchers and detach from the signing authority."""
        self.stop_watchers()
        self._authority.remove_disconnect_listener(self.stop_watchers)

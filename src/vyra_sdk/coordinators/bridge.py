"""L1/L2 bridge transfers.

Deposits: ``INITIATED -> AWAITING_SIGNATURES -> PROCESSED``.
Withdrawals: ``INITIATED -> SIGNATURES_COLLECTED -> PROCESSED``.

Validator signatures are assembled elsewhere; this layer only transports
them. Relayers may race to process the same transfer, so every processing
call first asks the contract whether the transfer is already processed and
short-circuits with ``ALREADY_PROCESSED`` instead of submitting again.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from eth_utils import is_hex, to_bytes, to_checksum_address, to_hex

from ..errors import ContractRevert, InvalidInput, OperationCode
from ..logging_utils import log_payload
from ..messages.hashing import generate_withdrawal_id, to_bytes32
from ..response import VyraResponse, enveloped
from ..rpc import TransactionReceipt
from ..utils import parse_payment_amount, to_decimal_string
from .base import Coordinator

logger = logging.getLogger(__name__)

DEPOSIT = "deposit(uint256) returns (bytes32)"
PROCESS_DEPOSIT = "processDeposit(bytes32,bytes[])"
INITIATE_WITHDRAWAL = "initiateWithdrawal(uint256,bytes32,bytes[]) returns (bytes32)"
PROCESSED_DEPOSITS = "processedDeposits(bytes32) returns (bool)"
PROCESSED_WITHDRAWALS = "processedWithdrawals(bytes32) returns (bool)"
GET_VALIDATORS = "getValidators() returns (address[])"
GET_BRIDGE_STATS = "getBridgeStats() returns (uint256,uint256,uint256,uint256)"


class TransferKind(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class TransferStatus(str, Enum):
    INITIATED = "initiated"
    AWAITING_SIGNATURES = "awaiting_signatures"
    SIGNATURES_COLLECTED = "signatures_collected"
    PROCESSED = "processed"
    ALREADY_PROCESSED = "already_processed"


@dataclass
class BridgeTransfer:
    """One bridge transfer as seen by this coordinator."""

    kind: TransferKind
    status: TransferStatus
    transfer_id: Optional[str] = None
    """bytes32 id; for fresh deposits the contract assigns it."""

    amount: Optional[int] = None
    counterparty_tx_hash: Optional[str] = None
    signatures: List[str] = field(default_factory=list)
    tx_hash: Optional[str] = None
    net_amount: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "kind": self.kind.value,
            "status": self.status.value,
            "transferId": self.transfer_id,
            "signatureCount": len(self.signatures),
        }
        if self.amount is not None:
            result["amount"] = to_decimal_string(self.amount)
        if self.net_amount is not None:
            result["netAmount"] = to_decimal_string(self.net_amount)
        if self.counterparty_tx_hash:
            result["counterpartyTxHash"] = self.counterparty_tx_hash
        if self.tx_hash:
            result["txHash"] = self.tx_hash
        return result


@dataclass
class BridgeStats:
    total_deposits: int
    total_withdrawals: int
    total_fees: int
    validator_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalDeposits": to_decimal_string(self.total_deposits),
            "totalWithdrawals": to_decimal_string(self.total_withdrawals),
            "totalFees": to_decimal_string(self.total_fees),
            "validatorCount": str(self.validator_count),
        }


def _check_signatures(signatures: Sequence[str]) -> List[bytes]:
    if isinstance(signatures, (str, bytes)) or not signatures:
        raise InvalidInput("At least one validator signature is required", field="signatures")
    decoded = []
    for signature in signatures:
        valid = isinstance(signature, str) and signature.startswith("0x") and is_hex(signature)
        if not valid or len(signature) <= 2:
            raise InvalidInput(f"Invalid signature: {signature!r}", field="signatures")
        decoded.append(to_bytes(hexstr=signature))
    return decoded


TransferKey = Tuple[TransferKind, str]


class BridgeCoordinator(Coordinator):
    """Deposits into and withdrawals out of the bridge contract.

    Processing calls are idempotent per transfer id. The contract's processed
    flag always decides. Locally, a per-id lock serializes concurrent callers
    and ``_pending`` remembers submissions whose receipt is not in yet, so a
    caller arriving while one is in flight does not submit a duplicate. A
    pending entry is dropped once its receipt is known, so a mined revert can
    be retried.
    """

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        # key -> [lock, number of callers using it]
        self._locks: Dict[TransferKey, List[Any]] = {}
        self._pending: Dict[TransferKey, str] = {}

    @asynccontextmanager
    async def _transfer_lock(self, key: TransferKey) -> AsyncIterator[None]:
        """Per-id lock, dropped again once no caller holds or awaits it."""
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    async def _pending_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        """Receipt of an earlier submission, or None while it is unmined."""
        return await self._read(lambda: self._provider.get_transaction_receipt(tx_hash))

    def _settle(self, transfer: BridgeTransfer) -> None:
        if transfer.transfer_id is None:
            return
        key = (transfer.kind, to_hex(to_bytes(hexstr=transfer.transfer_id)))
        if self._pending.get(key) == transfer.tx_hash:
            del self._pending[key]

    @enveloped(OperationCode.DEPOSIT_FAILED)
    async def deposit(self, amount: str) -> VyraResponse[BridgeTransfer]:
        """Lock VYR in the bridge for release on L2.

        Raises:
            InsufficientBalance: If the wallet holds less than ``amount`` VYR
        """
        value = parse_payment_amount(amount)

        self._require_connected()
        await self._chain_id()

        async with self._authority.hold() as handle:
            await self._require_balance(handle.address, value)
            tx = await self._submit(handle, self.config.bridge_address, DEPOSIT, [value])

        logger.info("Bridge deposit of %s VYR submitted: %s", to_decimal_string(value), tx.hash)
        transfer = BridgeTransfer(
            kind=TransferKind.DEPOSIT,
            status=TransferStatus.AWAITING_SIGNATURES,
            amount=value,
            tx_hash=tx.hash,
            net_amount=value - self._fees.bridge_fee(value),
        )
        return VyraResponse.ok(transfer, tx_hash=tx.hash)

    async def _process(
        self,
        kind: TransferKind,
        transfer_id: bytes,
        encoded_signatures: List[bytes],
        processed_query: str,
        submit_signature: str,
        submit_args: List[Any],
        transfer: BridgeTransfer,
    ) -> VyraResponse[BridgeTransfer]:
        key = (kind, to_hex(transfer_id))
        async with self._transfer_lock(key):
            (processed,) = await self._call(self.config.bridge_address, processed_query, [transfer_id])
            if processed:
                logger.info("%s %s already processed on-chain, skipping", kind.value, key[1])
                self._pending.pop(key, None)
                transfer.status = TransferStatus.ALREADY_PROCESSED
                return VyraResponse.ok(transfer)

            previous = self._pending.get(key)
            if previous is not None:
                receipt = await self._pending_receipt(previous)
                if receipt is None or receipt.status:
                    logger.info("%s %s in flight (%s), skipping", kind.value, key[1], previous)
                    transfer.status = TransferStatus.ALREADY_PROCESSED
                    transfer.tx_hash = previous
                    return VyraResponse.ok(transfer)
                logger.warning("%s %s submission %s reverted, resubmitting", kind.value, key[1], previous)
                del self._pending[key]

            log_payload(
                logger,
                logging.DEBUG,
                f"Submitting {kind.value} {key[1]}",
                {"signatures": transfer.signatures},
            )
            async with self._authority.hold() as handle:
                tx = await self._submit(
                    handle,
                    self.config.bridge_address,
                    submit_signature,
                    submit_args + [encoded_signatures],
                )
            self._pending[key] = tx.hash

        logger.info("%s %s submitted: %s", kind.value, key[1], tx.hash)
        transfer.tx_hash = tx.hash
        return VyraResponse.ok(transfer, tx_hash=tx.hash)

    @enveloped(OperationCode.DEPOSIT_PROCESS_FAILED)
    async def process_deposit(
        self, deposit_id: str, signatures: Sequence[str]
    ) -> VyraResponse[BridgeTransfer]:
        """Relay validator signatures for a deposit, at most once.

        Returns:
            Transfer with status ``PROCESSED`` after submission, or
            ``ALREADY_PROCESSED`` (no ``tx_hash`` on the envelope) when the
            deposit was processed before
        """
        deposit_bytes = to_bytes32(deposit_id, "deposit_id")
        encoded = _check_signatures(signatures)
        self._require_connected()
        await self._chain_id()

        transfer = BridgeTransfer(
            kind=TransferKind.DEPOSIT,
            status=TransferStatus.PROCESSED,
            transfer_id=to_hex(deposit_bytes),
            signatures=list(signatures),
        )
        return await self._process(
            TransferKind.DEPOSIT,
            deposit_bytes,
            encoded,
            PROCESSED_DEPOSITS,
            PROCESS_DEPOSIT,
            [deposit_bytes],
            transfer,
        )

    @enveloped(OperationCode.WITHDRAWAL_FAILED)
    async def initiate_withdrawal(
        self, amount: str, counterparty_tx_hash: str, signatures: Sequence[str]
    ) -> VyraResponse[BridgeTransfer]:
        """Submit a withdrawal backed by validator signatures, at most once.

        The withdrawal id is ``generate_withdrawal_id(recipient, amount,
        counterparty_tx_hash, chain_id)`` with the connected wallet as
        recipient.

        Returns:
            Transfer with status ``SIGNATURES_COLLECTED`` after submission
            (``confirm_transfer`` moves it to ``PROCESSED``), or
            ``ALREADY_PROCESSED``
        """
        value = parse_payment_amount(amount)
        l2_tx_hash = to_bytes32(counterparty_tx_hash, "counterparty_tx_hash")
        encoded = _check_signatures(signatures)
        self._require_connected()
        chain_id = await self._chain_id()

        recipient = await self._authority.get_address()
        withdrawal_id = generate_withdrawal_id(recipient, value, l2_tx_hash, chain_id)
        transfer = BridgeTransfer(
            kind=TransferKind.WITHDRAWAL,
            status=TransferStatus.SIGNATURES_COLLECTED,
            transfer_id=withdrawal_id,
            amount=value,
            counterparty_tx_hash=to_hex(l2_tx_hash),
            signatures=list(signatures),
            net_amount=value - self._fees.bridge_fee(value),
        )
        return await self._process(
            TransferKind.WITHDRAWAL,
            to_bytes(hexstr=withdrawal_id),
            encoded,
            PROCESSED_WITHDRAWALS,
            INITIATE_WITHDRAWAL,
            [value, l2_tx_hash],
            transfer,
        )

    @enveloped(OperationCode.TRANSFER_CONFIRM_FAILED)
    async def confirm_transfer(self, transfer: BridgeTransfer) -> VyraResponse[BridgeTransfer]:
        """Wait for a submitted transfer's receipt and mark it ``PROCESSED``.

        Deposits awaiting validator signatures stay ``AWAITING_SIGNATURES``.
        Once the receipt is known, mined or reverted, the transfer is no
        longer treated as in flight.
        """
        if transfer.status is TransferStatus.ALREADY_PROCESSED:
            return VyraResponse.ok(transfer)
        if not transfer.tx_hash:
            raise InvalidInput("Transfer has not been submitted", field="tx_hash")

        try:
            await self._confirm(transfer.tx_hash)
        except ContractRevert:
            self._settle(transfer)
            raise
        self._settle(transfer)
        if transfer.status is not TransferStatus.AWAITING_SIGNATURES:
            transfer.status = TransferStatus.PROCESSED
        return VyraResponse.ok(transfer, tx_hash=transfer.tx_hash)

    @enveloped(OperationCode.DEPOSIT_STATUS_CHECK_FAILED)
    async def is_deposit_processed(self, deposit_id: str) -> bool:
        deposit_bytes = to_bytes32(deposit_id, "deposit_id")
        (processed,) = await self._call(self.config.bridge_address, PROCESSED_DEPOSITS, [deposit_bytes])
        return processed

    @enveloped(OperationCode.WITHDRAWAL_STATUS_CHECK_FAILED)
    async def is_withdrawal_processed(self, withdrawal_id: str) -> bool:
        withdrawal_bytes = to_bytes32(withdrawal_id, "withdrawal_id")
        (processed,) = await self._call(
            self.config.bridge_address, PROCESSED_WITHDRAWALS, [withdrawal_bytes]
        )
        return processed

    @enveloped(OperationCode.VALIDATORS_FETCH_FAILED)
    async def get_validators(self) -> List[str]:
        (validators,) = await self._call(self.config.bridge_address, GET_VALIDATORS)
        return [to_checksum_address(validator) for validator in validators]

    @enveloped(OperationCode.BRIDGE_STATS_FETCH_FAILED)
    async def get_bridge_stats(self) -> BridgeStats:
        deposits, withdrawals, fees, validators = await self._call(
            self.config.bridge_address, GET_BRIDGE_STATS
        )
        return BridgeStats(
            total_deposits=deposits,
            total_withdrawals=withdrawals,
            total_fees=fees,
            validator_count=validators,
        )

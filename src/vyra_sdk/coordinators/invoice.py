"""Merchant invoices and payments at the point of sale.

An invoice moves through ``DRAFT -> SIGNED -> SUBMITTED`` inside
``create_invoice``; ``confirm_invoice`` settles it as ``CONFIRMED`` or
``FAILED`` once the receipt is observed.

Invoice, payment and split-payment authorizations use different field
tuples and different nonce scopes, so a signature produced for one can
never be replayed as another.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from eth_utils import to_bytes, to_checksum_address, to_hex

from ..config import INVOICE_EXPIRY
from ..errors import InvalidInput, NotFound, OperationCode
from ..fees import FeeBreakdown, ensure_valid_split, split_minor_units
from ..messages.hashing import (
    description_digest,
    generate_invoice_id,
    payment_digest,
    payment_message_digest,
    split_payment_digest,
    to_bytes32,
)
from ..messages.signing import recover_text_signer
from ..messages.types import InvoiceRequest, Metadata, PaymentMessage, SplitPaymentRequest
from ..response import VyraResponse, enveloped
from ..utils import ZERO_ADDRESS, normalize_address, normalize_amount, parse_payment_amount, to_decimal_string
from .base import Coordinator

logger = logging.getLogger(__name__)

CREATE_INVOICE = "createInvoice(uint256,string,uint256,bytes) returns (bytes32)"
PROCESS_PAYMENT = "processPayment(bytes32,address,bytes) returns (bytes32)"
PROCESS_SPLIT_PAYMENT = (
    "processSplitPayment(address[],uint256[],uint256,address,bytes) returns (bytes32)"
)
GET_MERCHANT_STATS = "getMerchantStats(address) returns (uint256,uint256)"
PAYMENTS = "payments(bytes32) returns (address,address,uint256,uint256,uint256,uint256,bool,bytes32)"

QR_TYPE_INVOICE = "invoice"


class InvoiceState(str, Enum):
    DRAFT = "draft"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class SignedInvoice:
    """An invoice authorization and its lifecycle state."""

    invoice_id: str
    """Content-derived identifier (``generate_invoice_id``)."""

    merchant: str
    amount: int
    description: str
    expiry: int
    nonce: int
    chain_id: int
    digest: str
    created_at: int
    fees: FeeBreakdown
    state: InvoiceState = InvoiceState.DRAFT
    signature: Optional[str] = None
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    metadata: Optional[Metadata] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "invoiceId": self.invoice_id,
            "merchant": self.merchant,
            "amount": to_decimal_string(self.amount),
            "description": self.description,
            "expiry": self.expiry,
            "nonce": self.nonce,
            "chainId": self.chain_id,
            "digest": self.digest,
            "signature": self.signature,
            "state": self.state.value,
            "fees": self.fees.to_dict(),
        }
        if self.tx_hash:
            result["txHash"] = self.tx_hash
        if self.block_number is not None:
            result["blockNumber"] = self.block_number
        if self.metadata is not None:
            result["metadata"] = self.metadata.to_dict()
        return result


@dataclass
class SubmittedPayment:
    invoice_id: str
    customer: str
    amount: int
    nonce: int
    signature: str
    fees: FeeBreakdown
    tx_hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "invoiceId": self.invoice_id,
            "customer": self.customer,
            "amount": to_decimal_string(self.amount),
            "nonce": self.nonce,
            "signature": self.signature,
            "fees": self.fees.to_dict(),
            "txHash": self.tx_hash,
        }


@dataclass
class SplitPaymentResult:
    """A submitted split payment.

    ``remainder`` is what flooring each share left unallocated; it is
    reported, never redistributed.
    """

    customer: str
    recipients: List[str]
    percentages: List[int]
    total_amount: int
    shares: List[int]
    remainder: int
    nonce: int
    signature: str
    tx_hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customer": self.customer,
            "recipients": list(self.recipients),
            "percentages": list(self.percentages),
            "totalAmount": to_decimal_string(self.total_amount),
            "shares": [to_decimal_string(share) for share in self.shares],
            "remainder": to_decimal_string(self.remainder),
            "nonce": self.nonce,
            "signature": self.signature,
            "txHash": self.tx_hash,
        }


@dataclass
class MerchantStats:
    merchant: str
    total_earnings: int
    total_transactions: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "merchant": self.merchant,
            "totalEarnings": to_decimal_string(self.total_earnings),
            "totalTransactions": self.total_transactions,
        }


@dataclass
class PaymentReceipt:
    """On-chain record of a processed payment."""

    payment_id: str
    invoice_id: str
    customer: str
    merchant: str
    amount: int
    fee: int
    timestamp: int
    refunded: bool

    @property
    def status(self) -> str:
        return "refunded" if self.refunded else "confirmed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "paymentId": self.payment_id,
            "invoiceId": self.invoice_id,
            "from": self.customer,
            "to": self.merchant,
            "amount": to_decimal_string(self.amount),
            "fee": to_decimal_string(self.fee),
            "timestamp": self.timestamp,
            "status": self.status,
        }


@dataclass
class QRCodeData:
    """Signed invoice payload for rendering as a QR code."""

    invoice_id: str
    amount: str
    signer: str
    signature: str
    description: Optional[str] = None
    type: str = QR_TYPE_INVOICE

    def payload(self) -> Dict[str, Any]:
        """The signed part of the QR code."""
        data: Dict[str, Any] = {"invoiceId": self.invoice_id, "amount": self.amount}
        if self.description is not None:
            data["description"] = self.description
        return {"type": self.type, "data": data, "signer": self.signer}

    def signed_text(self) -> str:
        return json.dumps(self.payload(), sort_keys=True, separators=(",", ":"))

    def encode(self) -> str:
        """Text to render in the QR code."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    def to_dict(self) -> Dict[str, Any]:
        result = self.payload()
        result["signature"] = self.signature
        return result


def parse_qr_data(text: str) -> QRCodeData:
    """Decode and verify a QR payload produced by ``generate_qr_code_data``.

    Raises:
        InvalidInput: If the payload is malformed or the signature does not
            belong to the embedded signer
    """
    try:
        raw = json.loads(text)
        data = raw["data"]
        qr = QRCodeData(
            type=raw["type"],
            invoice_id=data["invoiceId"],
            amount=data["amount"],
            description=data.get("description"),
            signer=raw["signer"],
            signature=raw["signature"],
        )
    except (ValueError, KeyError, TypeError) as exc:
        raise InvalidInput(f"Malformed QR payload: {exc}", field="qr") from exc

    if qr.type != QR_TYPE_INVOICE:
        raise InvalidInput(f"Unsupported QR payload type: {qr.type}", field="qr")
    to_bytes32(qr.invoice_id, "invoice_id")
    normalize_amount(qr.amount)
    signer = normalize_address(qr.signer, "signer")

    try:
        recovered = recover_text_signer(qr.signed_text(), qr.signature)
    except Exception as exc:
        raise InvalidInput(f"Invalid QR signature: {exc}", field="signature") from exc
    if recovered != signer:
        raise InvalidInput("QR signature does not match its signer", field="signature")
    return qr


class InvoiceCoordinator(Coordinator):
    """Invoice creation and payment processing against the POS contract.

    Example:
        ```python
        merchant = sdk.merchant
        response = await merchant.create_invoice(
            InvoiceRequest(amount="12.5", description="Coffee beans")
        )
        if response.success:
            confirmed = await merchant.confirm_invoice(response.data)
        ```
    """

    @enveloped(OperationCode.INVOICE_CREATE_FAILED)
    async def create_invoice(self, request: InvoiceRequest) -> VyraResponse[SignedInvoice]:
        """Sign an invoice authorization and submit it.

        Args:
            request: Amount, description, optional expiry and metadata

        Returns:
            ``SignedInvoice`` in state ``SUBMITTED``; ``tx_hash`` is set on the
            envelope. Submission is not retried.
        """
        amount = parse_payment_amount(request.amount)
        if not isinstance(request.description, str) or not request.description.strip():
            raise InvalidInput("Invoice description is required", field="description")
        if request.metadata is not None and not isinstance(request.metadata, Metadata):
            raise InvalidInput("metadata must be a Metadata instance", field="metadata")

        now = self._now()
        expiry = request.expiry if request.expiry is not None else now + INVOICE_EXPIRY
        if isinstance(expiry, bool) or not isinstance(expiry, int):
            raise InvalidInput(f"Invalid expiry: {expiry!r}", field="expiry")
        if expiry <= now:
            raise InvalidInput("Invoice expiry is in the past", field="expiry")

        self._require_connected()
        chain_id = await self._chain_id()

        async with self._authority.hold() as handle:
            merchant = handle.address
            nonce = await self._nonces.next_nonce(merchant, f"{chain_id}:invoice")
            message = PaymentMessage(
                signer=merchant,
                amount=amount,
                description_digest=description_digest(request.description),
                expiry=expiry,
                nonce=nonce,
                chain_id=chain_id,
            )
            invoice = SignedInvoice(
                invoice_id=generate_invoice_id(merchant, amount, request.description, now),
                merchant=merchant,
                amount=amount,
                description=request.description,
                expiry=expiry,
                nonce=nonce,
                chain_id=chain_id,
                digest=to_hex(payment_message_digest(message)),
                created_at=now,
                fees=self._fees.merchant_breakdown(amount),
                metadata=request.metadata,
            )

            invoice.signature = await handle.sign_digest(invoice.digest, self.config.pos_address)
            invoice.state = InvoiceState.SIGNED

            tx = await self._submit(
                handle,
                self.config.pos_address,
                CREATE_INVOICE,
                [amount, request.description, expiry, to_bytes(hexstr=invoice.signature)],
            )

        invoice.state = InvoiceState.SUBMITTED
        invoice.tx_hash = tx.hash
        logger.info("Invoice %s submitted by %s: %s", invoice.invoice_id, merchant, tx.hash)
        return VyraResponse.ok(invoice, tx_hash=tx.hash)

    @enveloped(OperationCode.INVOICE_CONFIRM_FAILED)
    async def confirm_invoice(self, invoice: SignedInvoice) -> VyraResponse[SignedInvoice]:
        """Wait for the invoice receipt and settle its state."""
        if invoice.tx_hash is None or invoice.state is InvoiceState.DRAFT:
            raise InvalidInput("Invoice has not been submitted", field="tx_hash")

        receipt = await self._wait_for_receipt(invoice.tx_hash)
        invoice.block_number = receipt.block_number
        invoice.state = InvoiceState.CONFIRMED if receipt.status else InvoiceState.FAILED
        logger.info("Invoice %s %s in block %d", invoice.invoice_id, invoice.state.value, receipt.block_number)
        return VyraResponse.ok(invoice, tx_hash=invoice.tx_hash)

    @enveloped(OperationCode.PAYMENT_PROCESS_FAILED)
    async def process_payment(
        self, invoice_id: str, customer: str, amount: str
    ) -> VyraResponse[SubmittedPayment]:
        """Authorize and submit payment of an invoice on behalf of ``customer``.

        Args:
            invoice_id: bytes32 invoice identifier
            customer: Paying address
            amount: Decimal VYR amount bound into the authorization
        """
        invoice_bytes = to_bytes32(invoice_id, "invoice_id")
        customer = normalize_address(customer, "customer")
        value = parse_payment_amount(amount)

        self._require_connected()
        chain_id = await self._chain_id()

        async with self._authority.hold() as handle:
            nonce = await self._nonces.next_nonce(handle.address, f"{chain_id}:payment")
            digest = payment_digest(customer, invoice_bytes, value, nonce, chain_id)
            signature = await handle.sign_digest(digest, self.config.pos_address)
            tx = await self._submit(
                handle,
                self.config.pos_address,
                PROCESS_PAYMENT,
                [invoice_bytes, customer, to_bytes(hexstr=signature)],
            )

        logger.info("Payment for invoice %s submitted: %s", to_hex(invoice_bytes), tx.hash)
        payment = SubmittedPayment(
            invoice_id=to_hex(invoice_bytes),
            customer=customer,
            amount=value,
            nonce=nonce,
            signature=signature,
            fees=self._fees.merchant_breakdown(value),
            tx_hash=tx.hash,
        )
        return VyraResponse.ok(payment, tx_hash=tx.hash)

    @enveloped(OperationCode.SPLIT_PAYMENT_FAILED)
    async def process_split_payment(
        self, request: SplitPaymentRequest, customer: str
    ) -> VyraResponse[SplitPaymentResult]:
        """Authorize and submit a payment divided among recipients.

        The split is validated before any nonce, signature or network call.
        """
        ensure_valid_split(request.percentages)
        if len(request.recipients) != len(request.percentages):
            raise InvalidInput(
                f"Got {len(request.recipients)} recipients for {len(request.percentages)} percentages",
                field="recipients",
            )
        recipients = [normalize_address(recipient, "recipients") for recipient in request.recipients]
        customer = normalize_address(customer, "customer")
        total = parse_payment_amount(request.total_amount, field="total_amount")
        shares = split_minor_units(total, request.percentages)

        self._require_connected()
        chain_id = await self._chain_id()

        async with self._authority.hold() as handle:
            nonce = await self._nonces.next_nonce(handle.address, f"{chain_id}:split")
            digest = split_payment_digest(
                customer, recipients, request.percentages, total, nonce, chain_id
            )
            signature = await handle.sign_digest(digest, self.config.pos_address)
            tx = await self._submit(
                handle,
                self.config.pos_address,
                PROCESS_SPLIT_PAYMENT,
                [recipients, list(request.percentages), total, customer, to_bytes(hexstr=signature)],
            )

        logger.info("Split payment across %d recipients submitted: %s", len(recipients), tx.hash)
        result = SplitPaymentResult(
            customer=customer,
            recipients=recipients,
            percentages=list(request.percentages),
            total_amount=total,
            shares=shares,
            remainder=total - sum(shares),
            nonce=nonce,
            signature=signature,
            tx_hash=tx.hash,
        )
        return VyraResponse.ok(result, tx_hash=tx.hash)

    @enveloped(OperationCode.MERCHANT_STATS_FETCH_FAILED)
    async def get_merchant_stats(self) -> MerchantStats:
        merchant = await self._authority.get_address()
        earnings, count = await self._call(self.config.pos_address, GET_MERCHANT_STATS, [merchant])
        return MerchantStats(merchant=merchant, total_earnings=earnings, total_transactions=count)

    @enveloped(OperationCode.PAYMENT_RECEIPT_VALIDATE_FAILED)
    async def validate_payment_receipt(self, payment_id: str) -> PaymentReceipt:
        """Look up a processed payment on-chain.

        Raises:
            NotFound: If the contract has no record of ``payment_id``
        """
        payment_bytes = to_bytes32(payment_id, "payment_id")
        (
            customer,
            merchant,
            amount,
            merchant_fee,
            platform_fee,
            timestamp,
            refunded,
            invoice_id,
        ) = await self._call(self.config.pos_address, PAYMENTS, [payment_bytes])

        if int(customer, 16) == int(ZERO_ADDRESS, 16):
            raise NotFound("Payment", to_hex(payment_bytes))

        return PaymentReceipt(
            payment_id=to_hex(payment_bytes),
            invoice_id=to_hex(invoice_id),
            customer=to_checksum_address(customer),
            merchant=to_checksum_address(merchant),
            amount=amount,
            fee=merchant_fee + platform_fee,
            timestamp=timestamp,
            refunded=refunded,
        )

    @enveloped(OperationCode.QR_CODE_GENERATE_FAILED)
    async def generate_qr_code_data(
        self, invoice_id: str, amount: str, description: Optional[str] = None
    ) -> QRCodeData:
        """Build a signed QR payload for an invoice.

        The payload is signed as text by the connected merchant, so a scanner
        can check it with ``parse_qr_data``.
        """
        invoice_hex = to_hex(to_bytes32(invoice_id, "invoice_id"))
        amount = normalize_amount(amount)

        async with self._authority.hold() as handle:
            qr = QRCodeData(
                invoice_id=invoice_hex,
                amount=amount,
                description=description,
                signer=handle.address,
                signature="",
            )
            qr.signature = await handle.sign_text(qr.signed_text())
        return qr

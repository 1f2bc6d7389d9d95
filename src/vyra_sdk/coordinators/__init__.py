"""Coordinators for invoices, gas sponsorship, bridging and wallets."""

from .base import Coordinator, with_timeout
from .bridge import BridgeCoordinator, BridgeStats, BridgeTransfer, TransferKind, TransferStatus
from .invoice import (
    InvoiceCoordinator,
    InvoiceState,
    MerchantStats,
    PaymentReceipt,
    QRCodeData,
    SignedInvoice,
    SplitPaymentResult,
    SubmittedPayment,
    parse_qr_data,
)
from .paymaster import PaymasterCoordinator, PaymasterStats, SessionKeyGrant
from .wallet import BalanceWatcher, SentPayment, TransactionOptions, WalletCoordinator, WalletInfo

__all__ = [
    "Coordinator",
    "with_timeout",
    # Invoices
    "InvoiceCoordinator",
    "InvoiceState",
    "MerchantStats",
    "PaymentReceipt",
    "QRCodeData",
    "SignedInvoice",
    "SplitPaymentResult",
    "SubmittedPayment",
    "parse_qr_data",
    # Paymaster
    "PaymasterCoordinator",
    "PaymasterStats",
    "SessionKeyGrant",
    # Bridge
    "BridgeCoordinator",
    "BridgeStats",
    "BridgeTransfer",
    "TransferKind",
    "TransferStatus",
    # Wallet
    "BalanceWatcher",
    "SentPayment",
    "TransactionOptions",
    "WalletCoordinator",
    "WalletInfo",
]

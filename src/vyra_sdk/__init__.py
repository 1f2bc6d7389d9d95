"""Vyra SDK.

Off-chain authorization and settlement coordination for VYR payments:

- Canonical, replay-resistant digests for invoices and payments
- Deterministic fee and split-payment arithmetic
- Gas sponsorship and session keys via the paymaster
- Idempotent bridge deposit and withdrawal processing

Every public coordinator operation returns a ``VyraResponse`` envelope
instead of raising.
"""

from .client import SDK_VERSION, VyraSDK
from .config import NETWORKS, NetworkInfo, ResolvedOptions, VyraConfig, VyraOptions, get_network, load_config
from .coordinators import (
    BalanceWatcher,
    BridgeCoordinator,
    BridgeTransfer,
    InvoiceCoordinator,
    InvoiceState,
    PaymasterCoordinator,
    SessionKeyGrant,
    SignedInvoice,
    TransactionOptions,
    TransferKind,
    TransferStatus,
    WalletCoordinator,
    parse_qr_data,
)
from .errors import (
    ContractRevert,
    ErrorCode,
    GasEstimateFailed,
    InsufficientBalance,
    InvalidAddress,
    InvalidAmount,
    InvalidInput,
    InvalidSplit,
    NetworkMismatch,
    NetworkTransient,
    NotConnected,
    NotFound,
    OperationCode,
    RpcError,
    VyraError,
)
from .fees import (
    FeeBreakdown,
    FeeEngine,
    FeeStructure,
    calculate_fee,
    calculate_net_amount,
    ensure_valid_split,
    split_amounts,
    split_remainder,
    validate_split,
)
from .logging_utils import configure_logging
from .messages import (
    GasEstimate,
    InvoiceRequest,
    LocalSigner,
    MessageSigner,
    Metadata,
    PaymentMessage,
    PaymentRequest,
    SessionKey,
    SigningAuthority,
    SplitPaymentRequest,
)
from .nonces import InMemoryNonceSource, NonceSource
from .response import ErrorInfo, VyraResponse
from .retry import RETRYABLE_CODES, RetryPolicy, is_retryable, retry
from .rpc import ContractClient, JsonRpcProvider
from .utils import (
    format_vyr,
    is_valid_address,
    is_valid_amount,
    normalize_amount,
    to_decimal_string,
    to_minor_units,
)

__version__ = SDK_VERSION

__all__ = [
    # SDK
    "VyraSDK",
    "VyraConfig",
    "VyraOptions",
    "ResolvedOptions",
    "NetworkInfo",
    "NETWORKS",
    "get_network",
    "load_config",
    "configure_logging",
    # Coordinators
    "WalletCoordinator",
    "InvoiceCoordinator",
    "PaymasterCoordinator",
    "BridgeCoordinator",
    "BalanceWatcher",
    "BridgeTransfer",
    "InvoiceState",
    "SessionKeyGrant",
    "SignedInvoice",
    "TransactionOptions",
    "TransferKind",
    "TransferStatus",
    "parse_qr_data",
    # Messages and signing
    "GasEstimate",
    "InvoiceRequest",
    "LocalSigner",
    "MessageSigner",
    "Metadata",
    "PaymentMessage",
    "PaymentRequest",
    "SessionKey",
    "SigningAuthority",
    "SplitPaymentRequest",
    "NonceSource",
    "InMemoryNonceSource",
    # Fees
    "FeeBreakdown",
    "FeeEngine",
    "FeeStructure",
    "calculate_fee",
    "calculate_net_amount",
    "ensure_valid_split",
    "split_amounts",
    "split_remainder",
    "validate_split",
    # Amounts
    "format_vyr",
    "is_valid_address",
    "is_valid_amount",
    "normalize_amount",
    "to_decimal_string",
    "to_minor_units",
    # Responses and errors
    "VyraResponse",
    "ErrorInfo",
    "ErrorCode",
    "OperationCode",
    "VyraError",
    "InvalidInput",
    "InvalidAmount",
    "InvalidAddress",
    "InvalidSplit",
    "NotConnected",
    "InsufficientBalance",
    "NetworkTransient",
    "NetworkMismatch",
    "RpcError",
    "ContractRevert",
    "GasEstimateFailed",
    "NotFound",
    # Retry
    "RETRYABLE_CODES",
    "RetryPolicy",
    "is_retryable",
    "retry",
    # Network
    "ContractClient",
    "JsonRpcProvider",
]

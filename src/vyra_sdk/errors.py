"""Error taxonomy for the Vyra SDK.

Every failure raised inside the SDK is a ``VyraError`` subclass carrying a
stable machine-readable ``code``. Coordinators never let these escape: the
``enveloped`` decorator in ``vyra_sdk.response`` turns them into
``VyraResponse`` failures.
"""

from typing import Any, Dict, Optional


class ErrorCode:
    """Classified error codes. Values are part of the wire contract."""

    INVALID_INPUT = "INVALID_INPUT"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    INVALID_SPLIT = "INVALID_SPLIT"
    WALLET_NOT_CONNECTED = "WALLET_NOT_CONNECTED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    NETWORK_MISMATCH = "NETWORK_MISMATCH"
    RPC_ERROR = "RPC_ERROR"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    GAS_ESTIMATE_FAILED = "GAS_ESTIMATE_FAILED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    NOT_FOUND = "NOT_FOUND"


class OperationCode:
    """Per-operation failure codes used when no finer classification applies."""

    INVOICE_CREATE_FAILED = "INVOICE_CREATE_FAILED"
    INVOICE_CONFIRM_FAILED = "INVOICE_CONFIRM_FAILED"
    PAYMENT_PROCESS_FAILED = "PAYMENT_PROCESS_FAILED"
    SPLIT_PAYMENT_FAILED = "SPLIT_PAYMENT_FAILED"
    MERCHANT_STATS_FETCH_FAILED = "MERCHANT_STATS_FETCH_FAILED"
    PAYMENT_RECEIPT_VALIDATE_FAILED = "PAYMENT_RECEIPT_VALIDATE_FAILED"
    QR_CODE_GENERATE_FAILED = "QR_CODE_GENERATE_FAILED"

    SESSION_KEY_CREATE_FAILED = "SESSION_KEY_CREATE_FAILED"
    SESSION_KEY_CONFIRM_FAILED = "SESSION_KEY_CONFIRM_FAILED"
    SESSION_KEY_REVOKE_FAILED = "SESSION_KEY_REVOKE_FAILED"
    SESSION_KEY_FETCH_FAILED = "SESSION_KEY_FETCH_FAILED"
    SESSION_KEY_VALIDATE_FAILED = "SESSION_KEY_VALIDATE_FAILED"
    SESSION_OPERATION_SIGN_FAILED = "SESSION_OPERATION_SIGN_FAILED"
    SPONSOR_BALANCE_ADD_FAILED = "SPONSOR_BALANCE_ADD_FAILED"
    SPONSOR_BALANCE_CHECK_FAILED = "SPONSOR_BALANCE_CHECK_FAILED"
    VYR_AMOUNT_CALCULATE_FAILED = "VYR_AMOUNT_CALCULATE_FAILED"
    GAS_ESTIMATE_FAILED = "GAS_ESTIMATE_FAILED"
    PAYMASTER_STATS_FETCH_FAILED = "PAYMASTER_STATS_FETCH_FAILED"

    DEPOSIT_FAILED = "DEPOSIT_FAILED"
    DEPOSIT_PROCESS_FAILED = "DEPOSIT_PROCESS_FAILED"
    WITHDRAWAL_FAILED = "WITHDRAWAL_FAILED"
    DEPOSIT_STATUS_CHECK_FAILED = "DEPOSIT_STATUS_CHECK_FAILED"
    WITHDRAWAL_STATUS_CHECK_FAILED = "WITHDRAWAL_STATUS_CHECK_FAILED"
    VALIDATORS_FETCH_FAILED = "VALIDATORS_FETCH_FAILED"
    TRANSFER_CONFIRM_FAILED = "TRANSFER_CONFIRM_FAILED"
    BRIDGE_STATS_FETCH_FAILED = "BRIDGE_STATS_FETCH_FAILED"

    WALLET_INFO_FETCH_FAILED = "WALLET_INFO_FETCH_FAILED"
    BALANCE_FETCH_FAILED = "BALANCE_FETCH_FAILED"
    PAYMENT_SEND_FAILED = "PAYMENT_SEND_FAILED"
    MESSAGE_SIGN_FAILED = "MESSAGE_SIGN_FAILED"
    MESSAGE_VERIFY_FAILED = "MESSAGE_VERIFY_FAILED"

    NETWORK_SWITCH_FAILED = "NETWORK_SWITCH_FAILED"
    GAS_PRICE_FETCH_FAILED = "GAS_PRICE_FETCH_FAILED"
    BLOCK_NUMBER_FETCH_FAILED = "BLOCK_NUMBER_FETCH_FAILED"
    TRANSACTION_WAIT_FAILED = "TRANSACTION_WAIT_FAILED"


class VyraError(Exception):
    """Base exception for the Vyra SDK."""

    default_code = "VYRA_ERROR"

    # When True, the response envelope reports the operation code instead of
    # this error's own code and moves the latter to ``details["reason"]``.
    operation_scoped = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        tx_hash: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.tx_hash = tx_hash

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "txHash": self.tx_hash,
        }


class InvalidInput(VyraError):
    """Bad caller input. Never retried."""

    default_code = ErrorCode.INVALID_INPUT

    def __init__(self, message: str, field: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message, code=code, details={"field": field} if field else None)
        self.field = field


class InvalidAmount(InvalidInput):
    default_code = ErrorCode.INVALID_AMOUNT


class InvalidAddress(InvalidInput):
    default_code = ErrorCode.INVALID_ADDRESS


class InvalidSplit(InvalidInput):
    default_code = ErrorCode.INVALID_SPLIT


class NotConnected(VyraError):
    """No signing capability is connected."""

    default_code = ErrorCode.WALLET_NOT_CONNECTED

    def __init__(self, message: str = "Wallet not connected"):
        super().__init__(message)


class InsufficientBalance(VyraError):
    """Balance checked locally before submission is too low."""

    default_code = ErrorCode.INSUFFICIENT_BALANCE

    def __init__(self, message: str, required: str, available: str, currency: str = "VYR"):
        super().__init__(
            message,
            details={"required": required, "available": available, "currency": currency},
        )
        self.required = required
        self.available = available
        self.currency = currency


class NetworkTransient(VyraError):
    """Timeout, rate limit, or an unavailable node. Retryable."""

    default_code = ErrorCode.NETWORK_ERROR


class NetworkMismatch(VyraError):
    """Connected node reports a chain id different from the configuration."""

    default_code = ErrorCode.NETWORK_MISMATCH

    def __init__(self, expected: int, received: int):
        super().__init__(
            f"Chain id mismatch: expected {expected}, node reports {received}",
            details={"expected": expected, "received": received},
        )
        self.expected = expected
        self.received = received


class RpcError(VyraError):
    """Non-transient JSON-RPC failure."""

    default_code = ErrorCode.RPC_ERROR


class ContractRevert(VyraError):
    """The call reached the chain (or its simulation) and reverted.

    Never retried: resubmission risks duplicate side effects.
    """

    default_code = ErrorCode.TRANSACTION_FAILED
    operation_scoped = True

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        tx_hash: Optional[str] = None,
        data: Optional[str] = None,
    ):
        details: Dict[str, Any] = {}
        if reason:
            details["revertReason"] = reason
        if data:
            details["revertData"] = data
        super().__init__(message, details=details, tx_hash=tx_hash)
        self.reason = reason


class GasEstimateFailed(VyraError):
    default_code = ErrorCode.GAS_ESTIMATE_FAILED


class NotFound(VyraError):
    default_code = ErrorCode.NOT_FOUND

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            details={"resourceType": resource_type, "resourceId": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id

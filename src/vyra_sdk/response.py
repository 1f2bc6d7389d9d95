"""Uniform response envelope returned by every public SDK operation."""

import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from .errors import VyraError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ErrorInfo:
    """Machine-readable failure description."""

    code: str
    """Stable identifier, e.g. ``PAYMENT_SEND_FAILED`` or ``INSUFFICIENT_BALANCE``."""

    message: str
    """Human readable message."""

    details: Dict[str, Any] = field(default_factory=dict)
    """Optional structured context."""

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


@dataclass
class VyraResponse(Generic[T]):
    """``{success, data?, error?, txHash?}``.

    ``data`` is meaningful only when ``success`` is True and ``error`` only when
    it is False. ``tx_hash`` is set iff an on-chain submission happened, which
    includes submissions that later reverted.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[ErrorInfo] = None
    tx_hash: Optional[str] = None

    @classmethod
    def ok(cls, data: Optional[T] = None, tx_hash: Optional[str] = None) -> "VyraResponse[T]":
        return cls(success=True, data=data, tx_hash=tx_hash)

    @classmethod
    def fail(
        cls,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        tx_hash: Optional[str] = None,
    ) -> "VyraResponse[T]":
        return cls(
            success=False,
            error=ErrorInfo(code=code, message=message, details=details or {}),
            tx_hash=tx_hash,
        )

    @classmethod
    def from_exception(cls, exc: BaseException, operation_code: str) -> "VyraResponse[T]":
        """Classify an exception into a failure envelope.

        Classified errors keep their own code. Contract reverts and unexpected
        exceptions report the operation code.
        """
        if isinstance(exc, VyraError):
            details = dict(exc.details)
            details.setdefault("operation", operation_code)
            if exc.operation_scoped:
                details.setdefault("reason", exc.code)
                code = operation_code
            else:
                code = exc.code
            return cls.fail(code, exc.message, details, tx_hash=exc.tx_hash)

        return cls.fail(
            operation_code,
            str(exc) or type(exc).__name__,
            {"operation": operation_code, "exception": type(exc).__name__},
        )

    def unwrap(self) -> T:
        """Return ``data`` or raise a ``VyraError`` built from ``error``."""
        if self.success:
            return self.data  # type: ignore[return-value]
        assert self.error is not None
        raise VyraError(
            self.error.message,
            code=self.error.code,
            details=self.error.details,
            tx_hash=self.tx_hash,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire form, omitting absent keys."""
        result: Dict[str, Any] = {"success": self.success}
        if self.success and self.data is not None:
            data = self.data
            result["data"] = data.to_dict() if hasattr(data, "to_dict") else data
        if not self.success and self.error is not None:
            result["error"] = self.error.to_dict()
        if self.tx_hash:
            result["txHash"] = self.tx_hash
        return result


def enveloped(
    operation_code: str,
) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[VyraResponse[Any]]]]:
    """Decorate an async operation so that it always returns a ``VyraResponse``.

    A plain return value becomes ``VyraResponse.ok(value)``; a returned
    ``VyraResponse`` passes through. ``asyncio.CancelledError`` is not an
    ``Exception`` and still propagates.
    """

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[VyraResponse[Any]]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> VyraResponse[Any]:
            try:
                result = await func(*args, **kwargs)
            except VyraError as exc:
                logger.warning("%s: %s", operation_code, exc)
                return VyraResponse.from_exception(exc, operation_code)
            except Exception as exc:
                logger.exception("%s: unexpected failure", operation_code)
                return VyraResponse.from_exception(exc, operation_code)
            if isinstance(result, VyraResponse):
                return result
            return VyraResponse.ok(result)

        return wrapper

    return decorator

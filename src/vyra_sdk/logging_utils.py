"""Logging setup and redaction helpers.

SDK modules log through ``logging.getLogger(__name__)`` and never configure
handlers themselves. Applications (and the example scripts) call
``configure_logging`` once at startup.
"""

import logging
import os
from typing import Any, Optional, Union

_CONFIGURED = False

_SENSITIVE_EXACT_KEYS = {
    "private_key",
    "privatekey",
    "secret",
    "signature",
    "signatures",
    "mnemonic",
}
_SENSITIVE_SUFFIXES = ("_private_key", "_secret", "_signature", "_signatures")


def _resolve_level(level: Optional[Union[int, str]] = None) -> int:
    if isinstance(level, int):
        return level
    name = level or os.getenv("VYRA_LOG_LEVEL") or os.getenv("LOG_LEVEL")
    if name:
        return getattr(logging, name.upper(), logging.INFO)
    if os.getenv("DEBUG") == "1":
        return logging.DEBUG
    return logging.INFO


def configure_logging(level: Optional[Union[int, str]] = None) -> None:
    """Configure root logging once.

    Args:
        level: Explicit level; otherwise ``VYRA_LOG_LEVEL``, ``LOG_LEVEL`` or
            ``DEBUG=1`` decide, defaulting to INFO
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    logging.basicConfig(
        level=_resolve_level(level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    _CONFIGURED = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name or "vyra_sdk")


def _should_redact(key: str) -> bool:
    key_lower = key.lower()
    if key_lower in _SENSITIVE_EXACT_KEYS:
        return True
    return key_lower.endswith(_SENSITIVE_SUFFIXES)


def redact(value: Any, *, sensitive: bool = False) -> Any:
    """Mask signatures and keys inside a structured log payload."""
    if isinstance(value, dict):
        return {
            key: redact(item, sensitive=(sensitive or _should_redact(str(key))))
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [redact(item, sensitive=sensitive) for item in value]
    if isinstance(value, tuple):
        return tuple(redact(item, sensitive=sensitive) for item in value)
    if isinstance(value, str):
        return f"<redacted:{len(value)} chars>" if sensitive else value
    if isinstance(value, (bytes, bytearray)):
        return f"<redacted:bytes:{len(value)}>" if sensitive else f"<bytes:{len(value)}>"
    return value


def log_payload(logger: logging.Logger, level: int, message: str, data: Any) -> None:
    if logger.isEnabledFor(level):
        logger.log(level, "%s: %s", message, redact(data))

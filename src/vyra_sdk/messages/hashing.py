"""Canonical digests for Vyra payment messages.

Each digest is keccak256 over a packed, fixed-width encoding of typed fields,
in declared order:

- ``address``: 20 bytes
- ``uint256``: 32-byte big-endian
- ``bytes32``: 32 bytes
- ``string``: keccak256 of its UTF-8 bytes (32 bytes)
- ``address[]`` / ``uint256[]``: each element left-padded to 32 bytes

On-chain verifiers rebuild the same digest with ``abi.encodePacked``, so field
order and widths must change only together with the consuming contract.

Digests provide:
- Cross-chain replay protection (via chain_id)
- Same-signer replay protection (via the signer nonce)
- Cross-signer collision prevention (via the signer address)
"""

from typing import Any, Iterable, List, Sequence, Tuple

from eth_abi import encode
from eth_abi.packed import encode_packed
from eth_utils import is_hex, keccak, to_bytes

from ..errors import InvalidInput
from ..utils import MAX_UINT256, normalize_address
from .types import PaymentMessage

Field = Tuple[str, Any]

FIELD_TYPES = ("address", "uint256", "bytes32", "string", "address[]", "uint256[]")


def _check_uint(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"uint256 field must be an int, got {value!r}")
    if not 0 <= value <= MAX_UINT256:
        raise InvalidInput(f"uint256 field out of range: {value}")
    return value


def to_bytes32(value: Any, field: str = "value") -> bytes:
    """Coerce a 32-byte value given as bytes or 0x-prefixed hex."""
    if isinstance(value, str):
        if not (value.startswith("0x") and is_hex(value) and len(value) == 66):
            raise InvalidInput(f"Invalid {field}: expected 0x-prefixed bytes32 hex", field=field)
        value = to_bytes(hexstr=value)
    if not isinstance(value, (bytes, bytearray)) or len(value) != 32:
        raise InvalidInput(f"Invalid {field}: expected 32 bytes", field=field)
    return bytes(value)


def encode_field(field_type: str, value: Any) -> bytes:
    """Encode one field to its fixed-width packed form."""
    if field_type == "address":
        return encode_packed(["address"], [normalize_address(value)])
    if field_type == "uint256":
        return encode_packed(["uint256"], [_check_uint(value)])
    if field_type == "bytes32":
        return encode_packed(["bytes32"], [to_bytes32(value)])
    if field_type == "string":
        if not isinstance(value, str):
            raise InvalidInput(f"string field must be str, got {type(value).__name__}")
        return keccak(text=value)
    if field_type == "address[]":
        return b"".join(encode(["address"], [normalize_address(item)]) for item in value)
    if field_type == "uint256[]":
        return b"".join(encode(["uint256"], [_check_uint(item)]) for item in value)
    raise InvalidInput(f"Unsupported field type: {field_type}")


def hash_fields(fields: Iterable[Field]) -> bytes:
    """keccak256 over the packed encoding of ``fields`` in order."""
    return keccak(b"".join(encode_field(field_type, value) for field_type, value in fields))


def description_digest(description: str) -> bytes:
    return keccak(text=description)


def payment_message_digest(message: PaymentMessage) -> bytes:
    """Digest of the canonical invoice authorization tuple."""
    return hash_fields(message.fields())


def invoice_digest(
    merchant: str,
    amount: int,
    description: str,
    expiry: int,
    nonce: int,
    chain_id: int,
) -> bytes:
    """Digest a merchant signs to create an invoice.

    Types: address, uint256, bytes32, uint256, uint256, uint256
    """
    return payment_message_digest(
        PaymentMessage(
            signer=normalize_address(merchant, "merchant"),
            amount=amount,
            description_digest=description_digest(description),
            expiry=expiry,
            nonce=nonce,
            chain_id=chain_id,
        )
    )


def payment_digest(
    customer: str,
    invoice_id: Any,
    amount: int,
    nonce: int,
    chain_id: int,
) -> bytes:
    """Digest authorizing payment of an existing invoice.

    Types: address, bytes32, uint256, uint256, uint256
    """
    return hash_fields(
        [
            ("address", customer),
            ("bytes32", invoice_id),
            ("uint256", amount),
            ("uint256", nonce),
            ("uint256", chain_id),
        ]
    )


def split_payment_digest(
    customer: str,
    recipients: Sequence[str],
    percentages: Sequence[int],
    total_amount: int,
    nonce: int,
    chain_id: int,
) -> bytes:
    """Digest authorizing a split payment.

    Types: address, address[], uint256[], uint256, uint256, uint256
    """
    if len(recipients) != len(percentages):
        raise InvalidInput("recipients and percentages must have equal length", field="recipients")
    return hash_fields(
        [
            ("address", customer),
            ("address[]", list(recipients)),
            ("uint256[]", list(percentages)),
            ("uint256", total_amount),
            ("uint256", nonce),
            ("uint256", chain_id),
        ]
    )


def session_operation_digest(
    user: str,
    session_key: str,
    target: str,
    call_data: bytes,
    nonce: int,
    chain_id: int,
) -> bytes:
    """Digest a session key signs to authorize one sponsored call.

    Types: address, address, address, bytes32 (keccak of calldata), uint256, uint256
    """
    return hash_fields(
        [
            ("address", user),
            ("address", session_key),
            ("address", target),
            ("bytes32", keccak(bytes(call_data))),
            ("uint256", nonce),
            ("uint256", chain_id),
        ]
    )


def _hex(digest: bytes) -> str:
    return "0x" + digest.hex()


def generate_invoice_id(merchant: str, amount: int, description: str, timestamp: int) -> str:
    """Content-derived invoice identifier.

    Args:
        merchant: Merchant address
        amount: Amount in minor units
        description: Invoice description
        timestamp: Unix timestamp in seconds

    Returns:
        bytes32 hex string
    """
    return _hex(
        hash_fields(
            [
                ("address", merchant),
                ("uint256", amount),
                ("string", description),
                ("uint256", timestamp),
            ]
        )
    )


def verify_invoice_id(
    invoice_id: str, merchant: str, amount: int, description: str, timestamp: int
) -> bool:
    """Check that ``invoice_id`` was derived from the given content."""
    try:
        reconstructed = generate_invoice_id(merchant, amount, description, timestamp)
    except InvalidInput:
        return False
    return reconstructed.lower() == invoice_id.lower()


def generate_payment_id(invoice_id: Any, customer: str, amount: int, timestamp: int) -> str:
    """Content-derived payment identifier (bytes32 hex)."""
    return _hex(
        hash_fields(
            [
                ("bytes32", invoice_id),
                ("address", customer),
                ("uint256", amount),
                ("uint256", timestamp),
            ]
        )
    )


def generate_withdrawal_id(
    recipient: str, amount: int, counterparty_tx_hash: Any, chain_id: int
) -> str:
    """Content-derived withdrawal identifier used for idempotence checks.

    Types: bytes32 (L2 tx hash), address, uint256, uint256
    """
    return _hex(
        hash_fields(
            [
                ("bytes32", counterparty_tx_hash),
                ("address", recipient),
                ("uint256", amount),
                ("uint256", chain_id),
            ]
        )
    )


__all__: List[str] = [
    "FIELD_TYPES",
    "encode_field",
    "hash_fields",
    "to_bytes32",
    "description_digest",
    "payment_message_digest",
    "invoice_digest",
    "payment_digest",
    "split_payment_digest",
    "session_operation_digest",
    "generate_invoice_id",
    "verify_invoice_id",
    "generate_payment_id",
    "generate_withdrawal_id",
]

"""Message types for Vyra payment authorization.

User-facing request types and the canonical tuples whose digests get signed.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from eth_utils import keccak

from ..errors import InvalidInput

MetadataValue = Union[str, int, bool]

METADATA_VERSION = 1
METADATA_MAX_ENTRIES = 16
METADATA_MAX_VALUE_LENGTH = 256
_METADATA_KEY_RE = re.compile(r"^[A-Za-z0-9_.\-]{1,32}$")


@dataclass(frozen=True)
class Metadata:
    """Closed, versioned key-value annotations attached to a request.

    Keys match ``[A-Za-z0-9_.-]{1,32}``; values are ``str`` (at most 256
    characters), ``int`` or ``bool``; at most 16 entries.
    """

    entries: Dict[str, MetadataValue] = field(default_factory=dict)
    version: int = METADATA_VERSION

    def __post_init__(self) -> None:
        if self.version != METADATA_VERSION:
            raise InvalidInput(f"Unsupported metadata version: {self.version}", field="metadata")
        if len(self.entries) > METADATA_MAX_ENTRIES:
            raise InvalidInput(
                f"Metadata has {len(self.entries)} entries, maximum is {METADATA_MAX_ENTRIES}",
                field="metadata",
            )
        for key, value in self.entries.items():
            if not isinstance(key, str) or not _METADATA_KEY_RE.match(key):
                raise InvalidInput(f"Invalid metadata key: {key!r}", field="metadata")
            if isinstance(value, str):
                if len(value) > METADATA_MAX_VALUE_LENGTH:
                    raise InvalidInput(f"Metadata value too long for key {key!r}", field="metadata")
            elif not isinstance(value, (int, bool)):
                raise InvalidInput(
                    f"Metadata value for {key!r} must be str, int or bool, got {type(value).__name__}",
                    field="metadata",
                )

    def canonical_json(self) -> str:
        return json.dumps(
            {"version": self.version, "entries": self.entries},
            sort_keys=True,
            separators=(",", ":"),
        )

    def digest(self) -> bytes:
        """keccak256 of the canonical JSON form."""
        return keccak(text=self.canonical_json())

    def to_dict(self) -> Dict[str, Any]:
        return {"version": self.version, "entries": dict(self.entries)}


@dataclass
class InvoiceRequest:
    """Merchant-issued request for payment."""

    amount: str
    """Decimal VYR amount (e.g. "12.5")."""

    description: str
    """Non-empty description; its keccak256 is what gets signed."""

    expiry: Optional[int] = None
    """Unix timestamp in seconds. Defaults to one hour from creation."""

    metadata: Optional[Metadata] = None
    """Optional closed annotations, not part of the signed digest."""


@dataclass
class PaymentRequest:
    """Direct VYR transfer request."""

    to: str
    amount: str
    description: Optional[str] = None


@dataclass
class SplitPaymentRequest:
    """Payment divided among recipients by basis points."""

    recipients: List[str]
    """Recipient addresses, positionally paired with ``percentages``."""

    percentages: List[int]
    """Basis points per recipient; must sum to exactly 10000."""

    total_amount: str
    """Decimal VYR amount to split."""

    description: Optional[str] = None


@dataclass(frozen=True)
class PaymentMessage:
    """Canonical tuple whose digest authorizes an invoice."""

    signer: str
    """Checksummed address of the signer (the merchant)."""

    amount: int
    """Amount in minor units."""

    description_digest: bytes
    """keccak256 of the UTF-8 description."""

    expiry: int
    """Unix timestamp in seconds."""

    nonce: int
    """Signer nonce from the injected nonce source."""

    chain_id: int
    """Chain ID for cross-chain replay protection."""

    def fields(self) -> List[Tuple[str, Any]]:
        """Typed fields in signing order. The order is part of the verifier contract."""
        return [
            ("address", self.signer),
            ("uint256", self.amount),
            ("bytes32", self.description_digest),
            ("uint256", self.expiry),
            ("uint256", self.nonce),
            ("uint256", self.chain_id),
        ]


@dataclass
class SessionKey:
    """Delegated, time-boxed authorization for sponsored transactions.

    ``active`` mirrors the on-chain flag and is authoritative; ``expiry`` is
    advisory.
    """

    address: str
    nonce: int
    expiry: int
    active: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "nonce": self.nonce,
            "expiry": self.expiry,
            "active": self.active,
        }


@dataclass
class GasEstimate:
    """Gas estimate with its VYR-equivalent cost. Recomputed per request."""

    gas_limit: int
    gas_price: int
    vyr_cost: str
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "gasLimit": str(self.gas_limit),
            "gasPrice": str(self.gas_price),
            "vyrCost": self.vyr_cost,
        }
        if self.max_fee_per_gas is not None:
            result["maxFeePerGas"] = str(self.max_fee_per_gas)
        if self.max_priority_fee_per_gas is not None:
            result["maxPriorityFeePerGas"] = str(self.max_priority_fee_per_gas)
        return result

"""Amount and address utilities for the Vyra SDK.

VYR uses 18 decimals. Amounts travel through the SDK as ``int`` minor units
("wei") and are rendered as decimal strings only at the edges.
"""

import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from eth_utils import is_address, to_checksum_address

from .errors import InvalidAddress, InvalidAmount

VYR_DECIMALS = 18
VYR_SYMBOL = "VYR"
WEI_PER_VYR = 10**VYR_DECIMALS

# Largest value representable as a uint256 on-chain
MAX_UINT256 = 2**256 - 1

# Upper bound for a single user payment (1B VYR)
MAX_TRANSACTION_AMOUNT = 1_000_000_000 * WEI_PER_VYR

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

_DECIMAL_RE = re.compile(r"^(?P<whole>\d*)(?:\.(?P<frac>\d+))?$")


def to_minor_units(amount: str) -> int:
    """Parse a decimal VYR string into minor units.

    Args:
        amount: Plain decimal string (e.g. "1.5", "0.000000000000000001", ".5")

    Returns:
        Amount in 18-decimal minor units

    Raises:
        InvalidAmount: On non-numeric or negative input, more than 18 fractional
            digits, or a value that does not fit in a uint256
    """
    if not isinstance(amount, str):
        raise InvalidAmount(f"Amount must be a decimal string, got {type(amount).__name__}")

    text = amount.strip()
    match = _DECIMAL_RE.match(text)
    if not text or match is None or (not match.group("whole") and not match.group("frac")):
        raise InvalidAmount(f"Invalid amount: {amount!r}")

    whole = match.group("whole") or "0"
    frac = match.group("frac") or ""
    if len(frac) > VYR_DECIMALS:
        raise InvalidAmount(
            f"Invalid amount: {amount!r} has more than {VYR_DECIMALS} fractional digits"
        )

    value = int(whole) * WEI_PER_VYR + int(frac.ljust(VYR_DECIMALS, "0") or "0")
    if value > MAX_UINT256:
        raise InvalidAmount(f"Invalid amount: {amount!r} exceeds uint256")
    return value


def to_decimal_string(value: int) -> str:
    """Render minor units as a decimal VYR string.

    Always keeps at least one fractional digit, e.g. ``"50.0"``, ``"0.0001"``.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"Amount must be an integer of minor units, got {value!r}")
    if value < 0:
        raise InvalidAmount(f"Amount must be non-negative, got {value}")
    if value > MAX_UINT256:
        raise InvalidAmount("Amount exceeds uint256")

    whole, frac = divmod(value, WEI_PER_VYR)
    frac_text = str(frac).rjust(VYR_DECIMALS, "0").rstrip("0") or "0"
    return f"{whole}.{frac_text}"


def normalize_amount(amount: str) -> str:
    """Canonical decimal form of an amount string."""
    return to_decimal_string(to_minor_units(amount))


def format_vyr(value: Union[int, str], decimals: int = 4) -> str:
    """Format an amount for display, rounded to ``decimals`` places.

    Args:
        value: Minor units (int) or a decimal string

    Returns:
        Human readable string (e.g. "1.5000")
    """
    minor = to_minor_units(value) if isinstance(value, str) else value
    exact = Decimal(to_decimal_string(minor))
    return str(exact.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP))


def is_valid_amount(amount: str) -> bool:
    """Check that an amount is positive and at most 1B VYR."""
    try:
        value = to_minor_units(amount)
    except InvalidAmount:
        return False
    return 0 < value <= MAX_TRANSACTION_AMOUNT


def parse_payment_amount(amount: str, field: str = "amount") -> int:
    """Parse a user-supplied payment amount, enforcing ``is_valid_amount`` bounds."""
    value = to_minor_units(amount)
    if value <= 0:
        raise InvalidAmount(f"Amount must be greater than zero, got {amount!r}", field=field)
    if value > MAX_TRANSACTION_AMOUNT:
        raise InvalidAmount(f"Amount exceeds the 1B {VYR_SYMBOL} limit: {amount!r}", field=field)
    return value


def format_bps(bps: int) -> str:
    """Format basis points to percentage string.

    Args:
        bps: Basis points (e.g., 25 = 0.25%)

    Returns:
        Percentage string (e.g., "0.25%")
    """
    return f"{bps / 100}%"


def is_valid_address(address: str) -> bool:
    """Validate a hex address (length, character set and checksum casing)."""
    return isinstance(address, str) and is_address(address)


def normalize_address(address: str, field: str = "address") -> str:
    """Return the checksummed form of ``address``.

    Raises:
        InvalidAddress: If the address is malformed or fails its checksum
    """
    if not is_valid_address(address):
        raise InvalidAddress(f"Invalid {field}: {address}", field=field)
    return to_checksum_address(address)

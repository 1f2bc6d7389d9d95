"""Fee and split-payment arithmetic.

All math is integer floor division on minor units. Rounding remainders are
never redistributed: whatever a floor leaves behind stays with the payer or
the platform.
"""

from dataclasses import dataclass
from typing import List, Sequence

from .errors import InvalidInput, InvalidSplit
from .utils import to_decimal_string, to_minor_units

FEE_DENOMINATOR = 10000  # basis points in 100%

DEFAULT_TRANSFER_FEE = 10  # 0.1%
DEFAULT_MERCHANT_FEE = 25  # 0.25%
DEFAULT_PLATFORM_FEE = 5  # 0.05%
DEFAULT_BRIDGE_FEE = 10  # 0.1%


def _check_rate(rate_bps: int) -> int:
    if isinstance(rate_bps, bool) or not isinstance(rate_bps, int):
        raise InvalidInput(f"Fee rate must be integer basis points, got {rate_bps!r}", field="rate_bps")
    if not 0 <= rate_bps <= FEE_DENOMINATOR:
        raise InvalidInput(f"Fee rate out of range [0, {FEE_DENOMINATOR}]: {rate_bps}", field="rate_bps")
    return rate_bps


def calculate_fee(amount: int, rate_bps: int) -> int:
    """Calculate fee amount from an amount in minor units and basis points.

    Args:
        amount: Amount in minor units
        rate_bps: Fee in basis points (e.g., 10 = 0.1%)

    Returns:
        ``floor(amount * rate_bps / 10000)``
    """
    return (amount * _check_rate(rate_bps)) // FEE_DENOMINATOR


def calculate_net_amount(amount: int, rate_bps: int) -> int:
    """Amount left after deducting ``calculate_fee``."""
    return amount - calculate_fee(amount, rate_bps)


def fee(amount: str, rate_bps: int) -> str:
    """Decimal-string form of ``calculate_fee``: ``fee("1000", 10) == "1.0"``."""
    return to_decimal_string(calculate_fee(to_minor_units(amount), rate_bps))


def net(amount: str, rate_bps: int) -> str:
    """Decimal-string form of ``calculate_net_amount``: ``net("1000", 10) == "999.0"``."""
    return to_decimal_string(calculate_net_amount(to_minor_units(amount), rate_bps))


def validate_split(percentages: Sequence[int]) -> bool:
    """True iff every share is a non-negative integer and they sum to exactly 10000."""
    if not percentages:
        return False
    for share in percentages:
        if isinstance(share, bool) or not isinstance(share, int) or share < 0:
            return False
    return sum(percentages) == FEE_DENOMINATOR


def ensure_valid_split(percentages: Sequence[int]) -> None:
    """Raise ``InvalidSplit`` unless ``validate_split`` holds."""
    if not validate_split(percentages):
        raise InvalidSplit(
            f"Split percentages must be non-negative basis points summing to "
            f"{FEE_DENOMINATOR}, got {list(percentages)}",
            field="percentages",
        )


def split_minor_units(total: int, percentages: Sequence[int]) -> List[int]:
    """Floor each share of ``total``; the remainder is left unallocated."""
    return [(total * share) // FEE_DENOMINATOR for share in percentages]


def split_amounts(total_amount: str, percentages: Sequence[int]) -> List[str]:
    """Split a decimal amount into floored shares.

    ``split_amounts("100", [5000, 5000]) == ["50.0", "50.0"]``
    """
    total = to_minor_units(total_amount)
    return [to_decimal_string(share) for share in split_minor_units(total, percentages)]


def split_remainder(total_amount: str, percentages: Sequence[int]) -> str:
    """Minor units left over after flooring every share, as a decimal string."""
    total = to_minor_units(total_amount)
    return to_decimal_string(total - sum(split_minor_units(total, percentages)))


@dataclass(frozen=True)
class FeeStructure:
    """Fee rates in basis points."""

    transfer_fee: int = DEFAULT_TRANSFER_FEE
    merchant_fee: int = DEFAULT_MERCHANT_FEE
    platform_fee: int = DEFAULT_PLATFORM_FEE
    bridge_fee: int = DEFAULT_BRIDGE_FEE


@dataclass(frozen=True)
class FeeBreakdown:
    """Merchant-side fee split of a gross payment, all in minor units."""

    gross: int
    merchant_fee: int
    platform_fee: int
    net: int

    def to_dict(self) -> dict:
        return {
            "gross": to_decimal_string(self.gross),
            "merchantFee": to_decimal_string(self.merchant_fee),
            "platformFee": to_decimal_string(self.platform_fee),
            "net": to_decimal_string(self.net),
        }


class FeeEngine:
    """Applies a ``FeeStructure`` to amounts in minor units."""

    def __init__(self, structure: FeeStructure = FeeStructure()):
        for rate in (
            structure.transfer_fee,
            structure.merchant_fee,
            structure.platform_fee,
            structure.bridge_fee,
        ):
            _check_rate(rate)
        if structure.merchant_fee + structure.platform_fee > FEE_DENOMINATOR:
            raise InvalidInput("Merchant and platform fees together exceed 100%")
        self.structure = structure

    def transfer_fee(self, amount: int) -> int:
        return calculate_fee(amount, self.structure.transfer_fee)

    def merchant_fee(self, amount: int) -> int:
        return calculate_fee(amount, self.structure.merchant_fee)

    def platform_fee(self, amount: int) -> int:
        return calculate_fee(amount, self.structure.platform_fee)

    def bridge_fee(self, amount: int) -> int:
        return calculate_fee(amount, self.structure.bridge_fee)

    def merchant_breakdown(self, amount: int) -> FeeBreakdown:
        merchant = self.merchant_fee(amount)
        platform = self.platform_fee(amount)
        return FeeBreakdown(
            gross=amount,
            merchant_fee=merchant,
            platform_fee=platform,
            net=amount - merchant - platform,
        )

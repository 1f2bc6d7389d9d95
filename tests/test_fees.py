"""Tests for amount parsing and fee arithmetic."""

import pytest

from vyra_sdk.errors import InvalidAmount, InvalidInput, InvalidSplit
from vyra_sdk.fees import (
    FeeEngine,
    FeeStructure,
    calculate_fee,
    calculate_net_amount,
    ensure_valid_split,
    fee,
    net,
    split_amounts,
    split_remainder,
    validate_split,
)
from vyra_sdk.utils import (
    MAX_TRANSACTION_AMOUNT,
    format_bps,
    format_vyr,
    is_valid_address,
    is_valid_amount,
    normalize_address,
    normalize_amount,
    parse_payment_amount,
    to_decimal_string,
    to_minor_units,
)

ONE_VYR = 10**18


class TestAmounts:
    """Tests for decimal amount conversion."""

    def test_to_minor_units(self):
        """Test parsing decimal strings into 18-decimal minor units."""
        assert to_minor_units("1") == ONE_VYR
        assert to_minor_units("1.5") == 1_500_000_000_000_000_000
        assert to_minor_units(".5") == ONE_VYR // 2
        assert to_minor_units("0.000000000000000001") == 1

    def test_to_minor_units_rejects_bad_input(self):
        """Test that malformed, negative and over-precise amounts are refused."""
        for bad in ["", "abc", "-1", "1.2.3", "1e18", "0.0000000000000000001", "."]:
            with pytest.raises(InvalidAmount):
                to_minor_units(bad)

    def test_to_decimal_string(self):
        """Test rendering keeps at least one fractional digit."""
        assert to_decimal_string(50 * ONE_VYR) == "50.0"
        assert to_decimal_string(10**14) == "0.0001"
        assert to_decimal_string(0) == "0.0"
        assert to_decimal_string(1) == "0.000000000000000001"

    def test_to_decimal_string_rejects_negative(self):
        """Test that negative minor units are refused."""
        with pytest.raises(InvalidAmount):
            to_decimal_string(-1)

    def test_normalize_amount(self):
        """Test canonical decimal forms."""
        assert normalize_amount("001.50") == "1.5"
        assert normalize_amount("7") == "7.0"

    def test_format_vyr(self):
        """Test display rounding."""
        assert format_vyr("1.5") == "1.5000"
        assert format_vyr(123_456_789_000_000_000, decimals=2) == "0.12"

    def test_is_valid_amount_bounds(self):
        """Test the positive, at-most-1B rule."""
        assert is_valid_amount("0.000000000000000001")
        assert is_valid_amount("1000000000")
        assert not is_valid_amount("0")
        assert not is_valid_amount("1000000000.000000000000000001")
        assert not is_valid_amount("-5")
        assert not is_valid_amount("five")

    def test_parse_payment_amount(self):
        """Test that payment amounts outside the bounds raise with the field name."""
        assert parse_payment_amount("1000000000") == MAX_TRANSACTION_AMOUNT
        with pytest.raises(InvalidAmount) as exc_info:
            parse_payment_amount("0", field="total_amount")
        assert exc_info.value.field == "total_amount"

    def test_format_bps(self):
        """Test basis point formatting."""
        assert format_bps(25) == "0.25%"
        assert format_bps(10000) == "100.0%"


class TestAddresses:
    """Tests for address validation."""

    def test_is_valid_address(self):
        """Test lowercase and checksummed addresses pass and malformed ones fail."""
        assert is_valid_address("0x5fbdb2315678afecb367f032d93f642f64180aa3")
        assert is_valid_address("0x5FbDB2315678afecb367f032d93F642f64180aa3")
        assert not is_valid_address("0x5FbDB2315678afecb367f032d93F642f64180aa")
        assert not is_valid_address("not-an-address")

    def test_is_valid_address_rejects_bad_checksum(self):
        """Test that mixed case with a wrong checksum is refused."""
        assert not is_valid_address("0x5FBDB2315678afecb367f032d93F642f64180aa3")

    def test_normalize_address(self):
        """Test checksumming and the error field."""
        assert (
            normalize_address("0x5fbdb2315678afecb367f032d93f642f64180aa3")
            == "0x5FbDB2315678afecb367f032d93F642f64180aa3"
        )
        with pytest.raises(InvalidInput) as exc_info:
            normalize_address("0x123", "to")
        assert exc_info.value.field == "to"
        assert exc_info.value.code == "INVALID_ADDRESS"


class TestFees:
    """Tests for basis point fees."""

    def test_calculate_fee(self):
        """Test floor(amount * bps / 10000)."""
        assert calculate_fee(1000 * ONE_VYR, 10) == ONE_VYR
        assert calculate_fee(1000 * ONE_VYR, 25) == 2_500_000_000_000_000_000

    def test_fee_floors_small_amounts(self):
        """Test flooring around the 10000 boundary at 1 bps."""
        assert calculate_fee(9999, 1) == 0
        assert calculate_fee(10000, 1) == 1
        assert calculate_fee(10001, 1) == 1

    def test_decimal_fee_and_net(self):
        """Test the decimal-string helpers."""
        assert fee("1000", 10) == "1.0"
        assert net("1000", 10) == "999.0"

    def test_net_amount(self):
        """Test that net plus fee equals the amount."""
        amount = 123_456_789
        assert calculate_net_amount(amount, 25) + calculate_fee(amount, 25) == amount

    def test_rate_out_of_range(self):
        """Test that rates outside [0, 10000] are refused."""
        with pytest.raises(InvalidInput):
            calculate_fee(100, 10001)
        with pytest.raises(InvalidInput):
            calculate_fee(100, -1)

    def test_fee_engine_breakdown(self):
        """Test the merchant and platform split of a gross payment."""
        engine = FeeEngine(FeeStructure())
        breakdown = engine.merchant_breakdown(100 * ONE_VYR)

        assert breakdown.merchant_fee == 250_000_000_000_000_000
        assert breakdown.platform_fee == 50_000_000_000_000_000
        assert breakdown.net == 100 * ONE_VYR - breakdown.merchant_fee - breakdown.platform_fee
        assert breakdown.to_dict()["net"] == "99.7"

    def test_fee_engine_rejects_excessive_rates(self):
        """Test that merchant plus platform fees above 100% are refused."""
        with pytest.raises(InvalidInput):
            FeeEngine(FeeStructure(merchant_fee=6000, platform_fee=5000))


class TestSplits:
    """Tests for split payments."""

    def test_validate_split(self):
        """Test that shares must be non-negative integers summing to 10000."""
        assert validate_split([5000, 5000])
        assert validate_split([10000])
        assert validate_split([0, 10000])
        assert not validate_split([5000, 4999])
        assert not validate_split([])
        assert not validate_split([11000, -1000])
        assert not validate_split([5000.0, 5000])

    def test_ensure_valid_split(self):
        """Test the raising form."""
        with pytest.raises(InvalidSplit):
            ensure_valid_split([3000, 3000])

    def test_split_amounts(self):
        """Test even splits."""
        assert split_amounts("100", [5000, 5000]) == ["50.0", "50.0"]

    def test_split_remainder_is_not_redistributed(self):
        """Test that flooring leaves the remainder unallocated."""
        shares = split_amounts("0.000000000000000001", [3333, 3333, 3334])
        assert shares == ["0.0", "0.0", "0.0"]
        assert split_remainder("0.000000000000000001", [3333, 3333, 3334]) == "0.000000000000000001"

    def test_split_remainder_uneven(self):
        """Test shares plus remainder equal the total."""
        total = "0.00000000000000001"  # 10 minor units
        shares = [to_minor_units(share) for share in split_amounts(total, [3333, 3333, 3334])]
        remainder = to_minor_units(split_remainder(total, [3333, 3333, 3334]))
        assert shares == [3, 3, 3]
        assert sum(shares) + remainder == 10

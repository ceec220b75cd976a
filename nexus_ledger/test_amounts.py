"""
Amount codec: drops conversion, decimal parsing and currency codes.
"""
import pytest
from decimal import Decimal

from nexus_ledger.amounts import (
    drops_to_xrp,
    format_balance,
    format_decimal,
    parse_decimal,
    parse_positive,
    validate_account,
    validate_currency,
    xrp_to_drops,
)
from nexus_ledger.core import ValidationError


class TestDrops:
    """Native amounts convert to drops exactly."""

    def test_whole_units(self):
        assert xrp_to_drops("100") == "100000000"

    def test_fractional_units(self):
        assert xrp_to_drops("1.5") == "1500000"
        assert xrp_to_drops("0.000001") == "1"

    def test_float_input_goes_through_repr(self):
        assert xrp_to_drops(0.1) == "100000"

    def test_sub_drop_rounds_half_even(self):
        assert xrp_to_drops("0.0000005") == "0"
        assert xrp_to_drops("0.0000015") == "2"

    def test_negative_rejected(self):
        with pytest.raises(ValidationError):
            xrp_to_drops("-1")

    def test_drops_back_to_units(self):
        assert drops_to_xrp("100000000") == Decimal("100")
        assert drops_to_xrp("1") == Decimal("0.000001")

    def test_bad_drops_string(self):
        with pytest.raises(ValidationError):
            drops_to_xrp("1.5")
        with pytest.raises(ValidationError):
            drops_to_xrp("-10")


class TestDecimals:
    def test_commas_are_stripped(self):
        assert parse_decimal("10,000,000") == Decimal("10000000")

    @pytest.mark.parametrize("value", ["abc", "", "nan", "Infinity"])
    def test_rejects_non_numbers(self, value):
        with pytest.raises(ValidationError):
            parse_decimal(value)

    def test_positive(self):
        assert parse_positive("0.01") == Decimal("0.01")
        with pytest.raises(ValidationError):
            parse_positive("0")

    def test_format_decimal_has_no_exponent(self):
        assert format_decimal(Decimal("1E+6")) == "1000000"
        assert format_decimal(Decimal("0.500")) == "0.5"
        assert format_decimal(Decimal("1E-7")) == "0.0000001"

    def test_format_balance(self):
        assert format_balance(Decimal("0")) == "0.00"
        assert format_balance(Decimal("2500.5")) == "2500.50"

    def test_huge_values_keep_every_digit(self):
        huge = "1" + "0" * 30
        assert format_decimal(Decimal(huge)) == huge
        assert format_balance(Decimal(huge)) == huge + ".00"
        assert format_decimal(Decimal(huge + ".5")) == huge + ".5"
        assert xrp_to_drops(huge) == huge + "000000"
        assert drops_to_xrp(huge + "000000") == Decimal(huge)


class TestIdentifiers:
    @pytest.mark.parametrize("code", ["USD", "GOLD", "EUR"])
    def test_valid_codes(self, code):
        assert validate_currency(code) == code

    @pytest.mark.parametrize("code", ["usd", "US", "DOLLAR", "XRP", "U5D", None])
    def test_invalid_codes(self, code):
        with pytest.raises(ValidationError):
            validate_currency(code)

    def test_account_required(self):
        with pytest.raises(ValidationError):
            validate_account("  ")
        assert validate_account("rIssuer") == "rIssuer"

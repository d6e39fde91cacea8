from lighter_analytics.formatting import (
    format_address,
    format_currency,
    format_currency_smart,
    format_number,
    format_percentage,
    format_ratio,
    validate_ethereum_address,
)

ADDRESS = "0x1234567890abcdef1234567890abcdef12345678"


def test_format_currency_signs():
    assert format_currency(1234.5) == "$1,234.50"
    assert format_currency(-1234.5) == "-$1,234.50"
    assert format_number(1234567.891, 1) == "1,234,567.9"


def test_format_currency_smart_scales():
    assert format_currency_smart(2_500_000) == "$2.50M"
    assert format_currency_smart(1_500) == "$1.50K"
    assert format_currency_smart(3_000_000_000) == "$3.00B"
    assert format_currency_smart(12.3) == "$12.30"


def test_format_percentage_and_ratio():
    assert format_percentage(12.3) == "+12.30%"
    assert format_percentage(-5) == "-5.00%"
    assert format_ratio(float("inf")) == "∞"
    assert format_ratio(3) == "3.00"


def test_address_helpers():
    assert format_address(ADDRESS) == "0x1234...5678"
    assert format_address("") == ""
    assert validate_ethereum_address(ADDRESS)
    assert not validate_ethereum_address("0x1234")
    assert not validate_ethereum_address(ADDRESS + "\n")

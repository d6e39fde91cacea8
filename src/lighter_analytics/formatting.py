from __future__ import annotations

import math
import re

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


def format_number(value: float, decimals: int = 2) -> str:
    return f"{value:,.{decimals}f}"


def format_currency(value: float) -> str:
    if value < 0:
        return f"-${abs(value):,.2f}"
    return f"${value:,.2f}"


def format_currency_smart(value: float) -> str:
    magnitude = abs(value)
    sign = "-" if value < 0 else ""
    if magnitude >= 1e9:
        return f"{sign}${magnitude / 1e9:.2f}B"
    if magnitude >= 1e6:
        return f"{sign}${magnitude / 1e6:.2f}M"
    if magnitude >= 1e3:
        return f"{sign}${magnitude / 1e3:.2f}K"
    return format_currency(value)


def format_percentage(value: float) -> str:
    prefix = "+" if value >= 0 else ""
    return f"{prefix}{value:.2f}%"


def format_ratio(value: float, decimals: int = 2) -> str:
    if math.isinf(value):
        return "∞"
    return f"{value:.{decimals}f}"


def format_address(address: str | None) -> str:
    if not address:
        return ""
    return f"{address[:6]}...{address[-4:]}"


def validate_ethereum_address(address: str) -> bool:
    return bool(_ADDRESS_RE.fullmatch(address or ""))

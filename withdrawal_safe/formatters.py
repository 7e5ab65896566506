"""Formatting and conversion utilities."""

from decimal import Decimal, InvalidOperation

from withdrawal_safe.constants import DECIMAL_WEI_PER_ETH, WEI_PER_ETH


def as_int(value, *, default: int = 0) -> int:
    """Convert value to int, handling various types."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        v = value.strip()
        if v.startswith("0x"):
            return int(v, 16)
        return int(v)
    return int(value)


def eth_to_wei(value) -> int:
    """Convert an ETH amount (int, str or Decimal) to wei, truncating below 1 wei."""
    try:
        return int(Decimal(str(value).strip()) * WEI_PER_ETH)
    except InvalidOperation as ex:
        raise ValueError(f"Invalid ETH amount: {value}") from ex


def format_bp(bp: int) -> str:
    """Format basis points as percentage."""
    return f"{(Decimal(bp) / Decimal(100)):.2f}%"


def format_eth(value_wei: int, *, decimals: int = 9, approx: bool = False) -> str:
    """Format wei value as ETH."""
    eth = Decimal(value_wei) / DECIMAL_WEI_PER_ETH
    s = f"{eth:.{decimals}f}".rstrip("0").rstrip(".")
    prefix = "~" if approx else ""
    return f"{prefix}{s} ETH"


def format_gwei(value_gwei: int) -> str:
    """Format a gwei amount with thousands separators."""
    return f"{value_gwei:,} gwei"


def format_share(part: int, whole: int) -> str:
    """Format `part` as a percentage of `whole`."""
    if whole == 0:
        return "n/a"
    return f"{(Decimal(part) * 100 / Decimal(whole)):.2f}%"

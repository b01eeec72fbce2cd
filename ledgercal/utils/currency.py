import math


def format_currency(amount: float, symbol: str = "$") -> str:
    """Format a float as currency string, e.g. '$1,234.56' or '-$12.00'."""
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"


def format_signed(amount: float, symbol: str = "$") -> str:
    """Format with +/- sign."""
    sign = "+" if amount >= 0 else "-"
    return f"{sign}{symbol}{abs(amount):,.2f}"


def format_plain(amount: float) -> str:
    """Shortest decimal form with at most two places: 100, -12.5, 3.99."""
    text = f"{amount:.2f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def to_cents(amount: float) -> int:
    """Round half up to whole cents."""
    return math.floor(amount * 100 + 0.5)


def round_money(amount: float) -> float:
    return round(amount + 0.0, 2)

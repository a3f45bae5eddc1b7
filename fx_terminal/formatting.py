"""
Price and PnL formatting helpers for display
"""
from typing import Optional


def format_price(price: float, decimals: Optional[int] = None) -> str:
    """Format price with instrument decimals, or precision picked from magnitude"""
    if decimals is not None:
        return f"{price:.{decimals}f}"

    if price >= 10:
        return f"{price:.2f}"
    elif price >= 0.1:
        return f"{price:.4f}"
    elif price >= 0.001:
        return f"{price:.6f}"
    else:
        return f"{price:.8f}"


def format_pnl(value: float) -> str:
    return f"{value:+,.2f}"

"""Display formatting for tile values and chart axes."""

from __future__ import annotations


def format_usd(value: float | None, decimals: int = 0) -> str:
    """Full-precision dollars: 37454537246248.71 -> "$37,454,537,246,249"."""
    if value is None:
        return "—"
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.{decimals}f}"


def format_number(value: float | None) -> str:
    if value is None:
        return "—"
    return f"{value:,.0f}"


def format_percent(value: float | None, decimals: int = 2) -> str:
    """Ratio to percent: 1.2345 -> "123.45%"."""
    if value is None:
        return "—"
    return f"{value * 100:.{decimals}f}%"


def format_compact_usd(amount: float | None) -> str:
    """Short dollars for axes and summaries: 3.7e13 -> "$37.0T"."""
    if amount is None:
        return "—"
    sign = "-" if amount < 0 else ""
    magnitude = abs(amount)
    if magnitude >= 1e12:
        return f"{sign}${magnitude / 1e12:.1f}T"
    elif magnitude >= 1e9:
        return f"{sign}${magnitude / 1e9:.1f}B"
    elif magnitude >= 1e6:
        return f"{sign}${magnitude / 1e6:.1f}M"
    return f"{sign}${magnitude:,.0f}"


def format_rate(rate: float | None) -> str:
    """Per-second rate with cents, for tile meta lines."""
    if rate is None:
        return "static"
    return f"{format_usd(rate, 2)}/s"

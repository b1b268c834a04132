"""Console output module for colored messages and formatting.

This module provides Rich-based console output functions with consistent
messaging across the ledger tools.
"""

import sys
from decimal import Decimal
from typing import Optional, Union

from rich.console import Console
from rich.panel import Panel

console = Console()


def _safe_emoji(emoji: str) -> str:
    """Return emoji if supported, otherwise return a safe alternative."""
    try:
        emoji.encode(sys.stdout.encoding or 'utf-8')
        return emoji
    except (UnicodeEncodeError, LookupError):
        emoji_map = {
            "✅": "OK",
            "❌": "X",
            "⚠️": "!",
            "ℹ️": "i",
            "🔷": "*",
            "💱": "[FX]",
            "📊": "[S]",
            "📈": "[^]",
        }
        return emoji_map.get(emoji, "*")


def print_success(message: str, emoji: str = "✅") -> None:
    console.print(f"{_safe_emoji(emoji)} {message}", style="bold green")


def print_error(message: str, emoji: str = "❌") -> None:
    console.print(f"{_safe_emoji(emoji)} {message}", style="bold red")


def print_warning(message: str, emoji: str = "⚠️") -> None:
    console.print(f"{_safe_emoji(emoji)} {message}", style="bold yellow")


def print_info(message: str, emoji: str = "ℹ️") -> None:
    console.print(f"{_safe_emoji(emoji)} {message}", style="bold blue")


def print_header(title: str, emoji: str = "🔷") -> None:
    """Print a boxed section header."""
    console.print(Panel(f"{_safe_emoji(emoji)} {title}", style="bold bright_white on blue", expand=False))


def format_money_display(amount: Optional[Union[Decimal, float]], currency: str = "TWD",
                         places: int = 2) -> str:
    """Format an amount with thousands separators and its currency code.

    Examples:
        >>> format_money_display(Decimal("1234.5"), "USD")
        '1,234.50 USD'
        >>> format_money_display(None)
        'N/A'
    """
    if amount is None:
        return "N/A"
    return f"{amount:,.{places}f} {currency}"


def get_console() -> Console:
    return console

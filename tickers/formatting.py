"""Display formatting for ticker nicknames and activity text."""

from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping

import discord

from tickers.price_feed import AssetRecord

_CENTS = Decimal("0.01")


def _round2(value: float) -> str:
    # Half-up on the shortest decimal repr, so 999.995 -> "1000.00"
    return str(Decimal(repr(float(value))).quantize(_CENTS, rounding=ROUND_HALF_UP))


def format_price(value: float) -> str:
    """Format a USD price, thousands shown with a "k" suffix (1234.5 -> "1.23k")."""
    if value >= 1000:
        return _round2(value / 1000) + "k"
    return _round2(value)


def format_change(pct: float) -> str:
    """Activity text for a 24h change, e.g. "24h | -0.50%"."""
    return f"24h | {_round2(pct)}%"


def is_market_down(snapshot: Mapping[str, AssetRecord]) -> bool:
    """True if any tracked asset has a strictly negative 24h change."""
    return any(record.change_pct_24h < 0 for record in snapshot.values())


def market_status(snapshot: Mapping[str, AssetRecord]) -> discord.Status:
    return discord.Status.dnd if is_market_down(snapshot) else discord.Status.online

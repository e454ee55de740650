"""Minor-unit money helpers.

All arithmetic stays in integer minor units (100 coins = $1). Dollars are
only ever produced for display, as exact strings, so no value is truncated
or rounded on the way to a threshold comparison.
"""

from __future__ import annotations

MINOR_UNITS_PER_DOLLAR = 100


def format_minor_units(amount: int) -> str:
    """Format minor units as a dollar string: 15050 -> "150.50"."""
    sign = "-" if amount < 0 else ""
    dollars, cents = divmod(abs(amount), MINOR_UNITS_PER_DOLLAR)
    return f"{sign}{dollars}.{cents:02d}"

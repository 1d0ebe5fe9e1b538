"""Display helpers and subscription predicates.

Every function here is total: ``None``, short or otherwise odd inputs return a
sensible value instead of raising.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Optional

# Transaction references render as the six characters after the 0x prefix.
SHORT_REF_OFFSET = 2
SHORT_REF_LENGTH = 6

BALANCE_PLACES = 6
_BALANCE_QUANTUM = Decimal(1).scaleb(-BALANCE_PLACES)


def short_ref(ref: Optional[str]) -> str:
    """Return the short display form of a transaction hash."""
    if not ref:
        return ""
    return str(ref)[SHORT_REF_OFFSET : SHORT_REF_OFFSET + SHORT_REF_LENGTH]


def format_balance(raw: Optional[int], decimals: int = 18) -> str:
    """Render a base-unit balance as a fixed-point string with 6 decimals."""
    if raw is None or raw <= 0:
        raw = 0
    # Enough precision that quantize never overflows for large balances
    with localcontext() as ctx:
        ctx.prec = max(28, len(str(raw)) + BALANCE_PLACES + 2)
        value = Decimal(int(raw)).scaleb(-decimals)
        rounded = value.quantize(_BALANCE_QUANTUM, rounding=ROUND_HALF_UP)
    return f"{rounded:f}"


def has_active_subscription(subscription_id: Optional[int]) -> bool:
    """True iff the subscription id is known and positive."""
    return subscription_id is not None and subscription_id > 0


def needs_deposit(subscription_id: Optional[int], balance: Optional[int]) -> bool:
    """A deposit is required unless the subscription is active and funded."""
    has_balance = balance is not None and balance > 0
    return not (has_active_subscription(subscription_id) and has_balance)


def explorer_tx_url(base_url: Optional[str], tx_hash: Optional[str]) -> Optional[str]:
    """Build a block-explorer link for a transaction, if both parts exist."""
    if not base_url or not tx_hash:
        return None
    return f"{base_url.rstrip('/')}/tx/{tx_hash}"


def truncate(text: str, limit: int) -> str:
    """Trim ``text`` to ``limit`` characters, marking the cut with an ellipsis."""
    if limit <= 0:
        return ""
    if len(text) <= limit:
        return text
    if limit == 1:
        return text[:1]
    return text[: limit - 1] + "…"


__all__ = [
    "explorer_tx_url",
    "format_balance",
    "has_active_subscription",
    "needs_deposit",
    "short_ref",
    "truncate",
]

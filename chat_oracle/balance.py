"""Subscription and balance view with a short-lived optimistic override."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from chat_oracle.utils.formatting import (
    format_balance,
    has_active_subscription,
    needs_deposit,
)
from chat_oracle.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_OVERRIDE_SECONDS = 5.0
OVERRIDE_JOB_ID = "balance_override_clear"


class BalanceView:
    """Derive the displayed balance and the subscription predicates.

    ``display_balance`` prefers a local override (set right after a withdrawal
    is sent) over the last authoritative read. The override expires after
    ``override_seconds`` or is reverted as soon as the action fails.
    """

    def __init__(
        self,
        scheduler,
        override_seconds: float = DEFAULT_OVERRIDE_SECONDS,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.scheduler = scheduler
        self.override_seconds = override_seconds
        self.on_change = on_change
        self.subscription_id: Optional[int] = None
        self.authoritative_balance: Optional[int] = None
        self._override: Optional[int] = None

    def update(
        self,
        subscription_id: Optional[int],
        balance: Optional[int],
    ) -> None:
        """Record the latest authoritative reads."""
        self.subscription_id = subscription_id
        self.authoritative_balance = balance
        self._notify()

    @property
    def override(self) -> Optional[int]:
        return self._override

    @property
    def display_balance(self) -> Optional[int]:
        if self._override is not None:
            return self._override
        return self.authoritative_balance

    @property
    def has_active_subscription(self) -> bool:
        return has_active_subscription(self.subscription_id)

    @property
    def needs_deposit(self) -> bool:
        return needs_deposit(self.subscription_id, self.display_balance)

    def formatted_balance(self, decimals: int = 18) -> Optional[str]:
        balance = self.display_balance
        if balance is None:
            return None
        return format_balance(balance, decimals)

    def apply_override(self, value: int) -> None:
        """Show ``value`` until the grace delay passes or the action fails."""
        self._override = value
        self.scheduler.add_job(
            self._expire_override,
            "date",
            run_date=datetime.now(timezone.utc)
            + timedelta(seconds=self.override_seconds),
            id=OVERRIDE_JOB_ID,
            replace_existing=True,
        )
        logger.info("balance_override_applied", value=value)
        self._notify()

    def revert_override(self) -> None:
        """Drop the override and defer to the authoritative value again."""
        if self.scheduler.get_job(OVERRIDE_JOB_ID) is not None:
            self.scheduler.remove_job(OVERRIDE_JOB_ID)
        if self._override is None:
            return
        self._override = None
        logger.info("balance_override_reverted")
        self._notify()

    async def _expire_override(self) -> None:
        if self._override is None:
            return
        self._override = None
        logger.debug("balance_override_expired")
        self._notify()

    def _notify(self) -> None:
        if self.on_change:
            self.on_change()


__all__ = ["BalanceView"]

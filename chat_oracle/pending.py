"""Single-slot tracker for the message the user just submitted."""

from __future__ import annotations

import itertools
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from chat_oracle.models import MessageStatus, PendingMessage
from chat_oracle.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIRM_SETTLE_SECONDS = 2.0
CLEAR_JOB_ID = "pending_clear"


class PendingTracker:
    """Own the lifecycle of one in-flight submission.

    ``pending -> confirming -> confirmed | failed``. A confirmed entry stays
    visible for ``settle_seconds`` so the authoritative refresh can land
    before it disappears. A submission failure clears the slot at once; a
    confirmation failure leaves it visible as failed until the next ``begin``.

    Transitions that reference a stale ``local_id`` or transaction hash are
    ignored, since signals from an earlier submission may arrive late.
    """

    def __init__(
        self,
        scheduler,
        settle_seconds: float = DEFAULT_CONFIRM_SETTLE_SECONDS,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.scheduler = scheduler
        self.settle_seconds = settle_seconds
        self.on_change = on_change
        self._ids = itertools.count(1)
        self._current: Optional[PendingMessage] = None

    @property
    def current(self) -> Optional[PendingMessage]:
        """Copy of the slot so callers cannot mutate tracker state."""
        return replace(self._current) if self._current else None

    @property
    def is_busy(self) -> bool:
        """True while a submission is in flight (pending or confirming)."""
        return self._current is not None and self._current.status in (
            MessageStatus.PENDING,
            MessageStatus.CONFIRMING,
        )

    def begin(self, content: str) -> PendingMessage:
        """Create a new pending entry, replacing a settled or failed one."""
        self._remove_clear_job()
        self._current = PendingMessage(local_id=next(self._ids), content=content)
        logger.info("pending_created", local_id=self._current.local_id)
        self._notify()
        return replace(self._current)

    def attach_tx(self, local_id: int, tx_hash: str) -> None:
        message = self._current
        if not message or message.local_id != local_id:
            logger.warning("pending_attach_stale", local_id=local_id, tx_hash=tx_hash)
            return
        if message.status is not MessageStatus.PENDING:
            logger.warning(
                "pending_attach_invalid_state",
                local_id=local_id,
                status=message.status.value,
            )
            return
        message.tx_hash = tx_hash
        message.status = MessageStatus.CONFIRMING
        logger.info("pending_confirming", local_id=local_id, tx_hash=tx_hash)
        self._notify()

    def confirm(self, tx_hash: str) -> bool:
        """Mark the entry confirmed and schedule its removal.

        Returns False when ``tx_hash`` does not belong to the current entry.
        """
        message = self._current
        if (
            not message
            or message.tx_hash != tx_hash
            or message.status is not MessageStatus.CONFIRMING
        ):
            logger.warning("pending_confirm_stale", tx_hash=tx_hash)
            return False
        message.status = MessageStatus.CONFIRMED
        logger.info("pending_confirmed", local_id=message.local_id, tx_hash=tx_hash)
        self.scheduler.add_job(
            self._clear_after_settle,
            "date",
            run_date=datetime.now(timezone.utc)
            + timedelta(seconds=self.settle_seconds),
            args=[message.local_id],
            id=CLEAR_JOB_ID,
            replace_existing=True,
        )
        self._notify()
        return True

    def fail_submission(self, local_id: int, error: str) -> None:
        """Submission never produced a transaction: drop the entry."""
        if not self._current or self._current.local_id != local_id:
            return
        logger.warning("pending_submission_failed", local_id=local_id, error=error)
        self._current = None
        self._notify()

    def fail_confirmation(self, local_id: int, error: str) -> None:
        """Transaction reverted or confirmation failed: keep it visible."""
        message = self._current
        if not message or message.local_id != local_id:
            return
        message.status = MessageStatus.FAILED
        message.error = error
        logger.warning(
            "pending_confirmation_failed",
            local_id=local_id,
            tx_hash=message.tx_hash,
            error=error,
        )
        self._notify()

    def clear(self, local_id: Optional[int] = None) -> None:
        """Empty the slot; with ``local_id`` only if it still holds that entry."""
        if self._current is None:
            return
        if local_id is not None and self._current.local_id != local_id:
            return
        logger.debug("pending_cleared", local_id=self._current.local_id)
        self._current = None
        self._notify()

    async def _clear_after_settle(self, local_id: int) -> None:
        self.clear(local_id)

    def _remove_clear_job(self) -> None:
        if self.scheduler.get_job(CLEAR_JOB_ID) is not None:
            self.scheduler.remove_job(CLEAR_JOB_ID)

    def _notify(self) -> None:
        if self.on_change:
            self.on_change()


__all__ = ["PendingTracker"]

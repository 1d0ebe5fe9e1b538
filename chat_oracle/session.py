"""Chat session: wires ledger reads, ingestion and local state together."""

from __future__ import annotations

import itertools
from typing import Callable, List, Optional, Protocol

from chat_oracle.balance import BalanceView
from chat_oracle.config import Settings
from chat_oracle.jobs.ingestion import EventIngestion, EventSource
from chat_oracle.merge import build_transcript
from chat_oracle.models import (
    ConversationEntry,
    DisplayMessage,
    PendingMessage,
    SurfacedError,
)
from chat_oracle.pending import PendingTracker
from chat_oracle.request_body import (
    DEFAULT_MODEL,
    MAX_HISTORY_CONTENT_CHARS,
    MAX_HISTORY_MESSAGES,
    encode_request,
)
from chat_oracle.store.event_store import DEFAULT_MAX_ORPHAN_RESPONSES, EventStore
from chat_oracle.utils.errors import (
    SubmissionInProgressError,
    classify_submission_error,
)
from chat_oracle.utils.formatting import has_active_subscription
from chat_oracle.utils.logging import bind_context, get_logger

logger = get_logger(__name__)

TX_REVERTED = "Transaction failed on chain."


class LedgerClient(EventSource, Protocol):
    """Everything the session needs from the chain."""

    async def get_conversation(self, user: str) -> List[ConversationEntry]:
        ...

    async def get_subscription(self, user: str) -> int:
        ...

    async def get_balance(self, subscription_id: int) -> int:
        ...

    async def submit(self, prompt: str, body: bytes, value: int) -> str:
        ...

    async def withdraw(self) -> str:
        ...

    async def await_confirmation(self, tx_hash: str) -> bool:
        ...

    async def close(self) -> None:
        ...


class ChatSession:
    """One user's view of the on-chain conversation.

    ``transcript()`` can be called at any time and always reflects the latest
    conversation read, ingested events and the pending slot. Only submission
    and withdrawal failures are surfaced as user-visible errors; read and
    ingestion failures are logged and leave the previous state in place.
    """

    def __init__(
        self,
        client: LedgerClient,
        user_address: str,
        scheduler,
        snapshot_reads_enabled: bool = True,
        from_block: int = 0,
        poll_interval_seconds: float = 5.0,
        confirm_settle_seconds: float = 2.0,
        balance_override_seconds: float = 5.0,
        deposit_wei: int = 10**16,
        ai_model: str = DEFAULT_MODEL,
        max_history_messages: int = MAX_HISTORY_MESSAGES,
        max_history_content_chars: int = MAX_HISTORY_CONTENT_CHARS,
        max_orphan_responses: int = DEFAULT_MAX_ORPHAN_RESPONSES,
    ) -> None:
        self.client = client
        self.user_address = user_address
        self.snapshot_reads_enabled = snapshot_reads_enabled
        self.deposit_wei = deposit_wei
        self.ai_model = ai_model
        self.max_history_messages = max_history_messages
        self.max_history_content_chars = max_history_content_chars
        self.on_change: Optional[Callable[[], None]] = None

        self.store = EventStore(max_orphans=max_orphan_responses)
        self.store.add_listener(self._notify)
        self.ingestion = EventIngestion(
            source=client,
            store=self.store,
            scheduler=scheduler,
            user_address=user_address,
            from_block=from_block,
            poll_interval_seconds=poll_interval_seconds,
        )
        self.tracker = PendingTracker(
            scheduler, settle_seconds=confirm_settle_seconds, on_change=self._notify
        )
        self.balance = BalanceView(
            scheduler,
            override_seconds=balance_override_seconds,
            on_change=self._notify,
        )

        self._conversation: Optional[List[ConversationEntry]] = None
        self._errors: List[SurfacedError] = []
        self._error_ids = itertools.count(1)

    @classmethod
    def from_settings(
        cls, client: LedgerClient, settings: Settings, scheduler
    ) -> "ChatSession":
        return cls(
            client=client,
            user_address=settings.user_address,
            scheduler=scheduler,
            snapshot_reads_enabled=settings.snapshot_reads_enabled,
            from_block=settings.backfill_from_block,
            poll_interval_seconds=settings.poll_interval_seconds,
            confirm_settle_seconds=settings.confirm_settle_seconds,
            balance_override_seconds=settings.balance_override_seconds,
            deposit_wei=settings.deposit_wei,
            ai_model=settings.ai_model,
            max_history_messages=settings.max_history_messages,
            max_history_content_chars=settings.max_history_content_chars,
            max_orphan_responses=settings.max_orphan_responses,
        )

    @property
    def pending(self) -> Optional[PendingMessage]:
        return self.tracker.current

    @property
    def errors(self) -> List[SurfacedError]:
        return list(self._errors)

    async def start(self) -> None:
        bind_context(user=self.user_address)
        await self.refresh()
        await self.ingestion.start()
        logger.info(
            "session_started",
            snapshot_reads=self.snapshot_reads_enabled,
            messages=len(self.store.snapshot().messages),
        )

    async def shutdown(self) -> None:
        await self.client.close()
        logger.info("session_stopped")

    async def refresh(self) -> None:
        """Re-read the conversation snapshot, subscription and balance."""
        if self.snapshot_reads_enabled:
            try:
                self._conversation = list(
                    await self.client.get_conversation(self.user_address)
                )
                self._notify()
            except Exception as exc:
                logger.warning("conversation_read_failed", error=str(exc))

        try:
            subscription_id = await self.client.get_subscription(self.user_address)
            balance = None
            if has_active_subscription(subscription_id):
                balance = await self.client.get_balance(subscription_id)
        except Exception as exc:
            logger.warning("subscription_read_failed", error=str(exc))
            return
        self.balance.update(subscription_id, balance)

    def transcript(self) -> List[DisplayMessage]:
        return build_transcript(
            self._conversation, self.store.snapshot(), self.tracker.current
        )

    async def send(self, prompt: str) -> Optional[str]:
        """Submit ``prompt`` and follow it to confirmation.

        Returns the transaction hash, or None when submission failed.
        Raises ``SubmissionInProgressError`` while a previous message is
        still in flight.
        """
        prompt = prompt.strip()
        if not prompt:
            return None
        if self.tracker.is_busy:
            raise SubmissionInProgressError("Previous message is still in flight")

        history = self.transcript()
        pending = self.tracker.begin(prompt)
        body = encode_request(
            prompt,
            history,
            model=self.ai_model,
            max_history=self.max_history_messages,
            max_content_chars=self.max_history_content_chars,
        )
        value = self.deposit_wei if self.balance.needs_deposit else 0

        try:
            tx_hash = await self.client.submit(prompt, body, value)
        except Exception as exc:
            message = classify_submission_error(exc)
            self.tracker.fail_submission(pending.local_id, message)
            self._surface(message)
            return None
        self.tracker.attach_tx(pending.local_id, tx_hash)

        reason = TX_REVERTED
        try:
            confirmed = await self.client.await_confirmation(tx_hash)
        except Exception as exc:
            confirmed = False
            reason = classify_submission_error(exc)
        if not confirmed:
            self.tracker.fail_confirmation(pending.local_id, reason)
            self._surface(reason)
            return tx_hash

        self.tracker.confirm(tx_hash)
        # ingest events before re-reading the conversation
        await self.ingestion.backfill()
        await self.refresh()
        return tx_hash

    async def withdraw(self) -> Optional[str]:
        """Withdraw the subscription balance, showing zero until it confirms."""
        self.balance.apply_override(0)
        try:
            tx_hash = await self.client.withdraw()
            confirmed = await self.client.await_confirmation(tx_hash)
        except Exception as exc:
            self.balance.revert_override()
            self._surface(classify_submission_error(exc))
            return None
        if not confirmed:
            self.balance.revert_override()
            self._surface(TX_REVERTED)
            return tx_hash
        await self.refresh()
        return tx_hash

    def dismiss_error(self, error_id: int) -> bool:
        remaining = [e for e in self._errors if e.id != error_id]
        dismissed = len(remaining) != len(self._errors)
        self._errors = remaining
        if dismissed:
            self._notify()
        return dismissed

    def _surface(self, message: str) -> None:
        error = SurfacedError(id=next(self._error_ids), message=message)
        self._errors.append(error)
        logger.warning("error_surfaced", error_id=error.id, message=message)
        self._notify()

    def _notify(self) -> None:
        if self.on_change:
            self.on_change()


__all__ = ["ChatSession", "LedgerClient"]

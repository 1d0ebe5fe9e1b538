"""Event ingestion: historical backfill, push subscription and polling fallback."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Union

from chat_oracle.models import EventKind
from chat_oracle.store.event_store import EventStore
from chat_oracle.utils.log_parser import parse_message_logs, parse_response_logs
from chat_oracle.utils.logging import get_logger

logger = get_logger(__name__)

POLL_JOB_ID = "response_poll"
DEFAULT_POLL_INTERVAL_SECONDS = 5.0

BlockRef = Union[int, str]


class EventSource(Protocol):
    """Ledger event access consumed by ingestion."""

    async def query_logs(
        self,
        kind: EventKind,
        from_block: BlockRef,
        to_block: BlockRef = "latest",
        argument_filters: Optional[Dict[str, Any]] = None,
    ) -> Sequence[Any]:
        ...

    def subscribe(
        self,
        kind: EventKind,
        on_batch: Callable[[Sequence[Any]], None],
        on_error: Callable[[BaseException], None],
        argument_filters: Optional[Dict[str, Any]] = None,
    ) -> Any:
        ...


class EventIngestion:
    """Feed every delivery channel into one idempotent ``EventStore``.

    Backfill runs at start and after each confirmed submission. The push
    subscription delivers new logs with low latency but may silently miss
    some. While any known message still lacks a response, an interval job
    re-queries responses; it removes itself once nothing is outstanding.
    Failures on any channel are logged and left to the next attempt.
    """

    def __init__(
        self,
        source: EventSource,
        store: EventStore,
        scheduler,
        user_address: Optional[str] = None,
        from_block: int = 0,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> None:
        self.source = source
        self.store = store
        self.scheduler = scheduler
        self.user_address = user_address
        self.from_block = from_block
        self.poll_interval_seconds = poll_interval_seconds
        self._subscriptions: List[Any] = []

    @property
    def polling(self) -> bool:
        return self.scheduler.get_job(POLL_JOB_ID) is not None

    async def start(self) -> None:
        """Backfill history, then open the push subscriptions."""
        await self.backfill()
        if self._subscriptions:
            return
        self._subscriptions = [
            self.source.subscribe(
                EventKind.MESSAGE_SENT,
                self.ingest_messages,
                self._on_subscription_error,
                self._message_filters(),
            ),
            self.source.subscribe(
                EventKind.RESPONSE_RECEIVED,
                self.ingest_responses,
                self._on_subscription_error,
            ),
        ]
        logger.info("event_subscriptions_started", from_block=self.from_block)

    async def backfill(self) -> None:
        """Query the full range of messages and their responses once."""
        try:
            raw_messages = await self.source.query_logs(
                EventKind.MESSAGE_SENT,
                self.from_block,
                "latest",
                self._message_filters(),
            )
        except Exception as exc:
            logger.error(
                "backfill_failed", kind=EventKind.MESSAGE_SENT.value, error=str(exc)
            )
            self._sync_polling()
            return
        self.ingest_messages(raw_messages, channel="backfill")
        await self._query_responses(channel="backfill")

    def ingest_messages(self, records: Sequence[Any], channel: str = "push") -> int:
        """Parse and store ``MessageSent`` records; returns the number accepted."""
        events = parse_message_logs(records)
        fresh = self.store.add_messages(events)
        self._log_batch(EventKind.MESSAGE_SENT, channel, records, events, fresh)
        self._sync_polling()
        return len(fresh)

    def ingest_responses(self, records: Sequence[Any], channel: str = "push") -> int:
        """Parse and store ``ResponseReceived`` records; returns the number accepted."""
        events = parse_response_logs(records)
        fresh = self.store.add_responses(events)
        self._log_batch(EventKind.RESPONSE_RECEIVED, channel, records, events, fresh)
        self._sync_polling()
        return len(fresh)

    async def poll(self) -> None:
        """Interval job body: re-query responses for outstanding messages."""
        await self._query_responses(channel="poll")

    async def _query_responses(self, channel: str) -> None:
        outstanding = self.store.outstanding_message_ids()
        if not outstanding:
            self._sync_polling()
            return
        try:
            raw = await self.source.query_logs(
                EventKind.RESPONSE_RECEIVED,
                self.from_block,
                "latest",
                {"messageId": outstanding},
            )
        except Exception as exc:
            logger.error(
                f"{channel}_failed",
                kind=EventKind.RESPONSE_RECEIVED.value,
                outstanding=len(outstanding),
                error=str(exc),
            )
            self._sync_polling()
            return
        self.ingest_responses(raw, channel=channel)

    def _sync_polling(self) -> None:
        """Start the poll job while responses are outstanding, stop it after."""
        outstanding = self.store.has_outstanding_responses()
        if outstanding and not self.polling:
            self.scheduler.add_job(
                self.poll,
                "interval",
                seconds=self.poll_interval_seconds,
                id=POLL_JOB_ID,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            logger.info("response_poll_started", interval=self.poll_interval_seconds)
        elif not outstanding and self.polling:
            self.scheduler.remove_job(POLL_JOB_ID)
            logger.info("response_poll_stopped")

    def _message_filters(self) -> Optional[Dict[str, Any]]:
        if not self.user_address:
            return None
        return {"user": self.user_address}

    def _on_subscription_error(self, exc: BaseException) -> None:
        logger.warning("event_subscription_error", error=str(exc))

    @staticmethod
    def _log_batch(kind, channel, records, events, fresh) -> None:
        dropped = len(records or []) - len(events)
        if dropped:
            logger.warning(
                "malformed_logs_dropped", kind=kind.value, channel=channel, count=dropped
            )
        if fresh:
            logger.info(
                "events_ingested",
                kind=kind.value,
                channel=channel,
                accepted=len(fresh),
                duplicates=len(events) - len(fresh),
            )


__all__ = ["EventIngestion", "EventSource", "POLL_JOB_ID"]

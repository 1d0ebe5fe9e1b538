"""Session-lifetime cache of observed contract events."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from chat_oracle.models import EventKind, MessageEvent, ResponseEvent
from chat_oracle.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_ORPHAN_RESPONSES = 256


@dataclass(frozen=True)
class EventSnapshot:
    """Immutable view of the store taken between two mutations."""

    messages: Tuple[MessageEvent, ...] = ()
    responses: Mapping[int, ResponseEvent] = field(
        default_factory=lambda: MappingProxyType({})
    )
    version: int = 0

    def message_tx_hashes(self) -> Dict[int, str]:
        return {event.message_id: event.tx_hash for event in self.messages}

    def response_tx_hashes(self) -> Dict[int, str]:
        return {mid: event.tx_hash for mid, event in self.responses.items()}


class EventStore:
    """Idempotent sink for events delivered by backfill, push and poll.

    Events are keyed by ``(kind, message_id)``; the first delivery wins and
    later copies are discarded. Every mutation is synchronous, so a reader on
    the event loop sees either the state before or after an ingest call.

    Responses whose message is not known yet are kept as orphans (bounded by
    ``max_orphans``, oldest evicted first) and become visible to merges as soon
    as the matching message arrives.
    """

    def __init__(self, max_orphans: int = DEFAULT_MAX_ORPHAN_RESPONSES) -> None:
        self.max_orphans = max_orphans
        self._messages: Dict[int, MessageEvent] = {}
        self._responses: Dict[int, ResponseEvent] = {}
        self._orphans: "OrderedDict[int, ResponseEvent]" = OrderedDict()
        self._version = 0
        self._snapshot: Optional[EventSnapshot] = None
        self._listeners: List[Callable[[], None]] = []

    @property
    def version(self) -> int:
        """Monotonic counter bumped whenever new events are accepted."""
        return self._version

    def add_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback fired after each mutation that changed state."""
        self._listeners.append(callback)

    def is_seen(self, kind: EventKind, message_id: int) -> bool:
        if kind is EventKind.MESSAGE_SENT:
            return message_id in self._messages
        return message_id in self._responses or message_id in self._orphans

    def add_messages(self, events: Iterable[MessageEvent]) -> List[MessageEvent]:
        """Store unseen message events and adopt any waiting orphan responses."""
        fresh: List[MessageEvent] = []
        for event in events:
            if event.message_id in self._messages:
                continue
            self._messages[event.message_id] = event
            fresh.append(event)
            orphan = self._orphans.pop(event.message_id, None)
            if orphan is not None:
                self._responses[event.message_id] = orphan
                logger.debug("orphan_response_resolved", message_id=event.message_id)
        if fresh:
            self._changed()
        return fresh

    def add_responses(self, events: Iterable[ResponseEvent]) -> List[ResponseEvent]:
        """Store unseen response events; unknown message ids become orphans."""
        fresh: List[ResponseEvent] = []
        for event in events:
            if self.is_seen(EventKind.RESPONSE_RECEIVED, event.message_id):
                continue
            fresh.append(event)
            if event.message_id in self._messages:
                self._responses[event.message_id] = event
                continue
            self._orphans[event.message_id] = event
            while len(self._orphans) > self.max_orphans:
                evicted, _ = self._orphans.popitem(last=False)
                logger.debug("orphan_response_evicted", message_id=evicted)
        if fresh:
            self._changed()
        return fresh

    def outstanding_message_ids(self) -> List[int]:
        """Ids of known messages that have no response yet, ascending."""
        return sorted(mid for mid in self._messages if mid not in self._responses)

    def has_outstanding_responses(self) -> bool:
        return any(mid not in self._responses for mid in self._messages)

    def orphan_count(self) -> int:
        return len(self._orphans)

    def snapshot(self) -> EventSnapshot:
        """Return a cached immutable snapshot of the current state."""
        if self._snapshot is None or self._snapshot.version != self._version:
            self._snapshot = EventSnapshot(
                messages=tuple(
                    self._messages[mid] for mid in sorted(self._messages)
                ),
                responses=MappingProxyType(dict(self._responses)),
                version=self._version,
            )
        return self._snapshot

    def _changed(self) -> None:
        self._version += 1
        for callback in list(self._listeners):
            try:
                callback()
            except Exception as exc:  # pragma: no cover - listener bugs are logged
                logger.error("event_store_listener_failed", error=str(exc))


__all__ = ["EventSnapshot", "EventStore"]

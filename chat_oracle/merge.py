"""Build the display transcript from ledger state, events and local state.

Two strategies are supported:

* ``merge_conversation`` walks the authoritative conversation snapshot and
  enriches it through a ``CorrelationMap``.
* ``merge_events`` rebuilds the transcript from ``MessageSent`` and
  ``ResponseReceived`` events alone, for when snapshot reads are disabled.

Both are pure and deterministic: the same inputs always produce the same list,
however many times the events were delivered.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

from chat_oracle.correlation import CorrelationMap, correlate
from chat_oracle.models import (
    ConversationEntry,
    DisplayMessage,
    MessageEvent,
    MessageStatus,
    PendingMessage,
    ResponseEvent,
    Role,
)
from chat_oracle.store.event_store import EventSnapshot
from chat_oracle.utils.logging import get_logger

logger = get_logger(__name__)


def merge_conversation(
    conversation: Sequence[ConversationEntry],
    correlation: CorrelationMap,
    pending: Optional[PendingMessage] = None,
) -> List[DisplayMessage]:
    """Strategy A: authoritative conversation order, enriched with ids."""
    messages: List[DisplayMessage] = []

    # correlate() hands each message id to at most one entry
    for index, item in enumerate(correlate(conversation, correlation)):
        messages.append(
            DisplayMessage(
                id=str(index * 2),
                role=Role.USER,
                content=item.entry.prompt,
                tx_hash=item.user_tx_hash,
                status=MessageStatus.CONFIRMED,
                message_id=item.message_id,
            )
        )
        if item.entry.response:
            messages.append(
                DisplayMessage(
                    id=str(index * 2 + 1),
                    role=Role.ASSISTANT,
                    content=item.entry.response,
                    tx_hash=item.response_tx_hash,
                    status=MessageStatus.CONFIRMED,
                    message_id=item.message_id,
                )
            )

    logger.debug(
        "transcript_merged",
        strategy="conversation",
        entries=len(conversation),
        messages=len(messages),
    )
    return overlay_pending(messages, pending)


def merge_events(
    message_events: Iterable[MessageEvent],
    response_events: Iterable[ResponseEvent],
    pending: Optional[PendingMessage] = None,
) -> List[DisplayMessage]:
    """Strategy B: event-sourced transcript ordered by message id."""
    by_id: Dict[int, MessageEvent] = {}
    for event in message_events:
        by_id.setdefault(event.message_id, event)
    responses: Dict[int, ResponseEvent] = {}
    for event in response_events:
        responses.setdefault(event.message_id, event)

    messages: List[DisplayMessage] = []
    for message_id in sorted(by_id):
        event = by_id[message_id]
        messages.append(
            DisplayMessage(
                id=f"m{message_id}",
                role=Role.USER,
                content=event.prompt,
                tx_hash=event.tx_hash,
                status=MessageStatus.CONFIRMED,
                message_id=message_id,
            )
        )
        response = responses.get(message_id)
        if response is not None:
            messages.append(
                DisplayMessage(
                    id=f"r{message_id}",
                    role=Role.ASSISTANT,
                    content=response.response,
                    tx_hash=response.tx_hash,
                    status=MessageStatus.CONFIRMED,
                    message_id=message_id,
                )
            )

    logger.debug(
        "transcript_merged",
        strategy="events",
        entries=len(by_id),
        messages=len(messages),
    )
    return overlay_pending(messages, pending)


def overlay_pending(
    messages: List[DisplayMessage],
    pending: Optional[PendingMessage],
) -> List[DisplayMessage]:
    """Append the pending entry unless its content already landed."""
    if pending is None:
        return messages
    landed = any(
        m.role is Role.USER and m.content == pending.content for m in messages
    )
    if landed:
        return messages
    return messages + [
        DisplayMessage(
            id=f"pending-{pending.local_id}",
            role=Role.USER,
            content=pending.content,
            tx_hash=pending.tx_hash,
            status=pending.status,
        )
    ]


def build_transcript(
    conversation: Optional[Sequence[ConversationEntry]],
    snapshot: EventSnapshot,
    pending: Optional[PendingMessage] = None,
) -> List[DisplayMessage]:
    """Pick the conversation strategy when a snapshot read exists, else events."""
    if conversation is not None:
        return merge_conversation(
            conversation, CorrelationMap.from_snapshot(snapshot), pending
        )
    return merge_events(snapshot.messages, snapshot.responses.values(), pending)


__all__ = [
    "build_transcript",
    "merge_conversation",
    "merge_events",
    "overlay_pending",
]

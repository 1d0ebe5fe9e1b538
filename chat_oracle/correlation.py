"""Attach message ids and transaction hashes to conversation entries.

The authoritative conversation read carries only prompt and response text, so
entries are matched to ``MessageSent`` events by prompt text. Both sides are in
submission order, which makes correlation an alignment problem: an entry may
only take a message id greater than the id given to any earlier entry, and
each id is used at most once.

Among alignments the one matching the most entries wins; ties go to the one
where more entries agree with the recorded ``ResponseReceived`` text. A
response event whose text contradicts an entry's response rules that pairing
out. Entries left unmatched (their event is not ingested yet, or the prompt
repeats with nothing to tell the copies apart) are shown without a
transaction link.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from chat_oracle.models import ConversationEntry
from chat_oracle.store.event_store import EventSnapshot, EventStore
from chat_oracle.utils.logging import get_logger

logger = get_logger(__name__)

# (conversation index, message id, weight)
_Pair = Tuple[int, int, int]


@dataclass(frozen=True)
class CorrelationMap:
    """Lookup tables used to enrich conversation entries.

    ``prompt_to_message_ids`` lists every message id seen for a prompt in
    ascending order.
    """

    prompt_to_message_ids: Dict[str, Tuple[int, ...]] = field(default_factory=dict)
    message_tx_hashes: Dict[int, str] = field(default_factory=dict)
    response_tx_hashes: Dict[int, str] = field(default_factory=dict)
    response_texts: Dict[int, str] = field(default_factory=dict)

    @classmethod
    def from_store(cls, store: EventStore) -> "CorrelationMap":
        return cls.from_snapshot(store.snapshot())

    @classmethod
    def from_snapshot(cls, snapshot: EventSnapshot) -> "CorrelationMap":
        ids: Dict[str, List[int]] = {}
        for event in snapshot.messages:
            # snapshot messages are ascending, so each list is sorted
            ids.setdefault(event.prompt, []).append(event.message_id)
        return cls(
            prompt_to_message_ids={p: tuple(v) for p, v in ids.items()},
            message_tx_hashes=snapshot.message_tx_hashes(),
            response_tx_hashes=snapshot.response_tx_hashes(),
            response_texts={
                mid: event.response for mid, event in snapshot.responses.items()
            },
        )

    @property
    def prompt_to_message_id(self) -> Dict[str, int]:
        """Latest message id per prompt."""
        return {p: ids[-1] for p, ids in self.prompt_to_message_ids.items() if ids}


@dataclass(frozen=True)
class CorrelatedEntry:
    entry: ConversationEntry
    message_id: Optional[int] = None
    user_tx_hash: Optional[str] = None
    response_tx_hash: Optional[str] = None


class _PrefixMax:
    """Fenwick tree answering "best (score, pair) among ranks 1..n"."""

    def __init__(self, size: int) -> None:
        self._tree: List[Tuple[int, int]] = [(0, -1)] * (size + 1)

    def update(self, rank: int, value: Tuple[int, int]) -> None:
        while rank < len(self._tree):
            # strict: on equal scores the earlier pair stays
            if value[0] > self._tree[rank][0]:
                self._tree[rank] = value
            rank += rank & -rank

    def query(self, rank: int) -> Tuple[int, int]:
        best = (0, -1)
        while rank > 0:
            if self._tree[rank][0] > best[0]:
                best = self._tree[rank]
            rank -= rank & -rank
        return best


def correlate(
    conversation: Sequence[ConversationEntry],
    correlation: CorrelationMap,
) -> List[CorrelatedEntry]:
    """Resolve ids and hashes for each entry; misses degrade silently."""
    assigned = _align(conversation, correlation)

    resolved: List[CorrelatedEntry] = []
    for index, entry in enumerate(conversation):
        message_id = assigned.get(index)
        if message_id is None:
            logger.debug("correlation_miss", index=index, prompt=entry.prompt[:30])
            resolved.append(CorrelatedEntry(entry=entry))
            continue
        resolved.append(
            CorrelatedEntry(
                entry=entry,
                message_id=message_id,
                user_tx_hash=correlation.message_tx_hashes.get(message_id),
                response_tx_hash=correlation.response_tx_hashes.get(message_id),
            )
        )
    return resolved


def _align(
    conversation: Sequence[ConversationEntry],
    correlation: CorrelationMap,
) -> Dict[int, int]:
    """Map conversation index to message id along a strictly increasing chain.

    Heaviest chain over the candidate (index, id) pairs, computed as a
    weighted longest increasing subsequence.
    """
    all_ids = sorted(
        {mid for ids in correlation.prompt_to_message_ids.values() for mid in ids}
    )
    if not all_ids or not conversation:
        return {}
    rank = {mid: position for position, mid in enumerate(all_ids, start=1)}
    # any extra match outweighs every possible response agreement
    match_weight = len(conversation) + 1

    pairs: List[_Pair] = []
    for index, entry in enumerate(conversation):
        ids = correlation.prompt_to_message_ids.get(entry.prompt, ())
        # descending ids keep two pairs of the same entry off one chain
        for message_id in reversed(ids):
            agreement = _response_agreement(
                entry, correlation.response_texts.get(message_id)
            )
            if agreement is None:
                continue
            pairs.append((index, message_id, match_weight + agreement))

    tree = _PrefixMax(len(all_ids))
    previous: List[int] = []
    best = (0, -1)
    for position, (_, message_id, weight) in enumerate(pairs):
        score, before = tree.query(rank[message_id] - 1)
        score += weight
        previous.append(before)
        tree.update(rank[message_id], (score, position))
        if score > best[0]:
            best = (score, position)

    assigned: Dict[int, int] = {}
    position = best[1]
    while position != -1:
        index, message_id, _ = pairs[position]
        assigned[index] = message_id
        position = previous[position]
    return assigned


def _response_agreement(
    entry: ConversationEntry, response: Optional[str]
) -> Optional[int]:
    """1 if texts agree, 0 if unknown, None if they contradict."""
    if response is None or not entry.response:
        return 0
    return 1 if response == entry.response else None


__all__ = ["CorrelatedEntry", "CorrelationMap", "correlate"]

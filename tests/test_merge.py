"""Tests for transcript reconciliation."""

from hypothesis import given
from hypothesis import strategies as st

from chat_oracle.correlation import CorrelationMap
from chat_oracle.merge import (
    build_transcript,
    merge_conversation,
    merge_events,
    overlay_pending,
)
from chat_oracle.models import (
    ConversationEntry,
    MessageEvent,
    MessageStatus,
    PendingMessage,
    ResponseEvent,
    Role,
)
from chat_oracle.store.event_store import EventStore


def tx(n: int) -> str:
    return "0x" + format(n, "064x")


def _contents(messages):
    return [(m.role, m.content) for m in messages]


class TestMergeConversation:
    """Strategy A: authoritative conversation plus correlation."""

    def test_enriches_entries_with_ids_and_hashes(self) -> None:
        conversation = [ConversationEntry("Hi", "Hello!")]
        correlation = CorrelationMap(
            prompt_to_message_ids={"Hi": (7,)},
            message_tx_hashes={7: tx(1)},
            response_tx_hashes={7: tx(2)},
        )

        result = merge_conversation(conversation, correlation)

        assert [m.id for m in result] == ["0", "1"]
        user, assistant = result
        assert user.role is Role.USER
        assert user.content == "Hi"
        assert user.tx_hash == tx(1)
        assert user.message_id == 7
        assert user.status is MessageStatus.CONFIRMED
        assert assistant.role is Role.ASSISTANT
        assert assistant.content == "Hello!"
        assert assistant.tx_hash == tx(2)
        assert assistant.message_id == 7

    def test_awaiting_response_emits_only_user_message(self) -> None:
        conversation = [
            ConversationEntry("one", "first"),
            ConversationEntry("two", ""),
        ]

        result = merge_conversation(conversation, CorrelationMap())

        assert [m.id for m in result] == ["0", "1", "2"]
        assert _contents(result) == [
            (Role.USER, "one"),
            (Role.ASSISTANT, "first"),
            (Role.USER, "two"),
        ]

    def test_missing_correlation_degrades_to_plain_text(self) -> None:
        result = merge_conversation(
            [ConversationEntry("Hi", "Hello!")], CorrelationMap()
        )

        assert all(m.tx_hash is None for m in result)
        assert all(m.message_id is None for m in result)

    def test_duplicate_prompt_id_goes_to_entry_with_matching_response(self) -> None:
        conversation = [
            ConversationEntry("again", "a1"),
            ConversationEntry("again", "a2"),
        ]
        correlation = CorrelationMap(
            prompt_to_message_ids={"again": (9,)},
            message_tx_hashes={9: tx(9)},
            response_tx_hashes={9: tx(10)},
            response_texts={9: "a2"},
        )

        result = merge_conversation(conversation, correlation)

        ids = [m.message_id for m in result if m.role is Role.USER]
        assert ids == [None, 9]
        assert result[0].tx_hash is None
        assert result[2].tx_hash == tx(9)
        assert result[3].tx_hash == tx(10)

    def test_is_idempotent(self) -> None:
        conversation = [ConversationEntry("Hi", "Hello!")]
        correlation = CorrelationMap(prompt_to_message_ids={"Hi": (1,)})

        assert merge_conversation(conversation, correlation) == merge_conversation(
            conversation, correlation
        )


class TestMergeEvents:
    """Strategy B: events only."""

    def test_orders_by_message_id(self) -> None:
        messages = [
            MessageEvent(2, "second", tx(2)),
            MessageEvent(1, "first", tx(1)),
        ]
        responses = [ResponseEvent(1, "reply one", tx(11))]

        result = merge_events(messages, responses)

        assert [m.id for m in result] == ["m1", "r1", "m2"]
        assert _contents(result) == [
            (Role.USER, "first"),
            (Role.ASSISTANT, "reply one"),
            (Role.USER, "second"),
        ]
        assert result[1].tx_hash == tx(11)

    def test_duplicate_deliveries_collapse(self) -> None:
        message = MessageEvent(3, "hello", tx(3))
        response = ResponseEvent(3, "hi there", tx(4))

        once = merge_events([message], [response])
        twice = merge_events([message, message], [response, response])

        assert once == twice
        assert len(twice) == 2

    def test_response_without_message_is_not_shown(self) -> None:
        result = merge_events([], [ResponseEvent(5, "orphan", tx(5))])

        assert result == []


class TestOverlayPending:
    def test_appends_pending_message(self) -> None:
        pending = PendingMessage(
            local_id=4, content="new", status=MessageStatus.PENDING
        )

        result = overlay_pending([], pending)

        assert len(result) == 1
        assert result[0].id == "pending-4"
        assert result[0].role is Role.USER
        assert result[0].status is MessageStatus.PENDING

    def test_hides_pending_once_content_landed(self) -> None:
        landed = merge_conversation(
            [ConversationEntry("Hi", "")], CorrelationMap()
        )
        pending = PendingMessage(
            local_id=1,
            content="Hi",
            tx_hash=tx(1),
            status=MessageStatus.CONFIRMED,
        )

        result = overlay_pending(landed, pending)

        assert result == landed

    def test_matching_assistant_content_does_not_hide_pending(self) -> None:
        landed = merge_conversation(
            [ConversationEntry("Q", "same text")], CorrelationMap()
        )
        pending = PendingMessage(local_id=1, content="same text")

        result = overlay_pending(landed, pending)

        assert result[-1].id == "pending-1"

    def test_failed_pending_keeps_error_status(self) -> None:
        pending = PendingMessage(
            local_id=2,
            content="oops",
            tx_hash=tx(2),
            status=MessageStatus.FAILED,
            error="Transaction failed on chain.",
        )

        result = overlay_pending([], pending)

        assert result[0].status is MessageStatus.FAILED
        assert result[0].tx_hash == tx(2)


class TestBuildTranscript:
    def test_uses_conversation_when_available(self) -> None:
        store = EventStore()
        store.add_messages([MessageEvent(1, "Hi", tx(1))])
        store.add_responses([ResponseEvent(1, "Hello!", tx(2))])

        result = build_transcript(
            [ConversationEntry("Hi", "Hello!")], store.snapshot()
        )

        assert [m.id for m in result] == ["0", "1"]
        assert result[0].tx_hash == tx(1)
        assert result[1].tx_hash == tx(2)

    def test_falls_back_to_events(self) -> None:
        store = EventStore()
        store.add_messages([MessageEvent(1, "Hi", tx(1))])

        result = build_transcript(None, store.snapshot())

        assert [m.id for m in result] == ["m1"]

    def test_confirmed_pending_disappears_after_events_arrive(self) -> None:
        store = EventStore()
        pending = PendingMessage(
            local_id=1,
            content="Hi",
            tx_hash=tx(1),
            status=MessageStatus.CONFIRMED,
        )

        before = build_transcript(None, store.snapshot(), pending)
        store.add_messages([MessageEvent(1, "Hi", tx(1))])
        after = build_transcript(None, store.snapshot(), pending)

        assert [m.id for m in before] == ["pending-1"]
        assert [m.id for m in after] == ["m1"]


message_ids = st.integers(min_value=1, max_value=50)
message_events = st.builds(
    MessageEvent,
    message_id=message_ids,
    prompt=st.text(min_size=1, max_size=10),
    tx_hash=st.integers(min_value=1, max_value=10**6).map(tx),
)
response_events = st.builds(
    ResponseEvent,
    message_id=message_ids,
    response=st.text(min_size=1, max_size=10),
    tx_hash=st.integers(min_value=1, max_value=10**6).map(tx),
)


@given(st.lists(message_events), st.lists(response_events))
def test_merge_events_user_ids_ascend(messages, responses) -> None:
    result = merge_events(messages, responses)
    user_ids = [m.message_id for m in result if m.role is Role.USER]
    assert user_ids == sorted(set(user_ids))


@given(st.lists(message_events), st.lists(response_events))
def test_merge_events_assistant_follows_its_user(messages, responses) -> None:
    result = merge_events(messages, responses)
    for index, message in enumerate(result):
        if message.role is Role.ASSISTANT:
            previous = result[index - 1]
            assert previous.role is Role.USER
            assert previous.message_id == message.message_id


@given(st.lists(message_events), st.lists(response_events))
def test_merge_events_ignores_delivery_order(messages, responses) -> None:
    # First delivery wins, so compare against the store's deduplicated view
    store = EventStore()
    store.add_messages(messages)
    store.add_responses(responses)
    snapshot = store.snapshot()

    forward = merge_events(snapshot.messages, snapshot.responses.values())
    backward = merge_events(
        reversed(snapshot.messages), reversed(list(snapshot.responses.values()))
    )

    assert forward == backward


class TestRepeatedPrompts:
    """Conversation strategy when the same prompt was sent more than once."""

    def test_resent_prompt_before_its_event_is_ingested(self) -> None:
        store = EventStore()
        store.add_messages([MessageEvent(1, "X", tx(1)), MessageEvent(2, "Y", tx(2))])
        store.add_responses(
            [ResponseEvent(1, "rx", tx(11)), ResponseEvent(2, "ry", tx(12))]
        )
        conversation = [
            ConversationEntry("X", "rx"),
            ConversationEntry("Y", "ry"),
            ConversationEntry("X", ""),
        ]

        result = build_transcript(conversation, store.snapshot())

        users = [
            (m.content, m.message_id, m.tx_hash)
            for m in result
            if m.role is Role.USER
        ]
        assert users == [("X", 1, tx(1)), ("Y", 2, tx(2)), ("X", None, None)]

    def test_resent_prompt_links_once_event_arrives(self) -> None:
        store = EventStore()
        store.add_messages(
            [
                MessageEvent(1, "X", tx(1)),
                MessageEvent(2, "Y", tx(2)),
                MessageEvent(3, "X", tx(3)),
            ]
        )
        conversation = [
            ConversationEntry("X", "rx"),
            ConversationEntry("Y", "ry"),
            ConversationEntry("X", ""),
        ]

        result = build_transcript(conversation, store.snapshot())

        users = [m.message_id for m in result if m.role is Role.USER]
        assert users == [1, 2, 3]

    def test_contradicting_response_blocks_the_pairing(self) -> None:
        store = EventStore()
        store.add_messages([MessageEvent(5, "again", tx(5))])
        store.add_responses([ResponseEvent(5, "second answer", tx(50))])
        conversation = [
            ConversationEntry("again", "first answer"),
            ConversationEntry("again", "second answer"),
        ]

        result = build_transcript(conversation, store.snapshot())

        users = [m.message_id for m in result if m.role is Role.USER]
        assert users == [None, 5]


prompts = st.sampled_from(["X", "Y", "Z"])
responses = st.one_of(st.just(""), st.sampled_from(["r1", "r2", "r3"]))


@st.composite
def ledger_views(draw):
    """A submission history plus the partial views a client may hold of it.

    Message ``i`` has id ``i + 1``. Any event may be missing, and the
    conversation read may lag behind the response events.
    """
    history = draw(st.lists(st.tuples(prompts, responses), max_size=12))
    conversation = []
    messages = []
    replies = []
    for index, (prompt, response) in enumerate(history):
        message_id = index + 1
        stale = draw(st.booleans())
        conversation.append(ConversationEntry(prompt, "" if stale else response))
        if draw(st.booleans()):
            messages.append(MessageEvent(message_id, prompt, tx(message_id)))
        if response and draw(st.booleans()):
            replies.append(ResponseEvent(message_id, response, tx(1000 + message_id)))
    store = EventStore()
    store.add_messages(messages)
    store.add_responses(replies)
    return history, conversation, store.snapshot()


@given(ledger_views())
def test_merge_conversation_user_ids_increase(view) -> None:
    _, conversation, snapshot = view
    result = build_transcript(conversation, snapshot)
    user_ids = [
        m.message_id for m in result if m.role is Role.USER and m.message_id is not None
    ]
    assert user_ids == sorted(set(user_ids))


@given(ledger_views())
def test_merge_conversation_role_and_id_unique(view) -> None:
    _, conversation, snapshot = view
    result = build_transcript(conversation, snapshot)
    keys = [(m.role, m.message_id) for m in result if m.message_id is not None]
    assert len(keys) == len(set(keys))


@given(ledger_views())
def test_merge_conversation_is_deterministic(view) -> None:
    _, conversation, snapshot = view
    assert build_transcript(conversation, snapshot) == build_transcript(
        conversation, snapshot
    )


@given(ledger_views())
def test_merge_conversation_links_match_prompt(view) -> None:
    history, conversation, snapshot = view
    result = build_transcript(conversation, snapshot)
    for message in result:
        if message.role is Role.USER and message.message_id is not None:
            assert history[message.message_id - 1][0] == message.content


@given(st.lists(st.tuples(prompts, responses), max_size=12))
def test_merge_conversation_complete_events_link_every_entry(history) -> None:
    store = EventStore()
    store.add_messages(
        [
            MessageEvent(i + 1, prompt, tx(i + 1))
            for i, (prompt, _) in enumerate(history)
        ]
    )
    conversation = [ConversationEntry(p, r) for p, r in history]

    result = build_transcript(conversation, store.snapshot())

    user_ids = [m.message_id for m in result if m.role is Role.USER]
    assert user_ids == list(range(1, len(history) + 1))

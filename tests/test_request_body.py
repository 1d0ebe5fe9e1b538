import json

from chat_oracle.models import DisplayMessage, MessageStatus, Role
from chat_oracle.request_body import DEFAULT_MODEL, SYSTEM_PROMPT, encode_request


def _message(index, role, content, status=MessageStatus.CONFIRMED):
    return DisplayMessage(id=str(index), role=role, content=content, status=status)


def test_encodes_prompt_with_system_message() -> None:
    body = json.loads(encode_request("Hello"))

    assert body["model"] == DEFAULT_MODEL
    assert body["messages"] == [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": "Hello"},
    ]


def test_includes_confirmed_history_only() -> None:
    history = [
        _message(0, Role.USER, "Hi"),
        _message(1, Role.ASSISTANT, "Hello!"),
        _message(2, Role.USER, "lost", status=MessageStatus.FAILED),
    ]

    body = json.loads(encode_request("Next", history))

    assert [m["content"] for m in body["messages"][1:]] == ["Hi", "Hello!", "Next"]
    assert body["messages"][2]["role"] == "assistant"


def test_history_is_limited_and_truncated() -> None:
    history = [_message(i, Role.USER, f"message {i}") for i in range(10)]
    history.append(_message(10, Role.ASSISTANT, "x" * 50))

    body = json.loads(
        encode_request("Q", history, model="m", max_history=3, max_content_chars=10)
    )
    contents = [m["content"] for m in body["messages"][1:-1]]

    assert body["model"] == "m"
    assert contents == ["message 8", "message 9", "x" * 9 + "…"]


def test_zero_history_sends_prompt_only() -> None:
    history = [_message(0, Role.USER, "Hi")]

    body = json.loads(encode_request("Q", history, max_history=0))

    assert len(body["messages"]) == 2


def test_body_is_utf8() -> None:
    raw = encode_request("héllo ✓")

    assert isinstance(raw, bytes)
    assert "héllo ✓" in raw.decode("utf-8")

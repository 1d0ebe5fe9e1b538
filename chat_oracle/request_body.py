"""Encode the chat-completions request the oracle forwards to the AI provider."""

from __future__ import annotations

import json
from typing import Dict, List, Sequence

from chat_oracle.models import DisplayMessage, MessageStatus
from chat_oracle.utils.formatting import truncate

SYSTEM_PROMPT = (
    "You are a helpful assistant responding to blockchain users. "
    "Keep responses concise."
)
DEFAULT_MODEL = "gpt-4o-search-preview"
MAX_HISTORY_MESSAGES = 20
MAX_HISTORY_CONTENT_CHARS = 2000


def encode_request(
    prompt: str,
    history: Sequence[DisplayMessage] = (),
    model: str = DEFAULT_MODEL,
    max_history: int = MAX_HISTORY_MESSAGES,
    max_content_chars: int = MAX_HISTORY_CONTENT_CHARS,
) -> bytes:
    """Return the UTF-8 JSON body for a chat-completions call.

    Only confirmed transcript entries are sent as history, newest
    ``max_history`` of them, each cut to ``max_content_chars``.
    """
    confirmed = [m for m in history if m.status is MessageStatus.CONFIRMED]
    recent = confirmed[-max_history:] if max_history > 0 else []

    messages: List[Dict[str, str]] = [{"role": "system", "content": SYSTEM_PROMPT}]
    for message in recent:
        messages.append(
            {
                "role": message.role.value,
                "content": truncate(message.content, max_content_chars),
            }
        )
    messages.append({"role": "user", "content": prompt})

    body = {"model": model, "messages": messages}
    return json.dumps(body, ensure_ascii=False).encode("utf-8")


__all__ = ["DEFAULT_MODEL", "MAX_HISTORY_MESSAGES", "SYSTEM_PROMPT", "encode_request"]

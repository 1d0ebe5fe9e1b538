"""Shared record types for the conversation reconciliation engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class MessageStatus(str, Enum):
    """Lifecycle status shown next to a transcript entry."""

    PENDING = "pending"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class EventKind(str, Enum):
    """Contract events consumed by ingestion; values match the ABI names."""

    MESSAGE_SENT = "MessageSent"
    RESPONSE_RECEIVED = "ResponseReceived"


@dataclass(frozen=True)
class ConversationEntry:
    """One prompt/response pair from the authoritative conversation read.

    An empty ``response`` means the oracle has not answered yet.
    """

    prompt: str
    response: str = ""


@dataclass(frozen=True)
class MessageEvent:
    message_id: int
    prompt: str
    tx_hash: str
    block_number: Optional[int] = None


@dataclass(frozen=True)
class ResponseEvent:
    message_id: int
    response: str
    tx_hash: str
    block_number: Optional[int] = None


@dataclass
class PendingMessage:
    """Locally submitted message that the ledger has not absorbed yet.

    Attributes:
        local_id: Session-local counter value, never sent to the chain.
        content: Prompt text as typed by the user.
        tx_hash: Set once the submission call returns a transaction hash.
        status: One of pending, confirming, confirmed or failed.
        error: Friendly error text when the entry failed.
    """

    local_id: int
    content: str
    tx_hash: Optional[str] = None
    status: MessageStatus = MessageStatus.PENDING
    error: Optional[str] = None


@dataclass(frozen=True)
class DisplayMessage:
    """A single rendered transcript line."""

    id: str
    role: Role
    content: str
    tx_hash: Optional[str] = None
    status: Optional[MessageStatus] = None
    message_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "tx_hash": self.tx_hash,
            "status": self.status.value if self.status else None,
            "message_id": self.message_id,
        }


@dataclass(frozen=True)
class SurfacedError:
    """User-visible, dismissible error raised by a submission or withdrawal."""

    id: int
    message: str


__all__ = [
    "ConversationEntry",
    "DisplayMessage",
    "EventKind",
    "MessageEvent",
    "MessageStatus",
    "PendingMessage",
    "ResponseEvent",
    "Role",
    "SurfacedError",
]

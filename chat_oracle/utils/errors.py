"""Error types and user-facing error classification."""

from __future__ import annotations

import re
from typing import List, Pattern, Tuple, Union


class ChatOracleError(Exception):
    """Base class for errors raised by the chat engine."""


class SubmissionError(ChatOracleError):
    """The message transaction could not be submitted."""


class ConfirmationError(ChatOracleError):
    """The transaction was submitted but did not confirm successfully."""


class SubmissionInProgressError(ChatOracleError):
    """A new message was sent while the previous one is still in flight."""


RATE_LIMITED = "Rate limited by the AI provider. Please wait a moment and try again."
PROVIDER_UNREACHABLE = "Could not reach the AI provider. Please try again shortly."
RPC_UNREACHABLE = "Unable to reach the blockchain RPC endpoint. Check your connection."
USER_REJECTED = "Transaction was rejected in the wallet."
INSUFFICIENT_FUNDS = "Insufficient funds to cover the deposit and gas."

# First match wins; order from most to least specific.
_ERROR_PATTERNS: List[Tuple[Pattern[str], str]] = [
    (re.compile(r"user (rejected|denied)|rejected the request", re.I), USER_REJECTED),
    (re.compile(r"insufficient funds", re.I), INSUFFICIENT_FUNDS),
    (re.compile(r"\b429\b|rate.?limit|too many requests", re.I), RATE_LIMITED),
    (
        re.compile(
            r"(openai|upstream|ai provider|oracle).*(fetch failed|unreachable|timed? ?out|"
            r"econnrefused|econnreset|connection)",
            re.I,
        ),
        PROVIDER_UNREACHABLE,
    ),
    (
        re.compile(
            r"could not connect|connection (refused|error|aborted|reset)|"
            r"failed to establish|httpconnectionpool|cannot connect to host|"
            r"\brpc\b.*(error|unavailable|timeout)",
            re.I,
        ),
        RPC_UNREACHABLE,
    ),
]


def classify_submission_error(error: Union[BaseException, str, None]) -> str:
    """Map a raw submission error to a friendlier message.

    Falls back to the raw text when no known pattern matches.
    """
    if error is None:
        return "Unknown error"
    raw = str(error).strip()
    if not raw:
        return "Unknown error" if isinstance(error, str) else type(error).__name__
    for pattern, friendly in _ERROR_PATTERNS:
        if pattern.search(raw):
            return friendly
    return raw


__all__ = [
    "ChatOracleError",
    "ConfirmationError",
    "SubmissionError",
    "SubmissionInProgressError",
    "classify_submission_error",
]

"""CLI output formatting for terminal display.

Renders the reconciled transcript, the balance header and surfaced errors as
plain text or JSON.
"""

from __future__ import annotations

import json
import sys
from enum import Enum
from typing import Any, List, Optional, Sequence

from chat_oracle.balance import BalanceView
from chat_oracle.models import DisplayMessage, MessageStatus, Role, SurfacedError
from chat_oracle.utils.formatting import explorer_tx_url, short_ref

STATUS_LABELS = {
    MessageStatus.PENDING: "Waiting for wallet...",
    MessageStatus.CONFIRMING: "Confirming on chain...",
    MessageStatus.FAILED: "Failed",
}


class OutputFormat(Enum):
    """Supported output formats."""

    TEXT = "text"
    JSON = "json"


class CLIOutput:
    """Unified output handler for CLI."""

    def __init__(
        self,
        format: OutputFormat = OutputFormat.TEXT,
        stream: Any = None,
        explorer_url: Optional[str] = None,
        currency_symbol: str = "ETH",
    ) -> None:
        self.format = format
        self.stream = stream or sys.stdout
        self.explorer_url = explorer_url
        self.currency_symbol = currency_symbol

    def transcript(self, messages: Sequence[DisplayMessage]) -> None:
        """Output the full transcript."""
        if self.format == OutputFormat.JSON:
            print(
                json.dumps({"messages": [m.to_dict() for m in messages]}, indent=2),
                file=self.stream,
            )
            return

        if not messages:
            print("Send a message to start chatting with AI on-chain", file=self.stream)
            return
        for message in messages:
            print(format_message_plain(message, self.explorer_url), file=self.stream)

    def balance(self, view: BalanceView) -> None:
        """Output the subscription header line."""
        if self.format == OutputFormat.JSON:
            print(
                json.dumps(
                    {
                        "has_subscription": view.has_active_subscription,
                        "needs_deposit": view.needs_deposit,
                        "balance": view.formatted_balance(),
                    }
                ),
                file=self.stream,
            )
            return
        print(format_balance_line(view, self.currency_symbol), file=self.stream)

    def errors(self, errors: Sequence[SurfacedError]) -> None:
        if self.format == OutputFormat.JSON:
            payload = [{"id": e.id, "message": e.message} for e in errors]
            print(json.dumps({"errors": payload}), file=self.stream)
            return
        if not errors:
            print("No errors.", file=self.stream)
            return
        for error in errors:
            print(f"[{error.id}] {error.message}", file=self.stream)

    def debug_lines(self, lines: Sequence[str]) -> None:
        """Output buffered log events, oldest first."""
        if self.format == OutputFormat.JSON:
            print(json.dumps({"debug": list(lines)}), file=self.stream)
            return
        if not lines:
            print("No debug events recorded.", file=self.stream)
            return
        for line in lines:
            print(line, file=self.stream)

    def status(self, message: str) -> None:
        """Output a status message."""
        if self.format == OutputFormat.JSON:
            return  # Suppress status in JSON mode
        print(f"... {message}", file=self.stream)

    def info(self, message: str) -> None:
        if self.format == OutputFormat.JSON:
            return
        print(message, file=self.stream)

    def warning(self, message: str) -> None:
        if self.format == OutputFormat.JSON:
            print(json.dumps({"warning": message}), file=sys.stderr)
            return
        print(f"warning: {message}", file=sys.stderr)

    def error(self, message: str) -> None:
        if self.format == OutputFormat.JSON:
            print(json.dumps({"error": message}), file=sys.stderr)
            return
        print(f"error: {message}", file=sys.stderr)


def format_message_plain(
    message: DisplayMessage, explorer_url: Optional[str] = None
) -> str:
    """Format one transcript line, e.g. ``you: Hi  [tx:abcdef]``."""
    speaker = "you" if message.role is Role.USER else "ai"
    line = f"{speaker}: {message.content}"

    tags: List[str] = []
    label = STATUS_LABELS.get(message.status) if message.status else None
    if label:
        tags.append(label)
    if message.tx_hash:
        tag = f"tx:{short_ref(message.tx_hash)}"
        url = explorer_tx_url(explorer_url, message.tx_hash)
        if url:
            tag += f" {url}"
        tags.append(tag)
    if tags:
        line += "  [" + " | ".join(tags) + "]"
    return line


def format_balance_line(view: BalanceView, currency_symbol: str = "ETH") -> str:
    if not view.has_active_subscription:
        return "No subscription (first message requires a deposit)"
    balance = view.formatted_balance()
    line = f"Balance: {balance if balance is not None else '...'} {currency_symbol}"
    if view.needs_deposit:
        line += " (deposit required)"
    return line


__all__ = [
    "CLIOutput",
    "OutputFormat",
    "format_balance_line",
    "format_message_plain",
]

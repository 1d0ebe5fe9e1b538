"""CLI interface for the on-chain AI chat.

Usage:
    python -m chat_oracle.cli                  # print the transcript once
    python -m chat_oracle.cli --interactive    # chat REPL
    python -m chat_oracle.cli --output json
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from chat_oracle.chain_client import ChainClient
from chat_oracle.cli_output import CLIOutput, OutputFormat
from chat_oracle.config import load_settings
from chat_oracle.session import ChatSession
from chat_oracle.utils.errors import SubmissionInProgressError
from chat_oracle.utils.logging import configure_logging, get_logger, recent_events

logger = get_logger(__name__)

HELP_TEXT = (
    "Commands: /refresh, /balance, /withdraw, /errors, /dismiss <id>, "
    "/debug [n], /help, /quit"
)


async def run_interactive(session: ChatSession, output: CLIOutput) -> None:
    """Run interactive REPL session."""
    output.info("On-Chain AI Chat - Interactive Mode")
    output.info(HELP_TEXT)
    output.info("-" * 50)
    output.balance(session.balance)
    output.transcript(session.transcript())

    while True:
        try:
            # Read input off the loop so polling and watchers keep running
            line = (await asyncio.to_thread(input, "\n> ")).strip()
        except (EOFError, KeyboardInterrupt):
            output.info("\nGoodbye!")
            break

        if not line:
            continue

        if line.startswith("/"):
            command, _, argument = line.partition(" ")
            command = command.lower()
            if command in ("/quit", "/exit", "/q"):
                output.info("Goodbye!")
                break
            elif command in ("/help", "/h"):
                output.info(HELP_TEXT)
            elif command == "/refresh":
                await session.refresh()
                await session.ingestion.backfill()
                output.transcript(session.transcript())
            elif command == "/balance":
                output.balance(session.balance)
            elif command == "/withdraw":
                output.status("Withdrawing subscription balance...")
                await session.withdraw()
                output.balance(session.balance)
            elif command == "/errors":
                output.errors(session.errors)
            elif command == "/debug":
                try:
                    limit = int(argument) if argument.strip() else None
                except ValueError:
                    output.warning("Usage: /debug [n]")
                    continue
                output.debug_lines(recent_events.lines(limit))
            elif command == "/dismiss":
                try:
                    error_id = int(argument)
                except ValueError:
                    output.warning("Usage: /dismiss <id>")
                    continue
                if not session.dismiss_error(error_id):
                    output.warning(f"No error with id {error_id}")
            else:
                output.warning(f"Unknown command: {line}")
            continue

        try:
            output.status("Sending message...")
            await session.send(line)
        except SubmissionInProgressError as exc:
            output.warning(str(exc))
            continue
        output.transcript(session.transcript())
        for error in session.errors:
            output.error(f"[{error.id}] {error.message}")


async def main() -> None:
    """CLI entrypoint."""
    parser = argparse.ArgumentParser(
        description="Chat with an AI oracle whose messages live on-chain",
    )
    parser.add_argument(
        "-i",
        "--interactive",
        action="store_true",
        help="Start interactive REPL mode",
    )
    parser.add_argument(
        "-o",
        "--output",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log at DEBUG level",
    )
    parser.add_argument(
        "--events-only",
        action="store_true",
        help="Build the transcript from contract events instead of getConversation",
    )
    args = parser.parse_args()

    output_format = OutputFormat(args.output)

    try:
        settings = load_settings()
    except Exception as exc:
        CLIOutput(format=output_format).error(f"Failed to load settings: {exc}")
        sys.exit(1)

    output = CLIOutput(
        format=output_format,
        explorer_url=settings.explorer_url,
        currency_symbol=settings.currency_symbol,
    )
    configure_logging(
        "DEBUG" if args.verbose else settings.log_level,
        log_file=settings.log_file,
        debug_buffer_size=settings.debug_buffer_size,
    )

    client = ChainClient(
        rpc_url=settings.rpc_url,
        contract_address=settings.contract_address,
        account=settings.user_address,
        watch_interval_seconds=settings.watch_interval_seconds,
        confirmation_timeout_seconds=settings.confirmation_timeout_seconds,
    )
    scheduler = AsyncIOScheduler()
    session = ChatSession.from_settings(client, settings, scheduler)
    if args.events_only:
        session.snapshot_reads_enabled = False

    scheduler.start()
    try:
        output.status("Loading conversation...")
        await session.start()
        if args.interactive:
            await run_interactive(session, output)
        else:
            output.balance(session.balance)
            output.transcript(session.transcript())
    except KeyboardInterrupt:
        output.info("\nInterrupted")
    finally:
        scheduler.shutdown(wait=False)
        await session.shutdown()


def cli_main() -> None:
    """Synchronous wrapper for CLI entry."""
    asyncio.run(main())


if __name__ == "__main__":
    cli_main()

"""Async web3 client for the ChatOracle contract."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from web3 import AsyncWeb3
from web3.exceptions import TimeExhausted

from chat_oracle.abi import CHAT_ORACLE_ABI
from chat_oracle.models import ConversationEntry, EventKind
from chat_oracle.utils.errors import ConfirmationError, SubmissionError
from chat_oracle.utils.logging import get_logger

logger = get_logger(__name__)

BlockRef = Union[int, str]

DEFAULT_WATCH_INTERVAL_SECONDS = 2.0
DEFAULT_CONFIRMATION_TIMEOUT_SECONDS = 120.0
REQUEST_TIMEOUT_SECONDS = 30


def to_hex_hash(value: Any) -> str:
    """Render a transaction hash (bytes or str) as a 0x-prefixed string."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value)
    return text if text.startswith("0x") else "0x" + text


class ChainClient:
    """Ledger reads, event access and submissions over JSON-RPC.

    Signing is delegated to the node: transactions are sent with
    ``eth_sendTransaction`` from ``account``.
    """

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        account: Optional[str] = None,
        watch_interval_seconds: float = DEFAULT_WATCH_INTERVAL_SECONDS,
        confirmation_timeout_seconds: float = DEFAULT_CONFIRMATION_TIMEOUT_SECONDS,
    ) -> None:
        self.w3 = AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                rpc_url, request_kwargs={"timeout": REQUEST_TIMEOUT_SECONDS}
            )
        )
        self.contract = self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(contract_address),
            abi=CHAT_ORACLE_ABI,
        )
        self.account = AsyncWeb3.to_checksum_address(account) if account else None
        self.watch_interval_seconds = watch_interval_seconds
        self.confirmation_timeout_seconds = confirmation_timeout_seconds
        self._watch_tasks: List[asyncio.Task[None]] = []

    async def get_conversation(self, user: str) -> List[ConversationEntry]:
        raw = await self.contract.functions.getConversation(
            AsyncWeb3.to_checksum_address(user)
        ).call()
        return [ConversationEntry(prompt=item[0], response=item[1]) for item in raw]

    async def get_subscription(self, user: str) -> int:
        return await self.contract.functions.getUserSubscription(
            AsyncWeb3.to_checksum_address(user)
        ).call()

    async def get_balance(self, subscription_id: int) -> int:
        return await self.contract.functions.getSubscriptionBalance(
            subscription_id
        ).call()

    async def query_logs(
        self,
        kind: EventKind,
        from_block: BlockRef,
        to_block: BlockRef = "latest",
        argument_filters: Optional[Dict[str, Any]] = None,
    ) -> Sequence[Any]:
        event = getattr(self.contract.events, kind.value)()
        return await event.get_logs(
            argument_filters=argument_filters,
            from_block=from_block,
            to_block=to_block,
        )

    def subscribe(
        self,
        kind: EventKind,
        on_batch: Callable[[Sequence[Any]], None],
        on_error: Callable[[BaseException], None],
        argument_filters: Optional[Dict[str, Any]] = None,
    ) -> asyncio.Task[None]:
        """Watch for new logs of ``kind`` from the current head onwards."""
        task = asyncio.create_task(
            self._watch(kind, on_batch, on_error, argument_filters),
            name=f"watch_{kind.value}",
        )
        self._watch_tasks.append(task)
        return task

    async def _watch(
        self,
        kind: EventKind,
        on_batch: Callable[[Sequence[Any]], None],
        on_error: Callable[[BaseException], None],
        argument_filters: Optional[Dict[str, Any]],
    ) -> None:
        last_block: Optional[int] = None
        while True:
            try:
                head = await self.w3.eth.block_number
                if last_block is None:
                    last_block = head
                elif head > last_block:
                    logs = await self.query_logs(
                        kind, last_block + 1, head, argument_filters
                    )
                    last_block = head
                    if logs:
                        on_batch(list(logs))
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                on_error(exc)
            await asyncio.sleep(self.watch_interval_seconds)

    async def submit(self, prompt: str, body: bytes, value: int) -> str:
        """Send ``sendMessage`` and return the transaction hash."""
        if not self.account:
            raise SubmissionError("No sender account configured")
        tx_hash = await self.contract.functions.sendMessage(prompt, body).transact(
            {"from": self.account, "value": value}
        )
        logger.info("message_submitted", tx_hash=to_hex_hash(tx_hash), value=value)
        return to_hex_hash(tx_hash)

    async def withdraw(self) -> str:
        if not self.account:
            raise SubmissionError("No sender account configured")
        tx_hash = await self.contract.functions.withdraw().transact(
            {"from": self.account}
        )
        logger.info("withdraw_submitted", tx_hash=to_hex_hash(tx_hash))
        return to_hex_hash(tx_hash)

    async def await_confirmation(self, tx_hash: str) -> bool:
        """Wait for the receipt; True when the transaction succeeded."""
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.confirmation_timeout_seconds
            )
        except TimeExhausted as exc:
            raise ConfirmationError(
                f"No receipt after {self.confirmation_timeout_seconds:g}s for {tx_hash}"
            ) from exc
        return receipt["status"] == 1

    async def close(self) -> None:
        """Stop event watchers and release the HTTP session."""
        for task in self._watch_tasks:
            task.cancel()
        for task in self._watch_tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._watch_tasks.clear()
        await self.w3.provider.disconnect()


__all__ = ["ChainClient", "to_hex_hash"]

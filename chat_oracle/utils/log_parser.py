"""Normalize raw contract log records into typed events.

Records come from web3 ``get_logs`` (``AttributeDict`` with an ``args``
mapping and ``HexBytes`` hashes) or from plain dicts with flattened fields.
Anything that lacks a decodable message id, the payload field or a
transaction hash is dropped rather than raised.
"""

from typing import Any, Iterable, List, Mapping, Optional

from chat_oracle.models import MessageEvent, ResponseEvent


def parse_message_logs(records: Iterable[Any]) -> List[MessageEvent]:
    """Extract ``MessageSent`` events, skipping malformed records."""
    events: List[MessageEvent] = []
    for record in records or []:
        if not isinstance(record, Mapping):
            continue
        args = _event_args(record)
        message_id = _decode_message_id(args.get("messageId"))
        prompt = args.get("prompt")
        tx_hash = _decode_tx_hash(record)
        if message_id is None or not isinstance(prompt, str) or not tx_hash:
            continue
        events.append(
            MessageEvent(
                message_id=message_id,
                prompt=prompt,
                tx_hash=tx_hash,
                block_number=_decode_block(record),
            )
        )
    return events


def parse_response_logs(records: Iterable[Any]) -> List[ResponseEvent]:
    """Extract ``ResponseReceived`` events, skipping malformed records."""
    events: List[ResponseEvent] = []
    for record in records or []:
        if not isinstance(record, Mapping):
            continue
        args = _event_args(record)
        message_id = _decode_message_id(args.get("messageId"))
        response = args.get("response")
        tx_hash = _decode_tx_hash(record)
        if message_id is None or not isinstance(response, str) or not tx_hash:
            continue
        events.append(
            ResponseEvent(
                message_id=message_id,
                response=response,
                tx_hash=tx_hash,
                block_number=_decode_block(record),
            )
        )
    return events


def _event_args(record: Mapping[str, Any]) -> Mapping[str, Any]:
    """Return decoded event arguments, supporting flattened records."""
    args = record.get("args")
    if isinstance(args, Mapping):
        return args
    return record


def _decode_message_id(value: Any) -> Optional[int]:
    """Decode a 1-based message id from int, decimal or hex string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        decoded = value
    elif isinstance(value, str):
        try:
            decoded = int(value.strip(), 0)
        except ValueError:
            return None
    else:
        return None
    return decoded if decoded > 0 else None


def _decode_tx_hash(record: Mapping[str, Any]) -> Optional[str]:
    value = record.get("transactionHash") or record.get("txHash") or record.get("tx_hash")
    if isinstance(value, (bytes, bytearray)):
        # HexBytes.hex() dropped its 0x prefix in hexbytes 1.0
        return "0x" + bytes(value).hex() if value else None
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _decode_block(record: Mapping[str, Any]) -> Optional[int]:
    value = record.get("blockNumber")
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


__all__ = ["parse_message_logs", "parse_response_logs"]

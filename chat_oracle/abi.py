"""ABI fragments of the ChatOracle contract used by the client."""

from __future__ import annotations

from typing import Any, Dict, List

CHAT_ORACLE_ABI: List[Dict[str, Any]] = [
    {
        "type": "function",
        "name": "sendMessage",
        "inputs": [
            {"name": "prompt", "type": "string"},
            {"name": "body", "type": "bytes"},
        ],
        "outputs": [{"name": "messageId", "type": "uint256"}],
        "stateMutability": "payable",
    },
    {
        "type": "function",
        "name": "getConversation",
        "inputs": [{"name": "user", "type": "address"}],
        "outputs": [
            {
                "name": "",
                "type": "tuple[]",
                "components": [
                    {"name": "prompt", "type": "string"},
                    {"name": "response", "type": "string"},
                ],
            }
        ],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "getUserSubscription",
        "inputs": [{"name": "user", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "getSubscriptionBalance",
        "inputs": [{"name": "subscriptionId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "withdraw",
        "inputs": [],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "event",
        "name": "MessageSent",
        "anonymous": False,
        "inputs": [
            {"name": "user", "type": "address", "indexed": True},
            {"name": "messageId", "type": "uint256", "indexed": True},
            {"name": "prompt", "type": "string", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": "ResponseReceived",
        "anonymous": False,
        "inputs": [
            {"name": "messageId", "type": "uint256", "indexed": True},
            {"name": "response", "type": "string", "indexed": False},
        ],
    },
]

__all__ = ["CHAT_ORACLE_ABI"]

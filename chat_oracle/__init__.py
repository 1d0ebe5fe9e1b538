"""On-chain AI chat: reconciles ledger conversation state, contract events and
optimistic local submissions into one transcript."""

__version__ = "0.1.0"

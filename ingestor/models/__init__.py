from .base import Base
from .block import Block
from .sync_state import SYNC_STATE_ID, SyncState
from .token_transfer import TokenTransfer
from .transaction import Transaction

__all__ = [
    "Base",
    "Block",
    "SYNC_STATE_ID",
    "SyncState",
    "TokenTransfer",
    "Transaction",
]

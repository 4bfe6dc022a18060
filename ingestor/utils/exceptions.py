"""
Ingestion exceptions and error taxonomy
"""

from typing import Optional


class IndexerError(Exception):

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ChainUnavailable(IndexerError):
    """Chain node could not be reached after all retries"""

    pass


class JSONRPCError(ChainUnavailable):

    def __init__(self, code: Optional[int], message: str, method: Optional[str] = None):
        self.code = code
        self.method = method
        super().__init__(f"RPC error {code} in {method}: {message}")
        self.message = message


class NotYetMined(IndexerError):
    """Requested block (or its receipts) is not available on the node yet"""

    def __init__(self, block_number: int, message: Optional[str] = None):
        self.block_number = block_number
        super().__init__(message or f"Block {block_number} is not yet mined")


class ReorgDepthExceeded(IndexerError):

    def __init__(self, block_number: int, max_depth: int, fork_point: int):
        self.block_number = block_number
        self.max_depth = max_depth
        self.fork_point = fork_point
        super().__init__(
            f"Reorg at block {block_number} is deeper than {max_depth} blocks, "
            f"fork point pinned at {fork_point}"
        )


class StorageError(IndexerError):

    pass


class ValidationError(IndexerError):
    """Malformed job payload or arguments"""

    pass

"""
EVM JSON-RPC client for chain node interaction.
"""

import itertools
import time
import random
from typing import Any, Dict, List, Optional
from functools import wraps
from enum import Enum

import httpx
import structlog

from ingestor.config import settings
from ingestor.utils.evm import block_number_to_hex, hex_to_int
from ingestor.utils.exceptions import ChainUnavailable, JSONRPCError

logger = structlog.get_logger()

TRANSIENT_HTTP_STATUSES = {429, 500, 502, 503, 504}


class ConnectionState(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILED = "failed"


def is_transient_error(error: Exception) -> bool:
    """Network-level failures worth retrying; node error objects are not"""
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in TRANSIENT_HTTP_STATUSES
    return False


def retry_on_rpc_error(
    max_retries: Optional[int] = None,
    base_delay: Optional[float] = None,
    backoff: float = 1.0,
    max_delay: float = 30.0,
):
    """
    Decorator for bounded retry on transient RPC errors.

    Args:
        max_retries: Maximum number of retry attempts (default: client setting)
        base_delay: Delay in seconds between retries (default: client setting)
        backoff: Multiplier applied to the delay after each attempt; 1.0 keeps it fixed
        max_delay: Maximum delay in seconds between retries
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            retries = self.max_retries if max_retries is None else max_retries
            delay_base = self.retry_delay if base_delay is None else base_delay
            last_exception = None

            for attempt in range(retries + 1):
                try:
                    result = func(self, *args, **kwargs)
                    self._connection_state = ConnectionState.HEALTHY
                    self._consecutive_failures = 0
                    return result
                except Exception as e:
                    if not is_transient_error(e):
                        raise

                    last_exception = e
                    self._consecutive_failures += 1
                    self._connection_state = ConnectionState.DEGRADED

                    if attempt == retries:
                        logger.error(
                            "RPC call failed after all retries",
                            function=func.__name__,
                            error=str(e),
                            attempts=attempt + 1,
                        )
                        break

                    delay = min(delay_base * (backoff**attempt), max_delay)
                    jitter = random.uniform(0, delay * 0.1)  # nosec B311
                    actual_delay = delay + jitter

                    logger.info(
                        "RPC call failed, retrying",
                        function=func.__name__,
                        error=str(e),
                        attempt=attempt + 1,
                        max_retries=retries,
                        retry_delay=actual_delay,
                    )

                    time.sleep(actual_delay)

            self._connection_state = ConnectionState.FAILED
            raise ChainUnavailable(
                f"{func.__name__} failed after {retries + 1} attempts: {last_exception}"
            ) from last_exception

        return wrapper

    return decorator


class ChainClient:
    """
    Thin JSON-RPC accessor for an EVM node.

    Every call goes to the upstream node; nothing is cached. Transient
    failures are retried a bounded number of times before surfacing
    ChainUnavailable to the caller.
    """

    def __init__(
        self,
        rpc_url: str = None,
        timeout: float = None,
        max_retries: int = None,
        retry_delay: float = None,
        http_client: httpx.Client = None,
    ):
        """
        Initialize the chain client.

        Args:
            rpc_url: JSON-RPC endpoint (default from settings)
            timeout: Request timeout in seconds (default from settings)
            max_retries: Retries on transient errors (default from settings)
            retry_delay: Delay between retries in seconds (default from settings)
            http_client: Preconfigured httpx client, mainly for tests
        """
        self.rpc_url = rpc_url or settings.CHAIN_RPC_URL
        if not self.rpc_url:
            raise ValueError("Chain RPC URL is required")

        self.timeout = timeout if timeout is not None else settings.RPC_TIMEOUT
        self.max_retries = max_retries if max_retries is not None else settings.RPC_MAX_RETRIES
        self.retry_delay = retry_delay if retry_delay is not None else settings.RPC_RETRY_DELAY

        self._client = http_client or httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            headers={"Content-Type": "application/json"},
        )
        self._ids = itertools.count(1)
        self._connection_state = ConnectionState.HEALTHY
        self._consecutive_failures = 0

        logger.info(
            "Chain client initialized",
            rpc_url=self.rpc_url,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
        )

    def _call(self, method: str, params: List[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        response = self._client.post(self.rpc_url, json=payload)
        response.raise_for_status()
        body = response.json()

        error = body.get("error")
        if error:
            raise JSONRPCError(error.get("code"), error.get("message", ""), method=method)

        return body.get("result")

    def get_connection_status(self) -> Dict[str, Any]:
        return {
            "state": self._connection_state.value,
            "consecutive_failures": self._consecutive_failures,
            "rpc_url": self.rpc_url,
            "healthy": self._connection_state == ConnectionState.HEALTHY,
        }

    @retry_on_rpc_error()
    def get_head_number(self) -> int:
        """
        Get the current chain head height.

        Raises:
            ChainUnavailable: If the node is unreachable after retries
        """
        return hex_to_int(self._call("eth_blockNumber", []))

    @retry_on_rpc_error()
    def get_block(self, number: int, full_transactions: bool = True) -> Optional[Dict[str, Any]]:
        """
        Get block by number, with embedded transaction objects by default.

        Returns:
            Raw block dict, or None when the node has no block at that height

        Raises:
            ChainUnavailable: If the node is unreachable after retries
        """
        return self._call("eth_getBlockByNumber", [block_number_to_hex(number), full_transactions])

    @retry_on_rpc_error()
    def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """
        Get transaction receipt by hash.

        Returns:
            Raw receipt dict, or None when the node does not know the receipt yet
        """
        return self._call("eth_getTransactionReceipt", [tx_hash])

    def test_connection(self) -> bool:
        try:
            self.get_head_number()
            return True
        except ChainUnavailable:
            return False

    def close(self):
        """Close the HTTP connection pool."""
        self._client.close()
        logger.info("Chain client closed")

"""
Shared constants for the chain-mirror ingestor.
"""

# Conflux eSpace mainnet
CHAIN_ID = 1030
DEFAULT_RPC_URL = "https://evm.confluxrpc.com"

# keccak256("Transfer(address,address,uint256)")
ERC20_TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

MAX_REORG_DEPTH = 20
BACKFILL_CHUNK_SIZE = 10
DEFAULT_CONCURRENCY = 5
DEFAULT_POLL_INTERVAL_MS = 1000

QUEUE_NAME = "block-processor"
CACHE_INVALIDATION_CHANNEL = "cache:invalidate"
DATA_CHANGED_EVENT = "data-changed"

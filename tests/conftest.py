import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("QUEUE_BACKEND", "memory")

import threading  # noqa: E402
import time  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from ingestor.constants import ERC20_TRANSFER_TOPIC  # noqa: E402
from ingestor.database.connection import create_db_engine  # noqa: E402
from ingestor.models import Base  # noqa: E402
from ingestor.services.block_fetcher import BlockFetcher  # noqa: E402
from ingestor.services.storage_writer import StorageWriter  # noqa: E402
from ingestor.services.sync_state import SyncStateStore  # noqa: E402

GENESIS_PARENT_HASH = "0x" + "0" * 64


def block_hash_for(number, fork="a"):
    return "0x" + fork * 2 + format(number, "062x")


def address(byte):
    return "0x" + byte * 20


def address_topic(byte):
    return "0x" + "0" * 24 + byte * 20


def transfer_log(log_index=0, token="cc", sender="11", recipient="22", value=10**18):
    return {
        "address": address(token),
        "topics": [ERC20_TRANSFER_TOPIC, address_topic(sender), address_topic(recipient)],
        "data": "0x" + format(value, "064x"),
        "logIndex": hex(log_index),
    }


def make_tx(tx_hash, logs=None, status="0x1", to="22"):
    raw_tx = {
        "hash": tx_hash,
        "from": address("11"),
        "to": address(to) if to else None,
        "value": "0xde0b6b3a7640000",
        "gasPrice": "0x4a817c800",
        "maxFeePerGas": "0x4a817c800",
        "maxPriorityFeePerGas": "0x3b9aca00",
        "input": "0x",
    }
    receipt = {
        "transactionHash": tx_hash,
        "status": status,
        "gasUsed": "0x5208",
        "effectiveGasPrice": "0x3b9aca00",
        "logs": logs or [],
    }
    return raw_tx, receipt


class FakeChain:
    """In-memory stand-in for ChainClient serving raw JSON-RPC shaped dicts"""

    def __init__(self):
        self.blocks = {}
        self.receipts = {}
        self.lock = threading.Lock()

    block_hash = staticmethod(block_hash_for)
    address = staticmethod(address)
    transfer_log = staticmethod(transfer_log)
    make_tx = staticmethod(make_tx)

    def add_block(self, number, fork="a", parent_hash=None, txs=None):
        with self.lock:
            if parent_hash is None:
                parent = self.blocks.get(number - 1)
                if parent is not None:
                    parent_hash = parent["hash"]
                elif number == 0:
                    parent_hash = GENESIS_PARENT_HASH
                else:
                    parent_hash = block_hash_for(number - 1, fork)

            raw_txs = []
            for raw_tx, receipt in txs or []:
                raw_txs.append(raw_tx)
                self.receipts[raw_tx["hash"]] = receipt

            raw = {
                "number": hex(number),
                "hash": block_hash_for(number, fork),
                "parentHash": parent_hash,
                "timestamp": hex(1_700_000_000 + number),
                "gasUsed": "0x5208",
                "gasLimit": "0x1c9c380",
                "baseFeePerGas": "0x3b9aca00",
                "miner": address("ab"),
                "transactions": raw_txs,
            }
            self.blocks[number] = raw
            return raw

    def build(self, start, end, fork="a"):
        for number in range(start, end + 1):
            self.add_block(number, fork=fork)

    def get_head_number(self):
        with self.lock:
            return max(self.blocks) if self.blocks else 0

    def get_block(self, number, full_transactions=True):
        with self.lock:
            return self.blocks.get(number)

    def get_receipt(self, tx_hash):
        with self.lock:
            return self.receipts.get(tx_hash)


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    import logging
    import structlog

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(),
    )

    root_logger = logging.getLogger()
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


@pytest.fixture
def session_factory(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path}/ingestor.db")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def fetcher(chain):
    fetcher = BlockFetcher(chain, max_concurrency=2)
    yield fetcher
    fetcher.close()


@pytest.fixture
def storage(session_factory):
    return StorageWriter(session_factory)


@pytest.fixture
def sync_state(session_factory):
    store = SyncStateStore(session_factory)
    store.initialize(0)
    return store


@pytest.fixture
def ingest(fetcher, storage, sync_state):
    """Write and checkpoint blocks directly, bypassing the reorg check"""

    def _ingest(start, end):
        for number in range(start, end + 1):
            fetched = fetcher.fetch_block(number)
            storage.write_block(fetched)
            sync_state.advance(number, fetched.hash)

    return _ingest


@pytest.fixture
def wait_until():
    def _wait_until(predicate, timeout=10.0, interval=0.02):
        deadline = time.time() + timeout
        while time.time() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait_until

"""
Block fetcher: composes chain client calls into one decoded block unit.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from ingestor.config import settings
from ingestor.models import Block, TokenTransfer, Transaction
from ingestor.utils.evm import (
    RecognizedTransfer,
    decode_transfer_log,
    hex_to_decimal_str,
    hex_to_int,
    normalize_address,
    normalize_hash,
)
from ingestor.utils.exceptions import NotYetMined

from .chain_client import ChainClient

RECEIPT_STATUS_SUCCESS = 1


@dataclass
class FetchedBlock:
    """A block with its transactions and decoded transfers, ready to write"""

    block: Block
    transactions: List[Transaction] = field(default_factory=list)
    transfers: List[TokenTransfer] = field(default_factory=list)

    @property
    def number(self) -> int:
        return self.block.number

    @property
    def hash(self) -> str:
        return self.block.hash

    @property
    def parent_hash(self) -> str:
        return self.block.parent_hash


class BlockFetcher:
    """Fetch a block, its receipts, and the ERC-20 transfers in their logs"""

    def __init__(self, chain_client: ChainClient, max_concurrency: int = None):
        self.rpc = chain_client
        self.max_concurrency = max_concurrency or settings.RECEIPT_FETCH_CONCURRENCY
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_concurrency,
            thread_name_prefix="ReceiptFetcher",
        )
        self.logger = structlog.get_logger()

    def fetch_block(self, number: int) -> FetchedBlock:
        """
        Fetch and decode a block.

        Args:
            number: Block number to fetch

        Returns:
            FetchedBlock with block, transactions and token transfers

        Raises:
            NotYetMined: If the node has no block (or receipt) for this number yet
            ChainUnavailable: If the node is unreachable after retries
        """
        raw_block = self.rpc.get_block(number)
        if raw_block is None:
            raise NotYetMined(number)

        block = self._parse_block(raw_block)
        raw_txs = raw_block.get("transactions") or []
        receipts = self._fetch_receipts(number, raw_txs)

        transactions = []
        transfers = []
        for raw_tx, receipt in zip(raw_txs, receipts):
            transactions.append(self._parse_transaction(raw_tx, receipt, block))
            transfers.extend(self._extract_transfers(raw_tx, receipt, block))

        self.logger.debug(
            "Block fetched",
            number=block.number,
            hash=block.hash,
            tx_count=len(transactions),
            transfers=len(transfers),
        )
        return FetchedBlock(block=block, transactions=transactions, transfers=transfers)

    def _fetch_receipts(self, number: int, raw_txs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        hashes = [normalize_hash(tx["hash"]) for tx in raw_txs]
        receipts = list(self._executor.map(self.rpc.get_receipt, hashes))

        for tx_hash, receipt in zip(hashes, receipts):
            if receipt is None:
                raise NotYetMined(number, f"Receipt for {tx_hash} in block {number} is not available yet")
        return receipts

    def _parse_block(self, raw: Dict[str, Any]) -> Block:
        return Block(
            number=hex_to_int(raw["number"]),
            hash=normalize_hash(raw["hash"]),
            parent_hash=normalize_hash(raw["parentHash"]),
            timestamp=hex_to_int(raw["timestamp"]),
            gas_used=hex_to_decimal_str(raw["gasUsed"]),
            gas_limit=hex_to_decimal_str(raw["gasLimit"]),
            base_fee_per_gas=hex_to_decimal_str(raw.get("baseFeePerGas")),
            tx_count=len(raw.get("transactions") or []),
            miner=normalize_address(raw["miner"]),
        )

    def _parse_transaction(self, raw: Dict[str, Any], receipt: Dict[str, Any], block: Block) -> Transaction:
        status = hex_to_int(receipt.get("status"))
        gas_price = receipt.get("effectiveGasPrice") or raw.get("gasPrice") or "0x0"

        return Transaction(
            hash=normalize_hash(raw["hash"]),
            block_number=block.number,
            from_address=normalize_address(raw["from"]),
            to_address=normalize_address(raw.get("to")),
            value=hex_to_decimal_str(raw.get("value") or "0x0"),
            gas_used=hex_to_decimal_str(receipt["gasUsed"]),
            gas_price=hex_to_decimal_str(gas_price),
            max_fee_per_gas=hex_to_decimal_str(raw.get("maxFeePerGas")),
            max_priority_fee_per_gas=hex_to_decimal_str(raw.get("maxPriorityFeePerGas")),
            status="success" if status == RECEIPT_STATUS_SUCCESS else "failure",
            timestamp=block.timestamp,
            input=raw.get("input") or "0x",
        )

    def _extract_transfers(
        self, raw_tx: Dict[str, Any], receipt: Dict[str, Any], block: Block
    ) -> List[TokenTransfer]:
        transfers = []
        for log in receipt.get("logs") or []:
            decoded = decode_transfer_log(log)
            if not isinstance(decoded, RecognizedTransfer):
                continue

            transfers.append(
                TokenTransfer(
                    tx_hash=normalize_hash(raw_tx["hash"]),
                    log_index=decoded.log_index,
                    token_address=decoded.token_address,
                    from_address=decoded.from_address,
                    to_address=decoded.to_address,
                    value=decoded.value,
                    block_number=block.number,
                    timestamp=block.timestamp,
                )
            )
        return transfers

    def get_block_hash(self, number: int) -> Optional[str]:
        """Current canonical hash at a height, without transactions or receipts"""
        raw_block = self.rpc.get_block(number, full_transactions=False)
        if raw_block is None:
            return None
        return normalize_hash(raw_block["hash"])

    def close(self):
        self._executor.shutdown(wait=False)

"""
EVM encoding helpers: hex quantities, addresses and ERC-20 Transfer log decoding.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from ingestor.constants import ERC20_TRANSFER_TOPIC


def hex_to_int(value: Optional[Union[str, int]]) -> Optional[int]:
    """Parse a JSON-RPC quantity ("0x1a") into an int"""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    if value in ("0x", ""):
        return 0
    return int(value, 16)


def hex_to_decimal_str(value: Optional[Union[str, int]]) -> Optional[str]:
    """Parse a JSON-RPC quantity into a decimal string without precision loss"""
    parsed = hex_to_int(value)
    return None if parsed is None else str(parsed)


def normalize_address(address: Optional[str]) -> Optional[str]:
    """Canonical lowercase 0x-prefixed form"""
    if address is None:
        return None
    address = address.strip().lower()
    if not address.startswith("0x"):
        address = "0x" + address
    return address


def normalize_hash(value: str) -> str:
    return normalize_address(value)


def topic_to_address(topic: str) -> str:
    """Right-align the 20 significant bytes of a 32-byte topic"""
    topic = topic.lower()
    if topic.startswith("0x"):
        topic = topic[2:]
    return "0x" + topic[-40:].rjust(40, "0")


def block_number_to_hex(number: int) -> str:
    return hex(number)


@dataclass(frozen=True)
class RecognizedTransfer:
    log_index: int
    token_address: str
    from_address: str
    to_address: str
    value: str


@dataclass(frozen=True)
class Ignored:
    reason: str


TransferDecodeResult = Union[RecognizedTransfer, Ignored]


def decode_transfer_log(log: Dict[str, Any]) -> TransferDecodeResult:
    """
    Decode a receipt log as an ERC-20 Transfer event.

    A log is a transfer only if topic[0] is the Transfer signature, it carries
    exactly three topics (signature, from, to) and its data holds the value.
    ERC-721 transfers index the token id as a fourth topic and are ignored.

    Args:
        log: Receipt log as returned by the node

    Returns:
        RecognizedTransfer or Ignored with the reason
    """
    topics = log.get("topics") or []
    if not topics or topics[0].lower() != ERC20_TRANSFER_TOPIC:
        return Ignored("not a transfer event")
    if len(topics) != 3:
        return Ignored("unexpected topic count")

    data = log.get("data") or "0x"
    if data in ("0x", ""):
        return Ignored("empty data")

    try:
        value = int(data, 16)
    except ValueError:
        return Ignored("malformed data")

    return RecognizedTransfer(
        log_index=hex_to_int(log.get("logIndex")) or 0,
        token_address=normalize_address(log.get("address")),
        from_address=topic_to_address(topics[1]),
        to_address=topic_to_address(topics[2]),
        value=str(value),
    )

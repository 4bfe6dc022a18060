from sqlalchemy import BigInteger, Column, Integer, String
from sqlalchemy.orm import relationship
from .base import Base


class Block(Base):
    __tablename__ = "blocks"

    number = Column(BigInteger, primary_key=True, autoincrement=False)
    hash = Column(String(66), nullable=False, index=True)
    parent_hash = Column(String(66), nullable=False)
    timestamp = Column(BigInteger, nullable=False)  # unix seconds
    gas_used = Column(String, nullable=False)
    gas_limit = Column(String, nullable=False)
    base_fee_per_gas = Column(String, nullable=True)  # pre-London blocks
    tx_count = Column(Integer, nullable=False, default=0)
    miner = Column(String(42), nullable=False)

    transactions = relationship(
        "Transaction",
        back_populates="block",
        passive_deletes=True,
    )
    token_transfers = relationship(
        "TokenTransfer",
        back_populates="block",
        passive_deletes=True,
    )

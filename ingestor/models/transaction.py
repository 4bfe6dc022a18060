from sqlalchemy import BigInteger, Column, ForeignKey, String, Text
from sqlalchemy.orm import relationship
from .base import Base


class Transaction(Base):
    __tablename__ = "transactions"

    hash = Column(String(66), primary_key=True)
    block_number = Column(
        BigInteger,
        ForeignKey("blocks.number", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    from_address = Column(String(42), index=True, nullable=False)
    to_address = Column(String(42), index=True, nullable=True)  # None = contract creation
    value = Column(String, nullable=False)
    gas_used = Column(String, nullable=False)
    gas_price = Column(String, nullable=False)
    max_fee_per_gas = Column(String, nullable=True)
    max_priority_fee_per_gas = Column(String, nullable=True)
    status = Column(String(8), nullable=False)  # "success" | "failure"
    timestamp = Column(BigInteger, nullable=False)
    input = Column(Text, nullable=False, default="0x")

    block = relationship("Block", back_populates="transactions")

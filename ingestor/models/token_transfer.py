from sqlalchemy import BigInteger, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from .base import Base


class TokenTransfer(Base):
    __tablename__ = "token_transfers"

    tx_hash = Column(String(66), primary_key=True)
    log_index = Column(Integer, primary_key=True, autoincrement=False)
    block_number = Column(
        BigInteger,
        ForeignKey("blocks.number", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    token_address = Column(String(42), index=True, nullable=False)
    from_address = Column(String(42), index=True, nullable=False)
    to_address = Column(String(42), index=True, nullable=False)
    value = Column(String, nullable=False)  # raw uint256, decimal string
    timestamp = Column(BigInteger, nullable=False)

    block = relationship("Block", back_populates="token_transfers")

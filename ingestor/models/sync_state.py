from sqlalchemy import BigInteger, Column, DateTime, Integer, String
from sqlalchemy.sql import func
from .base import Base

SYNC_STATE_ID = 1


class SyncState(Base):
    __tablename__ = "sync_state"

    id = Column(Integer, primary_key=True, default=SYNC_STATE_ID)
    last_block = Column(BigInteger, nullable=False, default=0)
    last_block_hash = Column(String(66), nullable=False, default="")
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

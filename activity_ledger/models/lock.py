from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from ..db import Base


class IdempotencyLock(Base):
    """Dedup key row; executors UPDATE it to hold a write lock for the transaction."""
    __tablename__ = "idempotency_locks"

    key = Column(String(100), primary_key=True)
    acquired_count = Column(Integer, nullable=False, default=0)
    last_acquired_at = Column(DateTime(timezone=True), server_default=func.now())

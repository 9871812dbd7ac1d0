from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func
from ..db import Base


class Resource(Base):
    """Generic patchable resource backing the reference ResourceRepository."""
    __tablename__ = "resources"
    __table_args__ = (
        UniqueConstraint("resource_type", "resource_id", name="uq_resources_type_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    resource_type = Column(String(40), nullable=False)
    resource_id = Column(String(64), nullable=False)
    fields = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

from sqlalchemy import Column, String, DateTime, Enum
from sqlalchemy.sql import func
from enum import Enum as PyEnum
from ..db import Base


class UserRole(PyEnum):
    ADMIN = "ADMIN"
    EDITOR = "EDITOR"
    VIEWER = "VIEWER"


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.EDITOR)
    subscription_tier = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

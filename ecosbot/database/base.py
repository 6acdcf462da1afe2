"""
Declarative base and common columns for ORM models
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utc_now():
    return datetime.now(timezone.utc)


class BaseModel:
    """
    Mixin with the columns every table carries.

    - id: UUID string primary key
    - created_at / updated_at: timezone-aware UTC timestamps
    """

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} id={self.id}>"

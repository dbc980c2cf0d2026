"""SQLAlchemy models for Atsumeru."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    owner_token = Column(String(64), nullable=False, unique=True)
    title = Column(String(255), nullable=False)
    date = Column(DateTime, nullable=True)
    place = Column(String(255), nullable=True)
    note = Column(Text, nullable=True)
    collecting = Column(Boolean, default=False, nullable=False)
    amount = Column(Integer, default=0, nullable=False)
    pay_url = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    responses = relationship(
        "Response",
        back_populates="event",
        order_by="Response.created_at",
    )


class Response(Base):
    __tablename__ = "responses"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    edit_token = Column(String(64), nullable=False, unique=True)
    name = Column(String(120), nullable=False)
    rsvp = Column(String(16), nullable=False)
    paid = Column(Boolean, default=False, nullable=False)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    event = relationship("Event", back_populates="responses")

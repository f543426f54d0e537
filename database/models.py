"""
SQLAlchemy ORM models for the lead qualification engine.

Persistent entities: customers, conversations, messages, leads and their
events, per-conversation agent state, and meeting requests.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, DateTime, Text, ForeignKey,
    JSON, Index, UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=_uuid)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False, index=True)
    channel = Column(String(20), default="web")  # web, facebook, email
    started_at = Column(DateTime, default=datetime.utcnow)
    last_active_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(10), nullable=False)  # customer, ai
    content = Column(Text, nullable=False)
    knowledge_snippets = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_msg_conv_created", "conversation_id", "created_at"),
    )


class Lead(Base):
    __tablename__ = "leads"

    id = Column(String(36), primary_key=True, default=_uuid)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False, index=True)
    conversation_id = Column(String(36), ForeignKey("conversations.id"), nullable=False, unique=True)
    status = Column(String(20), default="prospect")  # prospect, nurturing, qualified
    lead_score = Column(Integer, default=0)
    qualification_profile = Column(JSON, default=dict)
    last_qualification_at = Column(DateTime, nullable=True)
    assigned_agent = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_lead_status", "status"),
        Index("ix_lead_score", "lead_score"),
    )


class LeadEvent(Base):
    __tablename__ = "lead_events"

    id = Column(String(36), primary_key=True, default=_uuid)
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String(30), nullable=False)  # created, score_updated, phase_forced
    details_json = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)


class AgentState(Base):
    __tablename__ = "agent_states"

    id = Column(String(36), primary_key=True, default=_uuid)
    conversation_id = Column(String(36), ForeignKey("conversations.id"), nullable=False, unique=True)
    phase = Column(String(30), default="greeting")
    progress_context = Column(JSON, default=dict)
    agent_personality = Column(String(30), default="consultative")
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class MeetingRequest(Base):
    __tablename__ = "meeting_requests"

    id = Column(String(36), primary_key=True, default=_uuid)
    lead_id = Column(String(36), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    conversation_id = Column(String(36), ForeignKey("conversations.id"), nullable=False, index=True)
    attempt = Column(Integer, nullable=False)
    status = Column(String(15), default="requested")  # requested, booked, failed, skipped
    subject = Column(String(255), nullable=True)
    attendee_email = Column(String(255), nullable=True)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    event_id = Column(String(255), nullable=True)
    meeting_link = Column(String(512), nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("lead_id", "attempt", name="uq_meeting_lead_attempt"),
    )

from sqlalchemy import Column, String, DateTime, Integer, Text, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime
import uuid
from eop_assistant.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests / local dev)
JsonType = JSON().with_variant(JSONB(), "postgresql")


class RulesBank(Base):
    """The rule catalog. Exactly one row, guarded by the unique singleton_key."""
    __tablename__ = "rules_banks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    singleton_key = Column(String(32), unique=True, nullable=False, default="default")
    # {"information": [{"text": ...}], "assessment": [...], "responsePlan": [...], "review": [...]}
    catalog = Column(JsonType, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Proposal(Base):
    """Per-session questionnaire progress."""
    __tablename__ = "proposals"

    session_id = Column(String(255), primary_key=True)
    email = Column(String(255), nullable=True)
    # section name -> {completed, lastRuleIndexAsked, generatedText, responses}
    sections = Column(JsonType, nullable=False, default=dict)
    review_state = Column(JsonType, nullable=False, default=dict)  # {completed, finalDocument}
    version = Column(Integer, nullable=False, default=1)  # bumped on every write; optimistic concurrency token
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_updated = Column(DateTime, default=datetime.utcnow, nullable=False)


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)  # pbkdf2_sha256$iterations$salt$hash
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ConversationErrorRecord(Base):
    """Operator-facing log of failures while handling a conversation turn."""
    __tablename__ = "conversation_errors"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id = Column(String(255), nullable=True, index=True)
    error_type = Column(String(50), nullable=False)  # catalog_mismatch, conflict, llm_failure, database_error, other
    severity = Column(String(20), nullable=False)  # critical, warning, info
    stage = Column(String(50), nullable=False)  # conversation, persistence, generation, other
    error_message = Column(Text, nullable=False)
    error_details = Column(JsonType, nullable=True)
    resolved = Column(String(10), default="false", nullable=False)  # 'true', 'false'
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

"""
Conversation Session Model - State Machine Tracking
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, JSON

from triplog.db.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationSession(Base):
    """One row per LINE user: workflow state, draft and report selection"""

    __tablename__ = "conversation_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, unique=True, index=True)

    # State machine
    current_state = Column(String(100), nullable=False, default="IDLE")

    # Entry workflow fields collected so far
    draft_data = Column(JSON, default=dict)
    # Report workflow selections (date)
    selection_data = Column(JSON, default=dict)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    last_updated_at = Column(DateTime(timezone=True), default=_utcnow)

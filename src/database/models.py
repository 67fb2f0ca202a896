from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB

from .db import Base

JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class VoiceSessionRecord(Base):
    """
    Represents a voice conversation session stored in the database.
    """

    __tablename__ = "voice_sessions"

    session_id = Column(String, primary_key=True, index=True)
    customer_id = Column(String, nullable=True, index=True)
    status = Column(String, nullable=False, index=True, server_default="active")
    language = Column(String, nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    conversation_history = Column(JSONDocument, nullable=False, default=list)
    context = Column(JSONDocument, nullable=False, default=dict)
    session_metadata = Column(JSONDocument, nullable=False, default=dict)
    analytics = Column(JSONDocument, nullable=False, default=dict)

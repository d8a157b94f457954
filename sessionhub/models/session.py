"""Knowledge-sharing session model definitions."""

import enum

from sqlalchemy import Column, Date, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from sessionhub.database import Base
from sessionhub.models.user import utcnow


class SessionStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"


class KnowledgeSession(Base):
    """Represents a scheduled knowledge-sharing session."""
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text)
    date = Column(Date, nullable=False)
    time = Column(String, nullable=False, default="00:00")  # HH:MM
    venue = Column(String)
    status = Column(Enum(SessionStatus, values_callable=lambda statuses: [s.value for s in statuses]),
                    nullable=False, default=SessionStatus.UPCOMING)
    session_head_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    session_head = relationship("User", lazy="joined")

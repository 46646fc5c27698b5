"""
Dead-letter model for events that exhausted their retries
"""

from sqlalchemy import Column, Integer, Text, DateTime, func

from adoption_insights.core.database import Base


class FailedEvent(Base):
    __tablename__ = "failed_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_data = Column(Text, nullable=False)
    error_message = Column(Text)
    retry_attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<FailedEvent(id={self.id}, retry_attempts={self.retry_attempts})>"

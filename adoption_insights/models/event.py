"""
Event model
"""

from sqlalchemy import Column, String, Float, Text, DateTime, Index, Uuid
from sqlalchemy.dialects.postgresql import JSONB
import uuid

from adoption_insights.core.database import Base

# Structured on Postgres, serialized JSON text everywhere else
JSONText = Text().with_variant(JSONB(), "postgresql")


class Event(Base):
    """
    Append-only analytics event; range-partitioned by month on Postgres
    """
    __tablename__ = "events"

    id = Column(Uuid(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    created_at = Column(DateTime(timezone=True), primary_key=True, nullable=False)
    user_ref = Column(String(255), nullable=False)
    plugin_id = Column(String(255), nullable=False)
    action = Column(String(255), nullable=False)
    subject = Column(Text)
    value = Column(Float)
    context = Column(JSONText)
    attributes = Column(JSONText)

    __table_args__ = (
        Index("ix_events_created_at", "created_at"),
        Index("ix_events_user_ref", "user_ref"),
        Index("ix_events_plugin_action", "plugin_id", "action"),
        {"postgresql_partition_by": "RANGE (created_at)"},
    )

    def __repr__(self):
        return f"<Event(id={self.id}, plugin_id={self.plugin_id}, action={self.action}, created_at={self.created_at})>"

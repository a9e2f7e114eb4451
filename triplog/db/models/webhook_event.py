"""
Webhook Event Model - idempotency table for LINE webhook redeliveries.

Every event is recorded by its ``webhookEventId``. Only events with
status=completed are skipped on redelivery; failed or stale processing
rows may be retried.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Index

from triplog.db.database import Base


class WebhookEvent(Base):
    """An inbound webhook event seen by the service"""

    __tablename__ = "webhook_events"

    event_id = Column(String(200), primary_key=True)
    platform = Column(String(20), nullable=False, default="line")
    status = Column(String(20), nullable=False, default="processing")
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_webhook_events_status_created", "status", "created_at"),
    )

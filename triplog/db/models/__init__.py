"""
Database Models
"""
from triplog.db.models.conversation_session import ConversationSession
from triplog.db.models.trip_record import TripRecord
from triplog.db.models.reference import Vehicle, Store, ReportWindowSetting
from triplog.db.models.webhook_event import WebhookEvent

__all__ = [
    "ConversationSession",
    "TripRecord",
    "Vehicle",
    "Store",
    "ReportWindowSetting",
    "WebhookEvent",
]

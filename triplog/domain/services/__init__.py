"""
Domain Services
"""
from triplog.domain.services.conversation_service import ConversationService
from triplog.domain.services.geocoder import GoogleReverseGeocoder
from triplog.domain.services.record_service import RecordService, ReportWindow
from triplog.domain.services.reference_service import ReferenceService
from triplog.domain.services.session_store import SessionStore

__all__ = [
    "ConversationService",
    "GoogleReverseGeocoder",
    "RecordService",
    "ReportWindow",
    "ReferenceService",
    "SessionStore",
]

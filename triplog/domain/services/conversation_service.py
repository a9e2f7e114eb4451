"""
Conversation Service - one inbound event end to end

load session → engine transition → side effects (record append, report
query) → save session → render → reply → commit.

The transaction is committed only after the reply was accepted by the
messaging API, so a failed event leaves neither a half-advanced session nor
an orphan record behind.
"""
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from triplog.core.config import settings
from triplog.core.exceptions import ExternalServiceException, PersistenceError, ValidationException
from triplog.core.logging import get_logger, log_async_operation, mask_user_id
from triplog.core.timeutils import now_local
from triplog.domain.services.geocoder import GoogleReverseGeocoder
from triplog.domain.services.messaging import BaseMessagingProvider
from triplog.domain.services.record_service import RecordService
from triplog.domain.services.reference_service import ReferenceService
from triplog.domain.services.session_store import SessionStore
from triplog.state_machine import messages
from triplog.state_machine.engine import ConversationEngine
from triplog.state_machine.events import ConversationInput
from triplog.state_machine.outcomes import OutcomeKind
from triplog.state_machine.renderer import PromptRenderer
from triplog.state_machine.responses import MessageResponse
from triplog.state_machine.session import Session

logger = get_logger(__name__)

_engine: ConversationEngine | None = None


def get_conversation_engine() -> ConversationEngine:
    """Process-wide engine configured from settings"""
    global _engine
    if _engine is None:
        _engine = ConversationEngine(
            geocoder=GoogleReverseGeocoder(),
            session_timeout=timedelta(minutes=settings.SESSION_TIMEOUT_MINUTES),
            clock=now_local,
        )
    return _engine


class ConversationService:
    """Runs the conversation engine against the database and the messaging provider"""

    def __init__(
        self,
        db: AsyncSession,
        provider: BaseMessagingProvider,
        engine: ConversationEngine | None = None,
    ):
        self.db = db
        self.provider = provider
        self.engine = engine or get_conversation_engine()
        self.sessions = SessionStore(db)
        self.records = RecordService(db)
        self.references = ReferenceService(db)
        self.renderer = PromptRenderer(self.references, clock=self.engine.clock)

    @log_async_operation("conversation.handle")
    async def handle(self, user_id: str, inp: ConversationInput, reply_token: str) -> list[MessageResponse]:
        """
        Process one input for ``user_id`` and reply with ``reply_token``.

        Store failures roll back and reply with a retry-later message. A
        value the stores reject resets the conversation to idle.

        Raises:
            ExternalServiceException: the reply could not be delivered
            PersistenceError: the final commit failed after replying
        """
        try:
            replies = await self._process(user_id, inp)
        except (PersistenceError, SQLAlchemyError) as e:
            await self.db.rollback()
            logger.error(
                "Conversation event aborted by a store failure",
                extra_data={"user_id": mask_user_id(user_id), "error": str(e)},
            )
            replies = [MessageResponse.plain(self._failure_message(e))]
            await self.provider.reply(reply_token, replies)
            return replies
        except ValidationException as e:
            await self.db.rollback()
            logger.error(
                "Conversation event rejected, resetting session",
                extra_data={"user_id": mask_user_id(user_id), "error": e.message, "details": e.details},
            )
            await self.sessions.put(Session.idle(user_id, self.engine.clock()))
            replies = [MessageResponse.plain(messages.RESTART)]

        await self._reply_and_commit(user_id, reply_token, replies)
        return replies

    async def _reply_and_commit(self, user_id: str, reply_token: str, replies: list[MessageResponse]) -> None:
        try:
            await self.provider.reply(reply_token, replies)
        except ExternalServiceException:
            await self.db.rollback()
            raise

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "Failed to commit conversation event",
                extra_data={"user_id": mask_user_id(user_id), "error": str(e)},
            )
            raise PersistenceError("commit_event", str(e)) from e

    async def _process(self, user_id: str, inp: ConversationInput) -> list[MessageResponse]:
        session = await self.sessions.get(user_id)
        if session is None:
            session = Session.idle(user_id, self.engine.clock())

        new_session, outcome = await self.engine.handle_input(session, inp)

        report_records = None
        if outcome.kind == OutcomeKind.FINALIZE:
            await self.records.append(user_id, outcome.record)
        elif outcome.kind == OutcomeKind.REPORT:
            window = await self.references.get_report_window()
            report_records = await self.records.search(
                outcome.report.date, outcome.report.vehicle_number, window
            )

        await self.sessions.put(new_session)

        if new_session.state != session.state:
            logger.info(
                "Conversation state changed",
                extra_data={
                    "user_id": mask_user_id(user_id),
                    "from_state": session.state,
                    "to_state": new_session.state,
                    "outcome": outcome.kind.value,
                },
            )
        return await self.renderer.render(new_session, outcome, report_records)

    @staticmethod
    def _failure_message(error: Exception) -> str:
        operation = error.details.get("operation") if isinstance(error, PersistenceError) else None
        if operation == "append_record":
            return messages.WRITE_ERROR
        if operation == "search_records":
            return messages.READ_ERROR
        return messages.COMMUNICATION_ERROR

"""
Session Store - durable mapping LINE user id → conversation session
"""
from datetime import timezone

from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from triplog.core.exceptions import PersistenceError
from triplog.core.logging import get_logger, mask_user_id
from triplog.core.timeutils import ensure_aware
from triplog.db.models.conversation_session import ConversationSession
from triplog.state_machine.session import Session

logger = get_logger(__name__)


class SessionStore:
    """
    Reads and writes ``Session`` snapshots.

    ``put`` only flushes; the caller commits so that a finalized record and
    the reset session land in one transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_row(self, user_id: str) -> ConversationSession | None:
        result = await self.db.execute(
            select(ConversationSession).where(ConversationSession.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get(self, user_id: str) -> Session | None:
        row = await self._get_row(user_id)
        if row is None:
            return None
        return Session(
            user_id=row.user_id,
            state=row.current_state,
            draft=dict(row.draft_data or {}),
            selection=dict(row.selection_data or {}),
            last_updated_at=ensure_aware(row.last_updated_at) if row.last_updated_at else None,
        )

    async def put(self, session: Session) -> None:
        try:
            row = await self._get_row(session.user_id)
            if row is None:
                row = ConversationSession(user_id=session.user_id)
                self.db.add(row)

            row.current_state = session.state
            # New dict objects so SQLAlchemy detects the JSON change
            row.draft_data = dict(session.draft)
            row.selection_data = dict(session.selection)
            if session.last_updated_at is not None:
                row.last_updated_at = ensure_aware(session.last_updated_at).astimezone(timezone.utc)
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to save conversation session",
                extra_data={"user_id": mask_user_id(session.user_id), "error": str(e)},
            )
            raise PersistenceError("save_session", str(e)) from e

    async def delete(self, user_id: str) -> bool:
        """Remove a session (admin reset); True when a row existed"""
        result = await self.db.execute(
            delete(ConversationSession).where(ConversationSession.user_id == user_id)
        )
        return result.rowcount > 0

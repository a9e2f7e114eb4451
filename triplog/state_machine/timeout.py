"""
Session timeout detection

A session left inside the entry workflow for longer than the configured
timeout is not advanced by the next typed message; the user is asked whether
to continue or start over instead. Postbacks and location messages pass
through so the continue / reset buttons themselves keep working.
"""
from datetime import datetime, timedelta
from functools import wraps

from triplog.core.logging import get_logger, mask_user_id
from triplog.core.timeutils import ensure_aware
from triplog.state_machine.events import TextInput
from triplog.state_machine.outcomes import Outcome
from triplog.state_machine.session import Session
from triplog.state_machine.states import is_entry_state, parse_state

logger = get_logger(__name__)


def is_stale(session: Session, now: datetime, timeout: timedelta) -> bool:
    """Entry-workflow session whose last transition is at least ``timeout`` old"""
    state = parse_state(session.state)
    if state is None or not is_entry_state(state):
        return False
    if session.last_updated_at is None:
        return False
    return ensure_aware(now) - ensure_aware(session.last_updated_at) >= timeout


def timeout_guard(handler):
    """
    Wrap ``handle_input(self, session, inp)`` of an engine exposing
    ``session_timeout`` and ``clock``.
    """
    @wraps(handler)
    async def wrapper(self, session: Session, inp):
        if isinstance(inp, TextInput) and is_stale(session, self.clock(), self.session_timeout):
            logger.info(
                "Stale session, asking to resume or reset",
                extra_data={
                    "user_id": mask_user_id(session.user_id),
                    "state": session.state,
                    "last_updated_at": session.last_updated_at,
                },
            )
            return session, Outcome.resume_or_reset(parse_state(session.state))
        return await handler(self, session, inp)

    return wrapper

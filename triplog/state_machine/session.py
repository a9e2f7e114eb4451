"""
Conversation session value object passed between the store and the engine
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from triplog.state_machine.states import UserState


@dataclass(frozen=True)
class Session:
    """
    Snapshot of one user's position in the workflow.

    ``draft`` holds the entry workflow's collected fields and is empty
    whenever ``state`` is IDLE. ``selection`` holds report workflow picks.
    ``state`` is kept as the raw stored string so an unrecognized value
    reaches the engine instead of failing on load.
    """

    user_id: str
    state: str
    draft: dict[str, str] = field(default_factory=dict)
    selection: dict[str, Any] = field(default_factory=dict)
    last_updated_at: datetime | None = None

    @classmethod
    def idle(cls, user_id: str, now: datetime | None = None) -> "Session":
        return cls(user_id=user_id, state=UserState.IDLE.value, last_updated_at=now)

    def with_state(
        self,
        state: UserState,
        now: datetime,
        *,
        draft: dict[str, str] | None = None,
        selection: dict[str, Any] | None = None,
    ) -> "Session":
        """Copy with a new state; draft/selection kept unless given"""
        return replace(
            self,
            state=state.value,
            draft=dict(self.draft if draft is None else draft),
            selection=dict(self.selection if selection is None else selection),
            last_updated_at=now,
        )

    def reset(self, now: datetime) -> "Session":
        """Back to IDLE with the draft and selection discarded"""
        return replace(self, state=UserState.IDLE.value, draft={}, selection={}, last_updated_at=now)

    def touch(self, now: datetime) -> "Session":
        return replace(self, last_updated_at=now)

"""
Normalized conversation inputs

The webhook layer turns LINE events into one of ``TextInput``,
``ActionInput`` or ``LocationInput`` before the engine sees them.
"""
from dataclasses import dataclass
from enum import Enum


class Action(str, Enum):
    """Named actions; the values are the LINE postback ``data`` strings"""

    NEW = "action_new"
    REPORT = "action_report"
    CANCEL = "action_cancel"
    BACK = "action_back"
    FORWARD = "action_forward"
    ARRIVED = "action_arrived"
    CONFIRM = "action_confirm_register"
    MODIFY = "action_confirm_modify"
    TIMEOUT_CONTINUE = "action_timeout_continue"
    TIMEOUT_RESET = "action_timeout_reset"


# Typed commands honored in every state
TEXT_COMMANDS: dict[str, Action] = {
    "新規": Action.NEW,
    "新規登録": Action.NEW,
    "取消": Action.CANCEL,
    "キャンセル": Action.CANCEL,
    "日報": Action.REPORT,
}


@dataclass(frozen=True)
class TextInput:
    text: str

    def command(self) -> Action | None:
        return TEXT_COMMANDS.get(self.text.strip())


@dataclass(frozen=True)
class ActionInput:
    """A named action; ``action`` is None for an unrecognized postback"""

    action: Action | None
    raw: str = ""

    @classmethod
    def from_postback(cls, data: str) -> "ActionInput":
        try:
            return cls(action=Action(data), raw=data)
        except ValueError:
            return cls(action=None, raw=data)


@dataclass(frozen=True)
class LocationInput:
    latitude: float
    longitude: float

    def as_coordinates(self) -> str:
        return f"({self.latitude}, {self.longitude})"


ConversationInput = TextInput | ActionInput | LocationInput

"""
Platform-neutral outgoing messages
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

# Chat platforms show at most four buttons on a choice card
MAX_CHOICES = 4


class ResponseKind(str, Enum):
    TEXT = "text"
    CHOICES = "choices"          # text + up to 4 buttons that send their label back
    CONFIRM = "confirm"          # yes / no question with postback actions
    SUMMARY_CARD = "summary_card"  # titled key/value rows + postback buttons


class QuickActionKind(str, Enum):
    POSTBACK = "postback"
    LOCATION = "location"


@dataclass(frozen=True)
class Button:
    """``data`` is a postback payload; for message buttons it is the text sent back"""

    label: str
    data: str


@dataclass(frozen=True)
class QuickAction:
    kind: QuickActionKind
    label: str
    data: str = ""


class MessageResponse:
    """Response to be sent to user"""

    def __init__(
        self,
        text: str,
        kind: ResponseKind = ResponseKind.TEXT,
        choices: Optional[list[Button]] = None,
        buttons: Optional[list[Button]] = None,
        rows: Optional[list[tuple[str, str]]] = None,
        quick_actions: Optional[list[QuickAction]] = None,
    ):
        self.text = text
        self.kind = kind
        self.choices = (choices or [])[:MAX_CHOICES]
        self.buttons = buttons or []
        self.rows = rows or []
        self.quick_actions = quick_actions or []

    @classmethod
    def plain(cls, text: str, quick_actions: Optional[list[QuickAction]] = None) -> "MessageResponse":
        return cls(text, quick_actions=quick_actions)

    @classmethod
    def with_choices(
        cls,
        text: str,
        labels: list[str],
        quick_actions: Optional[list[QuickAction]] = None,
    ) -> "MessageResponse":
        if not labels:
            return cls.plain(text, quick_actions)
        return cls(
            text,
            kind=ResponseKind.CHOICES,
            choices=[Button(label=label, data=label) for label in labels],
            quick_actions=quick_actions,
        )

    @classmethod
    def confirm(cls, text: str, yes: Button, no: Button) -> "MessageResponse":
        return cls(text, kind=ResponseKind.CONFIRM, buttons=[yes, no])

    @classmethod
    def summary_card(
        cls,
        title: str,
        rows: list[tuple[str, str]],
        buttons: list[Button],
        quick_actions: Optional[list[QuickAction]] = None,
    ) -> "MessageResponse":
        return cls(
            title,
            kind=ResponseKind.SUMMARY_CARD,
            rows=rows,
            buttons=buttons,
            quick_actions=quick_actions,
        )

    def __repr__(self) -> str:
        return f"MessageResponse(kind={self.kind.value!r}, text={self.text!r})"

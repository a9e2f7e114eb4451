"""
State Definitions for the Trip Entry and Daily Report Flows

The entry workflow is declared once, as the ordered ``ENTRY_GRAPH`` table.
Ordering, skip eligibility, the field each node writes and its input kind
are all read from that table.
"""
from dataclasses import dataclass
from enum import Enum


class UserState(str, Enum):
    """States of the per-user conversation"""

    IDLE = "IDLE"

    # Trip entry flow
    DEPARTURE_POINT = "ENTRY.DEPARTURE_POINT"
    STORE_NAME = "ENTRY.STORE_NAME"
    VIA_POINT = "ENTRY.VIA_POINT"
    ARRIVAL_TIME = "ENTRY.ARRIVAL_TIME"
    DESTINATION = "ENTRY.DESTINATION"
    DISTANCE = "ENTRY.DISTANCE"
    AMOUNT = "ENTRY.AMOUNT"
    VEHICLE_NUMBER = "ENTRY.VEHICLE_NUMBER"
    NOTE = "ENTRY.NOTE"
    CONFIRM = "ENTRY.CONFIRM"

    # Daily report flow
    REPORT_DATE_SELECT = "REPORT.DATE_SELECT"
    REPORT_VEHICLE_SELECT = "REPORT.VEHICLE_SELECT"


class DraftField(str, Enum):
    """Keys of the in-progress draft; also the record column names"""

    DEPARTURE_TIME = "departure_time"
    DEPARTURE_POINT = "departure_point"
    STORE_NAME = "store_name"
    VIA_POINT = "via_point"
    ARRIVAL_TIME = "arrival_time"
    DESTINATION = "destination"
    DISTANCE = "distance"
    AMOUNT = "amount"
    VEHICLE_NUMBER = "vehicle_number"
    NOTE = "note"


# Finalize is refused while any of these is missing or empty (checked in this order)
REQUIRED_FIELDS: tuple[DraftField, ...] = (
    DraftField.STORE_NAME,
    DraftField.ARRIVAL_TIME,
    DraftField.DESTINATION,
    DraftField.DISTANCE,
    DraftField.AMOUNT,
    DraftField.VEHICLE_NUMBER,
)


class InputKind(str, Enum):
    """How a node validates and normalizes free text"""

    TEXT = "text"
    TEXT_OR_LOCATION = "text_or_location"
    DATETIME = "datetime"
    NUMBER = "number"
    CONFIRMATION = "confirmation"


class ChoiceSource(str, Enum):
    """Choice list offered as buttons on a prompt"""

    STORES = "stores"
    VEHICLES = "vehicles"
    RECENT_DATES = "recent_dates"


@dataclass(frozen=True)
class EntryNode:
    """One step of the entry workflow"""

    state: UserState
    field: DraftField | None
    input_kind: InputKind
    skippable: bool = False
    choice_source: ChoiceSource | None = None

    @property
    def accepts_location(self) -> bool:
        return self.input_kind == InputKind.TEXT_OR_LOCATION


ENTRY_GRAPH: tuple[EntryNode, ...] = (
    EntryNode(UserState.DEPARTURE_POINT, DraftField.DEPARTURE_POINT, InputKind.TEXT_OR_LOCATION),
    EntryNode(UserState.STORE_NAME, DraftField.STORE_NAME, InputKind.TEXT,
              choice_source=ChoiceSource.STORES),
    EntryNode(UserState.VIA_POINT, DraftField.VIA_POINT, InputKind.TEXT_OR_LOCATION, skippable=True),
    EntryNode(UserState.ARRIVAL_TIME, DraftField.ARRIVAL_TIME, InputKind.DATETIME),
    EntryNode(UserState.DESTINATION, DraftField.DESTINATION, InputKind.TEXT_OR_LOCATION),
    EntryNode(UserState.DISTANCE, DraftField.DISTANCE, InputKind.NUMBER),
    EntryNode(UserState.AMOUNT, DraftField.AMOUNT, InputKind.NUMBER),
    EntryNode(UserState.VEHICLE_NUMBER, DraftField.VEHICLE_NUMBER, InputKind.TEXT,
              choice_source=ChoiceSource.VEHICLES),
    EntryNode(UserState.NOTE, DraftField.NOTE, InputKind.TEXT, skippable=True),
    EntryNode(UserState.CONFIRM, None, InputKind.CONFIRMATION),
)

_NODE_INDEX: dict[UserState, int] = {node.state: i for i, node in enumerate(ENTRY_GRAPH)}

# Daily report sub-workflow: date → vehicle → back to idle
REPORT_TRANSITIONS: dict[UserState, UserState] = {
    UserState.REPORT_DATE_SELECT: UserState.REPORT_VEHICLE_SELECT,
    UserState.REPORT_VEHICLE_SELECT: UserState.IDLE,
}


def parse_state(value: str | None) -> UserState | None:
    """Stored state string → ``UserState``; ``None`` when unrecognized"""
    if value is None:
        return None
    try:
        return UserState(value)
    except ValueError:
        return None


def first_state() -> UserState:
    return ENTRY_GRAPH[0].state


def get_node(state: UserState) -> EntryNode | None:
    index = _NODE_INDEX.get(state)
    return ENTRY_GRAPH[index] if index is not None else None


def is_entry_state(state: UserState) -> bool:
    return state in _NODE_INDEX


def is_report_state(state: UserState) -> bool:
    return state in REPORT_TRANSITIONS


def next_state(state: UserState) -> UserState:
    """Following entry node, or IDLE after the last or for non-entry states"""
    index = _NODE_INDEX.get(state)
    if index is None or index + 1 >= len(ENTRY_GRAPH):
        return UserState.IDLE
    return ENTRY_GRAPH[index + 1].state


def previous_state(state: UserState) -> UserState:
    """Preceding entry node, or IDLE before the first or for non-entry states"""
    index = _NODE_INDEX.get(state)
    if index is None or index == 0:
        return UserState.IDLE
    return ENTRY_GRAPH[index - 1].state

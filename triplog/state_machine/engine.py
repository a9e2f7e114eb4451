"""
Conversation Engine

Pure transition logic: ``(session, input) → (new_session, outcome)``.
Nothing here touches the database or the messaging API; the conversation
service persists the returned session and renders the outcome.
"""
from datetime import timedelta
from typing import Callable, Protocol

from triplog.core.exceptions import ExternalServiceException, UnknownStateError
from triplog.core.logging import get_logger, mask_user_id
from triplog.core.timeutils import Clock, format_datetime, now_local
from triplog.core.validation import (
    normalize_date,
    normalize_datetime,
    normalize_number,
    parse_datetime,
    sanitize_text,
    validate_date,
    validate_datetime,
    validate_number,
)
from triplog.state_machine import messages
from triplog.state_machine.events import (
    Action,
    ActionInput,
    LocationInput,
    TextInput,
)
from triplog.state_machine.outcomes import Outcome, ReportQuery
from triplog.state_machine.session import Session
from triplog.state_machine.states import (
    REQUIRED_FIELDS,
    DraftField,
    EntryNode,
    InputKind,
    UserState,
    first_state,
    get_node,
    is_entry_state,
    next_state,
    parse_state,
    previous_state,
)
from triplog.state_machine.timeout import timeout_guard

logger = get_logger(__name__)

Transition = tuple[Session, Outcome]

_SELECTION_DATE = "date"


class ReverseGeocoder(Protocol):
    async def reverse_geocode(self, latitude: float, longitude: float) -> str | None:
        ...


class ConversationEngine:
    """Per-user workflow transitions for trip entry and the daily report"""

    def __init__(
        self,
        geocoder: ReverseGeocoder | None = None,
        session_timeout: timedelta = timedelta(minutes=30),
        clock: Clock = now_local,
    ):
        self.geocoder = geocoder
        self.session_timeout = session_timeout
        self.clock = clock
        self._action_handlers: dict[Action, Callable[[Session, UserState], Transition]] = {
            Action.NEW: self._start_entry,
            Action.REPORT: self._start_report,
            Action.CANCEL: self._cancel,
            Action.BACK: self._back,
            Action.FORWARD: self._forward,
            Action.ARRIVED: self._arrived,
            Action.CONFIRM: self._confirm,
            Action.MODIFY: self._modify,
            Action.TIMEOUT_CONTINUE: self._timeout_continue,
            Action.TIMEOUT_RESET: self._timeout_reset,
        }

    @timeout_guard
    async def handle_input(
        self,
        session: Session,
        inp: TextInput | ActionInput | LocationInput,
    ) -> Transition:
        """Apply one inbound input to ``session``"""
        try:
            state = self._resolve_state(session)
        except UnknownStateError as e:
            logger.warning(
                "Unknown stored state, resetting session",
                extra_data={"user_id": mask_user_id(session.user_id), **e.details},
            )
            return session.reset(self.clock()), Outcome.notice(messages.RESTART)

        if isinstance(inp, LocationInput):
            return await self._handle_location(session, state, inp)

        if isinstance(inp, TextInput):
            command = inp.command()
            if command is None:
                return self._handle_text(session, state, inp.text)
            return self._action_handlers[command](session, state)

        if inp.action is None:
            logger.info("Unrecognized postback", extra_data={"data": inp.raw[:100]})
            return session, Outcome.notice(messages.UNKNOWN_ACTION)
        return self._action_handlers[inp.action](session, state)

    @staticmethod
    def _resolve_state(session: Session) -> UserState:
        state = parse_state(session.state)
        if state is None:
            raise UnknownStateError(session.state)
        return state

    # ---- free text -------------------------------------------------------

    def _handle_text(self, session: Session, state: UserState, text: str) -> Transition:
        if state == UserState.IDLE:
            return session, Outcome.notice(messages.IDLE_GUIDANCE)
        if state == UserState.REPORT_DATE_SELECT:
            return self._select_report_date(session, text)
        if state == UserState.REPORT_VEHICLE_SELECT:
            return self._select_report_vehicle(session, text)

        node = get_node(state)
        if node.input_kind == InputKind.CONFIRMATION:
            # Only the register / modify buttons leave the confirm node
            return session, Outcome.prompt()

        value = self._accept(node, text)
        if value is None:
            return session, Outcome.reprompt(messages.INVALID_FORMAT)
        return self._advance(session, node, value)

    @staticmethod
    def _accept(node: EntryNode, text: str) -> str | None:
        """Normalized value for ``node`` or None when ``text`` is rejected"""
        if node.input_kind == InputKind.NUMBER:
            return normalize_number(text) if validate_number(text) else None
        if node.input_kind == InputKind.DATETIME:
            if not validate_datetime(text, require_time=False):
                return None
            return normalize_datetime(text)
        cleaned = sanitize_text(text)
        return cleaned or None

    def _advance(self, session: Session, node: EntryNode, value: str) -> Transition:
        """Store ``value`` under the node's field and move to the next node"""
        draft = {**session.draft, node.field.value: value}
        return session.with_state(next_state(node.state), self.clock(), draft=draft), Outcome.prompt()

    # ---- location ----------------------------------------------------------

    async def _handle_location(
        self, session: Session, state: UserState, location: LocationInput
    ) -> Transition:
        node = get_node(state)
        if node is None or not node.accepts_location:
            return session, Outcome.notice(messages.LOCATION_NOT_ALLOWED)

        address = await self._reverse_geocode(location)
        return self._advance(session, node, sanitize_text(address) or location.as_coordinates())

    async def _reverse_geocode(self, location: LocationInput) -> str:
        if self.geocoder is None:
            return location.as_coordinates()
        try:
            address = await self.geocoder.reverse_geocode(location.latitude, location.longitude)
        except ExternalServiceException as e:
            logger.warning(
                "Reverse geocoding failed, using coordinates",
                extra_data={"error_code": e.error_code.value, "details": e.details},
            )
            return location.as_coordinates()
        return address or location.as_coordinates()

    # ---- report workflow ---------------------------------------------------

    def _select_report_date(self, session: Session, text: str) -> Transition:
        date = normalize_date(text)
        # The report window needs a real calendar date
        if not validate_date(text) or parse_datetime(date) is None:
            return session, Outcome.reprompt(messages.INVALID_FORMAT)
        selection = {_SELECTION_DATE: date}
        return (
            session.with_state(UserState.REPORT_VEHICLE_SELECT, self.clock(), selection=selection),
            Outcome.prompt(),
        )

    def _select_report_vehicle(self, session: Session, text: str) -> Transition:
        vehicle = sanitize_text(text)
        if not vehicle:
            return session, Outcome.reprompt(messages.INVALID_FORMAT)
        date = session.selection.get(_SELECTION_DATE)
        if not date:
            logger.warning(
                "Report vehicle step without a selected date",
                extra_data={"user_id": mask_user_id(session.user_id)},
            )
            return session.reset(self.clock()), Outcome.notice(messages.RESTART)
        return session.reset(self.clock()), Outcome.run_report(ReportQuery(date=date, vehicle_number=vehicle))

    # ---- actions -----------------------------------------------------------

    def _start_entry(self, session: Session, state: UserState) -> Transition:
        now = self.clock()
        draft = {DraftField.DEPARTURE_TIME.value: format_datetime(now)}
        return (
            session.with_state(first_state(), now, draft=draft, selection={}),
            Outcome.prompt(messages.NEW_RECORD_STARTED),
        )

    def _start_report(self, session: Session, state: UserState) -> Transition:
        return (
            session.with_state(UserState.REPORT_DATE_SELECT, self.clock(), draft={}, selection={}),
            Outcome.prompt(),
        )

    def _cancel(self, session: Session, state: UserState) -> Transition:
        return session.reset(self.clock()), Outcome.notice(messages.CANCELLED)

    def _back(self, session: Session, state: UserState) -> Transition:
        if not is_entry_state(state):
            return session, Outcome.notice(messages.UNKNOWN_ACTION)

        target = previous_state(state)
        if target == UserState.IDLE:
            return session.reset(self.clock()), Outcome.notice(messages.ENTRY_CANCELLED)

        # The node we return to asks for its field again
        draft = dict(session.draft)
        draft.pop(get_node(target).field.value, None)
        return session.with_state(target, self.clock(), draft=draft), Outcome.prompt()

    def _forward(self, session: Session, state: UserState) -> Transition:
        node = get_node(state)
        if node is None:
            return session, Outcome.notice(messages.UNKNOWN_ACTION)
        if not node.skippable:
            return session, Outcome.reprompt(messages.CANNOT_SKIP)
        return self._advance(session, node, "")

    def _arrived(self, session: Session, state: UserState) -> Transition:
        if state != UserState.ARRIVAL_TIME:
            return session, Outcome.notice(messages.ARRIVED_ONLY_ON_ARRIVAL)
        return self._advance(session, get_node(state), format_datetime(self.clock()))

    def _confirm(self, session: Session, state: UserState) -> Transition:
        if state != UserState.CONFIRM:
            return session, Outcome.notice(messages.UNKNOWN_ACTION)

        for required in REQUIRED_FIELDS:
            if not session.draft.get(required.value):
                return session, Outcome.reprompt(messages.missing_field(required))

        record = dict(session.draft)
        return session.reset(self.clock()), Outcome.finalize(record, messages.REGISTERED)

    def _modify(self, session: Session, state: UserState) -> Transition:
        if state != UserState.CONFIRM:
            return session, Outcome.notice(messages.UNKNOWN_ACTION)
        return session.with_state(UserState.NOTE, self.clock()), Outcome.prompt()

    def _timeout_continue(self, session: Session, state: UserState) -> Transition:
        return session.touch(self.clock()), Outcome.prompt()

    def _timeout_reset(self, session: Session, state: UserState) -> Transition:
        return session.reset(self.clock()), Outcome.notice(messages.STATE_RESET)

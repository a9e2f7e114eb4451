"""
Tests for the conversation engine - triplog/state_machine/engine.py

The engine is pure: every test builds a ``Session``, applies inputs and
checks the returned session and outcome.
"""
import pytest

from triplog.core.exceptions import GeocoderError, ServiceTimeoutError
from triplog.state_machine import messages
from triplog.state_machine.engine import ConversationEngine
from triplog.state_machine.events import Action, ActionInput, LocationInput, TextInput
from triplog.state_machine.outcomes import OutcomeKind, ReportQuery
from triplog.state_machine.session import Session
from triplog.state_machine.states import DraftField, UserState, get_node

from conftest import COMPLETE_DRAFT, TEST_USER_ID


def _session(clock, state: UserState = UserState.IDLE, draft: dict | None = None, **kwargs) -> Session:
    return Session(
        user_id=TEST_USER_ID,
        state=state.value,
        draft=dict(draft or {}),
        last_updated_at=clock(),
        **kwargs,
    )


def _action(action: Action) -> ActionInput:
    return ActionInput.from_postback(action.value)


async def _run(engine: ConversationEngine, session: Session, *inputs):
    outcome = None
    for inp in inputs:
        session, outcome = await engine.handle_input(session, inp)
    return session, outcome


class TestStartEntry:
    """「新規」 command"""

    @pytest.mark.unit
    @pytest.mark.parametrize("command", ["新規", "新規登録", " 新規 "])
    async def test_new_from_idle(self, engine, clock, command: str) -> None:
        session, outcome = await engine.handle_input(_session(clock), TextInput(command))

        assert session.state == UserState.DEPARTURE_POINT.value
        assert session.draft == {DraftField.DEPARTURE_TIME.value: "2025/12/26 14:30"}
        assert outcome.kind == OutcomeKind.PROMPT
        assert outcome.message == messages.NEW_RECORD_STARTED

    @pytest.mark.unit
    async def test_new_mid_flow_starts_fresh_draft(self, engine, clock) -> None:
        start = _session(clock, UserState.DISTANCE, {"store_name": "新宿店", "destination": "渋谷駅"})
        session, _ = await engine.handle_input(start, TextInput("新規"))

        assert session.state == UserState.DEPARTURE_POINT.value
        assert "store_name" not in session.draft

    @pytest.mark.unit
    async def test_new_postback(self, engine, clock) -> None:
        session, _ = await engine.handle_input(_session(clock), _action(Action.NEW))
        assert session.state == UserState.DEPARTURE_POINT.value


class TestRoundTrip:
    """new → every node → confirm"""

    @pytest.mark.unit
    async def test_full_entry_produces_one_record(self, engine, clock) -> None:
        session, outcome = await _run(
            engine,
            _session(clock),
            TextInput("新規"),
            TextInput("東京駅"),
            TextInput("新宿店"),
            _action(Action.FORWARD),
            TextInput("2025/12/26 1500"),
            TextInput("渋谷駅"),
            TextInput("１２.５"),
            TextInput("3200"),
            TextInput("品川500あ1234"),
            _action(Action.FORWARD),
        )
        assert session.state == UserState.CONFIRM.value
        assert outcome.kind == OutcomeKind.PROMPT

        session, outcome = await engine.handle_input(session, _action(Action.CONFIRM))

        assert session.state == UserState.IDLE.value
        assert session.draft == {}
        assert outcome.kind == OutcomeKind.FINALIZE
        assert outcome.message == messages.REGISTERED
        assert outcome.record == {
            "departure_time": "2025/12/26 14:30",
            "departure_point": "東京駅",
            "store_name": "新宿店",
            "via_point": "",
            "arrival_time": "2025/12/26 15:00",
            "destination": "渋谷駅",
            "distance": "12.5",
            "amount": "3200",
            "vehicle_number": "品川500あ1234",
            "note": "",
        }

    @pytest.mark.unit
    async def test_bare_arrival_date_is_accepted(self, engine, clock) -> None:
        start = _session(clock, UserState.ARRIVAL_TIME)
        session, _ = await engine.handle_input(start, TextInput("2025/1/2"))

        assert session.state == UserState.DESTINATION.value
        assert session.draft["arrival_time"] == "2025/1/2"


class TestInvalidInput:
    """Rejected values keep the state and ask again"""

    @pytest.mark.unit
    @pytest.mark.parametrize("state,text", [
        (UserState.DISTANCE, "abc"),
        (UserState.AMOUNT, "-100"),
        (UserState.ARRIVAL_TIME, "2025/13/01 1000"),
        (UserState.ARRIVAL_TIME, "tomorrow"),
        (UserState.STORE_NAME, "   "),
    ])
    async def test_reprompt(self, engine, clock, state: UserState, text: str) -> None:
        start = _session(clock, state, {"store_name": "新宿店"})
        session, outcome = await engine.handle_input(start, TextInput(text))

        assert session == start
        assert outcome.kind == OutcomeKind.REPROMPT
        assert outcome.message == messages.INVALID_FORMAT

    @pytest.mark.unit
    async def test_idle_text_shows_guidance(self, engine, clock) -> None:
        start = _session(clock)
        session, outcome = await engine.handle_input(start, TextInput("こんにちは"))

        assert session == start
        assert outcome.kind == OutcomeKind.NOTICE
        assert outcome.message == messages.IDLE_GUIDANCE

    @pytest.mark.unit
    async def test_text_on_confirm_shows_card_again(self, engine, clock) -> None:
        start = _session(clock, UserState.CONFIRM, COMPLETE_DRAFT)
        session, outcome = await engine.handle_input(start, TextInput("はい"))

        assert session == start
        assert outcome.kind == OutcomeKind.PROMPT

    @pytest.mark.unit
    async def test_unknown_postback(self, engine, clock) -> None:
        start = _session(clock, UserState.DISTANCE)
        session, outcome = await engine.handle_input(start, ActionInput.from_postback("action=delete&id=3"))

        assert session == start
        assert outcome.message == messages.UNKNOWN_ACTION


class TestSkip:
    """「進む」 on skippable nodes only"""

    @pytest.mark.unit
    @pytest.mark.parametrize("state,target", [
        (UserState.VIA_POINT, UserState.ARRIVAL_TIME),
        (UserState.NOTE, UserState.CONFIRM),
    ])
    async def test_skip_stores_empty_value(self, engine, clock, state, target) -> None:
        session, outcome = await engine.handle_input(_session(clock, state), _action(Action.FORWARD))

        assert session.state == target.value
        assert session.draft[get_node(state).field.value] == ""
        assert outcome.kind == OutcomeKind.PROMPT

    @pytest.mark.unit
    @pytest.mark.parametrize("state", [
        UserState.DEPARTURE_POINT, UserState.STORE_NAME, UserState.ARRIVAL_TIME,
        UserState.DISTANCE, UserState.VEHICLE_NUMBER,
    ])
    async def test_skip_refused(self, engine, clock, state) -> None:
        start = _session(clock, state)
        session, outcome = await engine.handle_input(start, _action(Action.FORWARD))

        assert session == start
        assert outcome.kind == OutcomeKind.REPROMPT
        assert outcome.message == messages.CANNOT_SKIP

    @pytest.mark.unit
    async def test_skip_outside_entry(self, engine, clock) -> None:
        _, outcome = await engine.handle_input(_session(clock), _action(Action.FORWARD))
        assert outcome.message == messages.UNKNOWN_ACTION


class TestBack:
    """「戻る」 re-asks the previous node"""

    @pytest.mark.unit
    async def test_back_drops_previous_field(self, engine, clock) -> None:
        draft = {"store_name": "新宿店", "destination": "渋谷駅"}
        session, outcome = await engine.handle_input(
            _session(clock, UserState.DISTANCE, draft), _action(Action.BACK)
        )

        assert session.state == UserState.DESTINATION.value
        assert session.draft == {"store_name": "新宿店"}
        assert outcome.kind == OutcomeKind.PROMPT

    @pytest.mark.unit
    async def test_back_from_first_node_cancels(self, engine, clock) -> None:
        start = _session(clock, UserState.DEPARTURE_POINT, {"departure_time": "2025/12/26 14:30"})
        session, outcome = await engine.handle_input(start, _action(Action.BACK))

        assert session.state == UserState.IDLE.value
        assert session.draft == {}
        assert outcome.message == messages.ENTRY_CANCELLED

    @pytest.mark.unit
    async def test_back_from_confirm_goes_to_note(self, engine, clock) -> None:
        session, _ = await engine.handle_input(
            _session(clock, UserState.CONFIRM, COMPLETE_DRAFT), _action(Action.BACK)
        )
        assert session.state == UserState.NOTE.value
        assert "note" not in session.draft
        assert session.draft["vehicle_number"] == COMPLETE_DRAFT["vehicle_number"]

    @pytest.mark.unit
    async def test_back_when_idle(self, engine, clock) -> None:
        start = _session(clock)
        session, outcome = await engine.handle_input(start, _action(Action.BACK))
        assert session == start
        assert outcome.message == messages.UNKNOWN_ACTION


class TestCancel:
    """「取消」 from anywhere"""

    @pytest.mark.unit
    @pytest.mark.parametrize("inp", [TextInput("取消"), TextInput("キャンセル"), ActionInput.from_postback("action_cancel")])
    async def test_cancel_discards_draft(self, engine, clock, inp) -> None:
        session, outcome = await engine.handle_input(_session(clock, UserState.AMOUNT, COMPLETE_DRAFT), inp)

        assert session.state == UserState.IDLE.value
        assert session.draft == {}
        assert outcome.message == messages.CANCELLED

    @pytest.mark.unit
    async def test_cancel_is_idempotent(self, engine, clock) -> None:
        once, first = await engine.handle_input(_session(clock), TextInput("取消"))
        twice, second = await engine.handle_input(once, TextInput("取消"))

        assert once.state == twice.state == UserState.IDLE.value
        assert once.draft == twice.draft == {}
        assert first.message == second.message == messages.CANCELLED


class TestArrived:
    """「目的地に到着」 stamps the current time"""

    @pytest.mark.unit
    async def test_arrived_on_arrival_node(self, engine, clock) -> None:
        clock.advance(minutes=45)
        session, outcome = await engine.handle_input(_session(clock, UserState.ARRIVAL_TIME), _action(Action.ARRIVED))

        assert session.state == UserState.DESTINATION.value
        assert session.draft["arrival_time"] == "2025/12/26 15:15"
        assert outcome.kind == OutcomeKind.PROMPT

    @pytest.mark.unit
    async def test_arrived_elsewhere(self, engine, clock) -> None:
        start = _session(clock, UserState.DISTANCE)
        session, outcome = await engine.handle_input(start, _action(Action.ARRIVED))

        assert session == start
        assert outcome.message == messages.ARRIVED_ONLY_ON_ARRIVAL


class TestLocation:
    """Shared locations on departure / via / destination"""

    @pytest.mark.unit
    async def test_location_uses_reverse_geocoded_address(self, engine, clock, geocoder) -> None:
        session, _ = await engine.handle_input(
            _session(clock, UserState.DEPARTURE_POINT), LocationInput(35.6812, 139.7671)
        )

        assert session.state == UserState.STORE_NAME.value
        assert session.draft["departure_point"] == "東京都千代田区丸の内1丁目"
        geocoder.reverse_geocode.assert_awaited_once_with(35.6812, 139.7671)

    @pytest.mark.unit
    @pytest.mark.parametrize("failure", [
        GeocoderError("geocode status REQUEST_DENIED"),
        ServiceTimeoutError("geocoder", 5.0),
    ])
    async def test_geocoder_failure_falls_back_to_coordinates(self, engine, clock, geocoder, failure) -> None:
        geocoder.reverse_geocode.side_effect = failure
        session, _ = await engine.handle_input(
            _session(clock, UserState.DESTINATION), LocationInput(35.6812, 139.7671)
        )

        assert session.state == UserState.DISTANCE.value
        assert session.draft["destination"] == "(35.6812, 139.7671)"

    @pytest.mark.unit
    async def test_no_result_falls_back_to_coordinates(self, engine, clock, geocoder) -> None:
        geocoder.reverse_geocode.return_value = None
        session, _ = await engine.handle_input(
            _session(clock, UserState.VIA_POINT), LocationInput(34.7025, 135.4959)
        )
        assert session.draft["via_point"] == "(34.7025, 135.4959)"

    @pytest.mark.unit
    async def test_without_geocoder(self, clock) -> None:
        engine = ConversationEngine(geocoder=None, clock=clock)
        session, _ = await engine.handle_input(
            _session(clock, UserState.DEPARTURE_POINT), LocationInput(35.0, 139.0)
        )
        assert session.draft["departure_point"] == "(35.0, 139.0)"

    @pytest.mark.unit
    @pytest.mark.parametrize("state", [UserState.IDLE, UserState.DISTANCE, UserState.CONFIRM])
    async def test_location_not_allowed(self, engine, clock, geocoder, state) -> None:
        start = _session(clock, state)
        session, outcome = await engine.handle_input(start, LocationInput(35.0, 139.0))

        assert session == start
        assert outcome.message == messages.LOCATION_NOT_ALLOWED
        geocoder.reverse_geocode.assert_not_awaited()


class TestConfirm:
    """Register / modify on the confirm card"""

    @pytest.mark.unit
    async def test_missing_required_field(self, engine, clock) -> None:
        draft = {k: v for k, v in COMPLETE_DRAFT.items() if k != "distance"}
        start = _session(clock, UserState.CONFIRM, draft)
        session, outcome = await engine.handle_input(start, _action(Action.CONFIRM))

        assert session == start
        assert outcome.kind == OutcomeKind.REPROMPT
        assert outcome.message == messages.missing_field(DraftField.DISTANCE)
        assert "走行距離" in outcome.message

    @pytest.mark.unit
    async def test_confirm_outside_confirm_node(self, engine, clock) -> None:
        start = _session(clock, UserState.NOTE, COMPLETE_DRAFT)
        session, outcome = await engine.handle_input(start, _action(Action.CONFIRM))

        assert session == start
        assert outcome.message == messages.UNKNOWN_ACTION

    @pytest.mark.unit
    async def test_modify_returns_to_note_keeping_draft(self, engine, clock) -> None:
        session, outcome = await engine.handle_input(
            _session(clock, UserState.CONFIRM, COMPLETE_DRAFT), _action(Action.MODIFY)
        )

        assert session.state == UserState.NOTE.value
        assert session.draft == COMPLETE_DRAFT
        assert outcome.kind == OutcomeKind.PROMPT


class TestReportWorkflow:
    """「日報」 date → vehicle → report"""

    @pytest.mark.unit
    async def test_full_report_flow(self, engine, clock) -> None:
        session, outcome = await engine.handle_input(_session(clock), TextInput("日報"))
        assert session.state == UserState.REPORT_DATE_SELECT.value
        assert outcome.kind == OutcomeKind.PROMPT

        session, _ = await engine.handle_input(session, TextInput("2025/12/26"))
        assert session.state == UserState.REPORT_VEHICLE_SELECT.value
        assert session.selection == {"date": "2025/12/26"}

        session, outcome = await engine.handle_input(session, TextInput("品川500あ1234"))
        assert session.state == UserState.IDLE.value
        assert session.selection == {}
        assert outcome.kind == OutcomeKind.REPORT
        assert outcome.report == ReportQuery(date="2025/12/26", vehicle_number="品川500あ1234")

    @pytest.mark.unit
    async def test_report_discards_entry_draft(self, engine, clock) -> None:
        session, _ = await engine.handle_input(
            _session(clock, UserState.AMOUNT, COMPLETE_DRAFT), _action(Action.REPORT)
        )
        assert session.state == UserState.REPORT_DATE_SELECT.value
        assert session.draft == {}

    @pytest.mark.unit
    async def test_invalid_report_date(self, engine, clock) -> None:
        start = _session(clock, UserState.REPORT_DATE_SELECT)
        session, outcome = await engine.handle_input(start, TextInput("2025/12/26 1430"))

        assert session == start
        assert outcome.kind == OutcomeKind.REPROMPT

    @pytest.mark.unit
    @pytest.mark.parametrize("text", ["2025/2/31", "2025/4/31", "2023/2/29"])
    async def test_report_date_must_exist_on_calendar(self, engine, clock, text: str) -> None:
        start = _session(clock, UserState.REPORT_DATE_SELECT)
        session, outcome = await engine.handle_input(start, TextInput(text))

        assert session == start
        assert outcome.kind == OutcomeKind.REPROMPT
        assert outcome.message == messages.INVALID_FORMAT

    @pytest.mark.unit
    async def test_leap_day_report_date_accepted(self, engine, clock) -> None:
        session, _ = await engine.handle_input(
            _session(clock, UserState.REPORT_DATE_SELECT), TextInput("2024/2/29")
        )
        assert session.state == UserState.REPORT_VEHICLE_SELECT.value
        assert session.selection == {"date": "2024/02/29"}

    @pytest.mark.unit
    async def test_vehicle_step_without_date_restarts(self, engine, clock) -> None:
        session, outcome = await engine.handle_input(
            _session(clock, UserState.REPORT_VEHICLE_SELECT), TextInput("品川500あ1234")
        )
        assert session.state == UserState.IDLE.value
        assert outcome.message == messages.RESTART


class TestUnknownState:
    """Stored state values the engine does not know"""

    @pytest.mark.unit
    async def test_unknown_state_resets(self, engine, clock) -> None:
        start = Session(
            user_id=TEST_USER_ID,
            state="NEW_RECORD_DELETE_SELECT",
            draft={"store_name": "新宿店"},
            last_updated_at=clock(),
        )
        session, outcome = await engine.handle_input(start, TextInput("1"))

        assert session.state == UserState.IDLE.value
        assert session.draft == {}
        assert outcome.kind == OutcomeKind.NOTICE
        assert outcome.message == messages.RESTART

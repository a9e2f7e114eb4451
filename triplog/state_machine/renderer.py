"""
Prompt Renderer: outcome and session to outgoing messages
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Protocol, Sequence

from triplog.core.timeutils import Clock, now_local, recent_dates
from triplog.state_machine import messages
from triplog.state_machine.events import Action
from triplog.state_machine.outcomes import Outcome, OutcomeKind, ReportQuery
from triplog.state_machine.responses import (
    MAX_CHOICES,
    Button,
    MessageResponse,
    QuickAction,
    QuickActionKind,
)
from triplog.state_machine.session import Session
from triplog.state_machine.states import (
    ChoiceSource,
    DraftField,
    InputKind,
    UserState,
    get_node,
    parse_state,
)

# LINE caps a text message at 5000 characters
_MAX_REPORT_CHARS = 4800


class ReferenceLists(Protocol):
    async def list_vehicles(self) -> Sequence[Any]:
        ...

    async def list_stores(self) -> Sequence[Any]:
        ...


def _postback(label: str, action: Action) -> QuickAction:
    return QuickAction(QuickActionKind.POSTBACK, label, action.value)


_BACK = _postback(messages.BACK_LABEL, Action.BACK)
_CANCEL = _postback(messages.CANCEL_LABEL, Action.CANCEL)
_FORWARD = _postback(messages.FORWARD_LABEL, Action.FORWARD)
_ARRIVED = _postback(messages.ARRIVED_LABEL, Action.ARRIVED)
_LOCATION = QuickAction(QuickActionKind.LOCATION, messages.LOCATION_LABEL)


class PromptRenderer:
    """Builds the reply for one transition"""

    def __init__(self, reference_lists: ReferenceLists, clock: Clock = now_local):
        self.reference_lists = reference_lists
        self.clock = clock

    async def render(
        self,
        session: Session,
        outcome: Outcome,
        report_records: Iterable[Any] | None = None,
    ) -> list[MessageResponse]:
        if outcome.kind == OutcomeKind.PROMPT:
            return await self.prompt_for(session, lead=outcome.message)

        if outcome.kind == OutcomeKind.REPROMPT:
            return [MessageResponse.plain(outcome.message)] + await self.prompt_for(session)

        if outcome.kind == OutcomeKind.RESUME_OR_RESET:
            return [self._timeout_card(outcome.stale_state)]

        if outcome.kind == OutcomeKind.REPORT:
            return [MessageResponse.plain(self._report_text(outcome.report, list(report_records or [])))]

        # NOTICE and FINALIZE
        return [MessageResponse.plain(outcome.message)]

    async def prompt_for(self, session: Session, lead: str | None = None) -> list[MessageResponse]:
        """Prompt of the session's current state, optionally preceded by ``lead``"""
        state = parse_state(session.state) or UserState.IDLE

        if state == UserState.IDLE:
            return [MessageResponse.plain(self._join(lead, messages.IDLE_GUIDANCE))]

        if state == UserState.REPORT_DATE_SELECT:
            dates = await self._choice_labels(ChoiceSource.RECENT_DATES)
            return [MessageResponse.with_choices(
                self._join(lead, messages.PROMPTS[state]), dates, [_CANCEL]
            )]

        if state == UserState.REPORT_VEHICLE_SELECT:
            labels = await self._choice_labels(ChoiceSource.VEHICLES)
            return [MessageResponse.with_choices(
                self._join(lead, messages.PROMPTS[state]), labels, [_CANCEL]
            )]

        node = get_node(state)
        if node.input_kind == InputKind.CONFIRMATION:
            card = self._confirm_card(session.draft)
            return [MessageResponse.plain(lead), card] if lead else [card]

        quick_actions = [_BACK, _CANCEL]
        if node.skippable:
            quick_actions.append(_FORWARD)
        if state == UserState.ARRIVAL_TIME:
            quick_actions.append(_ARRIVED)
        if node.accepts_location:
            quick_actions.append(_LOCATION)

        text = self._join(lead, messages.PROMPTS[state])
        if node.choice_source is None:
            return [MessageResponse.plain(text, quick_actions)]
        labels = await self._choice_labels(node.choice_source)
        return [MessageResponse.with_choices(text, labels, quick_actions)]

    async def _choice_labels(self, source: ChoiceSource) -> list[str]:
        if source == ChoiceSource.RECENT_DATES:
            return recent_dates(self.clock())[:MAX_CHOICES]
        if source == ChoiceSource.STORES:
            items = await self.reference_lists.list_stores()
        else:
            items = await self.reference_lists.list_vehicles()
        return [item.label for item in items[:MAX_CHOICES]]

    @staticmethod
    def _join(lead: str | None, text: str) -> str:
        return f"{lead}\n\n{text}" if lead else text

    @staticmethod
    def _confirm_card(draft: dict[str, str]) -> MessageResponse:
        rows = [(label, draft.get(field.value) or "-") for field, label in messages.FIELD_LABELS.items()]
        return MessageResponse.summary_card(
            messages.CONFIRM_TITLE,
            rows,
            [
                Button(messages.CONFIRM_REGISTER_LABEL, Action.CONFIRM.value),
                Button(messages.CONFIRM_MODIFY_LABEL, Action.MODIFY.value),
            ],
            quick_actions=[_BACK, _CANCEL],
        )

    @staticmethod
    def _timeout_card(state: UserState) -> MessageResponse:
        return MessageResponse.confirm(
            messages.timeout_question(state),
            yes=Button(messages.TIMEOUT_CONTINUE_LABEL, Action.TIMEOUT_CONTINUE.value),
            no=Button(messages.TIMEOUT_RESET_LABEL, Action.TIMEOUT_RESET.value),
        )

    @staticmethod
    def _report_text(query: ReportQuery, records: list[Any]) -> str:
        if not records:
            return messages.NO_DATA

        lines = [f"{messages.REPORT_TITLE} {query.date} {query.vehicle_number}（{len(records)}件）"]
        total_distance = Decimal(0)
        total_amount = Decimal(0)
        for record in records:
            route = " → ".join(
                part for part in (record.departure_point, record.via_point, record.destination) if part
            )
            lines.append(
                f"No.{record.sequence_no} {record.departure_time}〜{record.arrival_time}\n"
                f"  {record.store_name} / {route}\n"
                f"  {messages.FIELD_LABELS[DraftField.DISTANCE]} {record.distance}"
                f" / {messages.FIELD_LABELS[DraftField.AMOUNT]} {record.amount}"
            )
            total_distance += _to_decimal(record.distance)
            total_amount += _to_decimal(record.amount)

        lines.append(
            f"合計 {messages.FIELD_LABELS[DraftField.DISTANCE]} {total_distance}"
            f" / {messages.FIELD_LABELS[DraftField.AMOUNT]} {total_amount}"
        )
        text = "\n".join(lines)
        if len(text) > _MAX_REPORT_CHARS:
            text = text[:_MAX_REPORT_CHARS] + "\n…"
        return text


def _to_decimal(value: str | None) -> Decimal:
    try:
        return Decimal(value or "0")
    except InvalidOperation:
        return Decimal(0)

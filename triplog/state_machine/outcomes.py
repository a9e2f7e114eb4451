"""
Transition outcomes returned by the engine next to the new session
"""
from dataclasses import dataclass, field
from enum import Enum

from triplog.state_machine.states import UserState


class OutcomeKind(str, Enum):
    PROMPT = "prompt"                    # show the prompt of the (new) current state
    REPROMPT = "reprompt"                # input rejected, same state, ask again
    NOTICE = "notice"                    # plain message, no prompt follows
    RESUME_OR_RESET = "resume_or_reset"  # stale session: continue or start over
    FINALIZE = "finalize"                # record completed; persist it
    REPORT = "report"                    # run the daily report query


@dataclass(frozen=True)
class ReportQuery:
    date: str            # YYYY/MM/DD
    vehicle_number: str


@dataclass(frozen=True)
class Outcome:
    """
    What the renderer shows after a transition.

    ``message`` precedes the prompt for PROMPT/REPROMPT; for NOTICE it is the
    whole reply. FINALIZE carries the completed draft in ``record``.
    """

    kind: OutcomeKind
    message: str | None = None
    record: dict[str, str] = field(default_factory=dict)
    report: ReportQuery | None = None
    stale_state: UserState | None = None

    @classmethod
    def prompt(cls, message: str | None = None) -> "Outcome":
        return cls(OutcomeKind.PROMPT, message=message)

    @classmethod
    def reprompt(cls, message: str) -> "Outcome":
        return cls(OutcomeKind.REPROMPT, message=message)

    @classmethod
    def notice(cls, message: str) -> "Outcome":
        return cls(OutcomeKind.NOTICE, message=message)

    @classmethod
    def resume_or_reset(cls, state: UserState) -> "Outcome":
        return cls(OutcomeKind.RESUME_OR_RESET, stale_state=state)

    @classmethod
    def finalize(cls, record: dict[str, str], message: str) -> "Outcome":
        return cls(OutcomeKind.FINALIZE, message=message, record=dict(record))

    @classmethod
    def run_report(cls, query: ReportQuery) -> "Outcome":
        return cls(OutcomeKind.REPORT, report=query)

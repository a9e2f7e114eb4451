"""
Generate a Mermaid diagram of the conversation state machine.

Usage:
    python scripts/generate_state_diagram.py                        # print to stdout
    python scripts/generate_state_diagram.py --output docs/states.md  # write a markdown file
    python scripts/generate_state_diagram.py --check docs/states.md   # exit 1 when out of date (CI)
"""
import argparse
import sys
from pathlib import Path

from triplog.state_machine import messages
from triplog.state_machine.events import Action, TEXT_COMMANDS
from triplog.state_machine.states import (
    ENTRY_GRAPH,
    REPORT_TRANSITIONS,
    UserState,
    first_state,
    next_state,
    previous_state,
)

_INPUT_LABEL = "入力"


def _sanitize_id(state_value: str) -> str:
    """State value → valid Mermaid id (no dots)"""
    return state_value.replace(".", "_")


def _command_text(action: Action) -> str:
    """First typed command bound to ``action``"""
    return next(text for text, bound in TEXT_COMMANDS.items() if bound == action)


def _edge(source: UserState, target: UserState, label: str) -> str:
    return f"    {_sanitize_id(source.value)} --> {_sanitize_id(target.value)} : {label}"


def generate_mermaid() -> str:
    """stateDiagram-v2 of the entry graph and the report sub-workflow"""
    lines: list[str] = ["stateDiagram-v2"]

    states = [UserState.IDLE] + [node.state for node in ENTRY_GRAPH] + list(REPORT_TRANSITIONS)
    for state in states:
        lines.append(f"    {_sanitize_id(state.value)} : {messages.STATE_LABELS[state]}")

    lines.append("")
    lines.append(f"    [*] --> {_sanitize_id(UserState.IDLE.value)}")
    lines.append(f"    %% {_command_text(Action.CANCEL)} returns to IDLE from every state")
    lines.append("")

    lines.append(_edge(UserState.IDLE, first_state(), _command_text(Action.NEW)))
    for node in ENTRY_GRAPH:
        if node.field is None:
            continue
        target = next_state(node.state)
        lines.append(_edge(node.state, target, _INPUT_LABEL))
        if node.skippable:
            lines.append(_edge(node.state, target, messages.FORWARD_LABEL))
        if node.state == UserState.ARRIVAL_TIME:
            lines.append(_edge(node.state, target, messages.ARRIVED_LABEL))
        lines.append(_edge(node.state, previous_state(node.state), messages.BACK_LABEL))

    confirm = ENTRY_GRAPH[-1].state
    lines.append(_edge(confirm, UserState.IDLE, messages.CONFIRM_REGISTER_LABEL))
    lines.append(_edge(confirm, UserState.NOTE, messages.CONFIRM_MODIFY_LABEL))
    lines.append(_edge(confirm, previous_state(confirm), messages.BACK_LABEL))

    lines.append("")
    lines.append(_edge(UserState.IDLE, UserState.REPORT_DATE_SELECT, _command_text(Action.REPORT)))
    for source, target in REPORT_TRANSITIONS.items():
        lines.append(_edge(source, target, _INPUT_LABEL))

    return "\n".join(lines)


def format_as_markdown(mermaid_code: str) -> str:
    return f"# Conversation states\n\n```mermaid\n{mermaid_code}\n```\n"


def check_file(path: Path, markdown: str) -> bool:
    """True when ``path`` holds exactly the generated diagram"""
    if not path.exists():
        print(f"error: {path} not found")
        return False
    if path.read_text(encoding="utf-8") == markdown:
        print("State diagram is up to date")
        return True
    print(f"error: {path} is out of date")
    print(f"run: python scripts/generate_state_diagram.py --output {path}")
    return False


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Generate a Mermaid diagram of the conversation states")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--output", type=Path, help="write the markdown diagram to this file")
    group.add_argument("--check", type=Path, help="verify that this file matches the code (CI)")
    args = parser.parse_args(argv)

    markdown = format_as_markdown(generate_mermaid())

    if args.check:
        return 0 if check_file(args.check, markdown) else 1
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(markdown, encoding="utf-8")
        print(f"written: {args.output}")
        return 0
    print(markdown)
    return 0


if __name__ == "__main__":
    sys.exit(main())

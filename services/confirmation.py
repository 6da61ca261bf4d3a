"""Confirmation gate for mutating tool calls.

A mutating call only runs when its arguments carry ``confirmed=True``;
anything else is recorded as pending and the turn ends. The UI answers a
pending call in a later request, so nothing here ever waits on a human.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from dtos.chat_request import ChatMessage, ConfirmationResult, ToolCallPart, ToolResultPart
from schemas.tools import AnyToolArgs, CellUpdateArgs, ConfirmActionArgs
from services.errors import ConfirmationStateError

logger = logging.getLogger(__name__)


class ToolCallState(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXECUTED = "executed"
    ERROR = "error"


ALLOWED_TRANSITIONS = {
    ToolCallState.PENDING: {ToolCallState.CONFIRMED, ToolCallState.CANCELLED, ToolCallState.ERROR},
    ToolCallState.CONFIRMED: {ToolCallState.EXECUTED, ToolCallState.ERROR},
    ToolCallState.CANCELLED: set(),
    ToolCallState.EXECUTED: set(),
    ToolCallState.ERROR: set(),
}


@dataclass
class ToolCall:
    """A tool call requested during one turn."""
    id: str
    name: str
    args: Optional[AnyToolArgs] = None
    raw_args: Dict = field(default_factory=dict)
    state: ToolCallState = ToolCallState.PENDING

    def transition(self, new_state: ToolCallState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise ConfirmationStateError(
                f"Tool call {self.id} cannot move from {self.state.value} to {new_state.value}"
            )
        self.state = new_state


class ConfirmationGate:
    """Turn-scoped record of tool calls, keyed by tool-call id."""

    def __init__(self):
        self.calls: Dict[str, ToolCall] = {}

    def admit(self, call: ToolCall) -> bool:
        """
        Decide whether a call may execute now.

        Read-only calls always may. ``confirmAction`` never does. A cell
        update may only when its ``confirmed`` flag is exactly True.
        """
        self.calls[call.id] = call
        if isinstance(call.args, ConfirmActionArgs):
            return False
        if isinstance(call.args, CellUpdateArgs):
            if call.args.confirmed is True:
                call.transition(ToolCallState.CONFIRMED)
                return True
            logger.info(f"Cell update {call.id} held for confirmation")
            return False
        call.transition(ToolCallState.CONFIRMED)
        return True

    def mark_executed(self, call: ToolCall) -> None:
        call.transition(ToolCallState.EXECUTED)

    def mark_failed(self, call: ToolCall) -> None:
        call.transition(ToolCallState.ERROR)

    def resolve(self, tool_call_id: str, result: ConfirmationResult) -> Optional[ToolCall]:
        """Apply a confirm/cancel answer to a pending call. Unknown ids are ignored."""
        call = self.calls.get(tool_call_id)
        if call is None or call.state != ToolCallState.PENDING:
            return None
        if result.confirmed and not result.cancelled:
            call.transition(ToolCallState.CONFIRMED)
        else:
            call.transition(ToolCallState.CANCELLED)
        return call

    @property
    def pending(self) -> List[ToolCall]:
        return [call for call in self.calls.values() if call.state == ToolCallState.PENDING]

    @classmethod
    def from_history(cls, messages: Iterable[ChatMessage]) -> "ConfirmationGate":
        """
        Rebuild the record from earlier turns: every tool call found in the
        history is registered as pending, then any confirmation answers in
        tool results are applied to it.
        """
        gate = cls()
        for message in messages:
            if isinstance(message.content, str):
                continue
            for part in message.content:
                if isinstance(part, ToolCallPart):
                    gate.calls[part.tool_call_id] = ToolCall(
                        id=part.tool_call_id, name=part.tool_name, raw_args=part.args
                    )
                elif isinstance(part, ToolResultPart) and isinstance(part.result, dict):
                    if "confirmed" not in part.result:
                        continue
                    try:
                        answer = ConfirmationResult.model_validate(part.result)
                    except ValidationError:
                        continue
                    call = gate.resolve(part.tool_call_id, answer)
                    if call is not None:
                        logger.info(f"Tool call {call.id} resolved as {call.state.value}")
        return gate

"""Pipeline state machine as a pure transition table."""

from enum import Enum
from typing import Dict, FrozenSet, Tuple

from ..core.types import PipelineState
from ..utils.error_handler import InvalidTransition


class PipelineEvent(str, Enum):
    START = "START"
    EXTRACTED = "EXTRACTED"
    REASONED = "REASONED"
    BRANCHES_JOINED = "BRANCHES_JOINED"
    AGGREGATED = "AGGREGATED"
    STAGE_FAILED = "STAGE_FAILED"
    CONTENT_REJECTED = "CONTENT_REJECTED"


TERMINAL_STATES: FrozenSet[PipelineState] = frozenset(
    {PipelineState.DONE, PipelineState.FAILED, PipelineState.REJECTED}
)

TRANSITIONS: Dict[Tuple[PipelineState, PipelineEvent], PipelineState] = {
    (PipelineState.INIT, PipelineEvent.START): PipelineState.EXTRACTING,
    (PipelineState.EXTRACTING, PipelineEvent.EXTRACTED): PipelineState.REASONING,
    (PipelineState.EXTRACTING, PipelineEvent.CONTENT_REJECTED): PipelineState.REJECTED,
    (PipelineState.REASONING, PipelineEvent.REASONED): PipelineState.FANNED_OUT,
    (PipelineState.FANNED_OUT, PipelineEvent.BRANCHES_JOINED): PipelineState.AGGREGATING,
    (PipelineState.AGGREGATING, PipelineEvent.AGGREGATED): PipelineState.DONE,
}

# Failure is reachable from every non-terminal state
for _state in PipelineState:
    if _state not in TERMINAL_STATES:
        TRANSITIONS[(_state, PipelineEvent.STAGE_FAILED)] = PipelineState.FAILED


def transition(state: PipelineState, event: PipelineEvent) -> PipelineState:
    """
    Next state for ``event`` in ``state``.

    Raises:
        InvalidTransition: If the event is not legal in the current state
    """
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(
            f"Event {event.value} is not valid in state {state.value}",
            details={"state": state.value, "event": event.value},
        ) from None

"""
STATE MACHINE
=============
Per-side order lifecycle tracking:
- Validated transitions
- Transition history keyed by candle time

The reducer in position_manager decides what happens; these machines follow
it and refuse any jump between phases that are not connected.
"""

import threading
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set

from errors import InvalidTransition
from position_manager import Side, TradingState

logger = logging.getLogger(__name__)


class SidePhase(Enum):
    NO_ENTRY      = "NO_ENTRY"
    PENDING_ORDER = "PENDING_ORDER"
    IN_POSITION   = "IN_POSITION"


POSITION_TRANSITIONS: Dict[SidePhase, Set[SidePhase]] = {
    SidePhase.NO_ENTRY:      {SidePhase.PENDING_ORDER},
    SidePhase.PENDING_ORDER: {SidePhase.IN_POSITION, SidePhase.NO_ENTRY},
    SidePhase.IN_POSITION:   {SidePhase.NO_ENTRY},
}


def phase_of(state: TradingState, side: Side) -> SidePhase:
    if state.position_side is side:
        return SidePhase.IN_POSITION
    if state.orders(side).open_order is not None:
        return SidePhase.PENDING_ORDER
    return SidePhase.NO_ENTRY


@dataclass
class StateTransition:
    """Record of a state transition"""
    from_state: SidePhase
    to_state: SidePhase
    timestamp: int
    reason: Optional[str] = None


class StateMachine:
    """
    Thread-safe state machine with validation
    """

    def __init__(
        self,
        name: str,
        initial_state: SidePhase,
        valid_transitions: Dict[SidePhase, Set[SidePhase]],
    ):
        self.name = name
        self._initial_state = initial_state
        self._current_state = initial_state
        self._valid_transitions = valid_transitions

        self._lock = threading.RLock()
        self._history: List[StateTransition] = []

    @property
    def current_state(self) -> SidePhase:
        with self._lock:
            return self._current_state

    def can_transition_to(self, new_state: SidePhase) -> bool:
        with self._lock:
            return new_state in self._valid_transitions.get(self._current_state, set())

    def transition(self, new_state: SidePhase, timestamp: int, reason: Optional[str] = None) -> None:
        """
        Move to ``new_state``.

        Raises:
            InvalidTransition: the two phases are not connected
        """
        with self._lock:
            if not self.can_transition_to(new_state):
                raise InvalidTransition(
                    f"Invalid transition in '{self.name}': "
                    f"{self._current_state.value} -> {new_state.value}"
                )
            old_state = self._current_state
            self._current_state = new_state
            self._history.append(StateTransition(old_state, new_state, timestamp, reason))
            logger.debug(
                f"[{self.name}] {old_state.value} -> {new_state.value}"
                + (f" ({reason})" if reason else "")
            )

    def sync(self, state: TradingState, side: Side, timestamp: int, reason: Optional[str] = None) -> bool:
        """Follow the reducer's book. Returns True when the phase changed."""
        new_state = phase_of(state, side)
        if new_state == self.current_state:
            return False
        self.transition(new_state, timestamp, reason)
        return True

    def get_history(self, limit: Optional[int] = None) -> List[StateTransition]:
        with self._lock:
            if limit:
                return self._history[-limit:]
            return list(self._history)

    def reset(self) -> None:
        with self._lock:
            self._current_state = self._initial_state
            self._history.clear()


class PositionStateMachine(StateMachine):
    """Pre-configured lifecycle for one side of the book"""

    def __init__(self, side: Side):
        self.side = side
        super().__init__(
            name=side.value.upper(),
            initial_state=SidePhase.NO_ENTRY,
            valid_transitions=POSITION_TRANSITIONS,
        )

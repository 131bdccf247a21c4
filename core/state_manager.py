"""
Core Module - Component State.

============================================================
RESPONSIBILITY
============================================================
Owns the run state of long-lived or single-writer components
(streaming ingestion adapter, aggregation updater).

============================================================
STATE MACHINE
============================================================
IDLE     -> RUNNING
RUNNING  -> IDLE | STOPPED
STOPPED  -> RUNNING

Transitions are checked and applied under one lock so that two
triggers can never both observe "not running".

============================================================
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, Optional, Set
import logging
import threading

from .exceptions import StateTransitionError


logger = logging.getLogger(__name__)


class ComponentState(str, Enum):
    """Run state of a component instance."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


VALID_TRANSITIONS: Dict[ComponentState, Set[ComponentState]] = {
    ComponentState.IDLE: {ComponentState.RUNNING},
    ComponentState.RUNNING: {ComponentState.IDLE, ComponentState.STOPPED},
    ComponentState.STOPPED: {ComponentState.RUNNING},
}


class StateGuard:
    """
    Atomic check-and-set holder for a ComponentState.

    Usage:
        guard = StateGuard("aggregation")
        if not guard.try_transition({ComponentState.IDLE}, ComponentState.RUNNING):
            return  # busy
    """

    def __init__(self, component: str, initial: ComponentState = ComponentState.IDLE):
        self._component = component
        self._state = initial
        self._lock = threading.Lock()
        self._changed_at: Optional[datetime] = None

    @property
    def state(self) -> ComponentState:
        with self._lock:
            return self._state

    @property
    def changed_at(self) -> Optional[datetime]:
        return self._changed_at

    @property
    def is_running(self) -> bool:
        return self.state == ComponentState.RUNNING

    def try_transition(
        self,
        from_states: Iterable[ComponentState],
        to_state: ComponentState,
    ) -> bool:
        """Move to ``to_state`` only if currently in one of ``from_states``."""
        allowed = set(from_states)
        with self._lock:
            if self._state not in allowed:
                return False
            self._apply(to_state)
            return True

    def transition(self, to_state: ComponentState) -> None:
        """Move to ``to_state`` or raise StateTransitionError."""
        with self._lock:
            if to_state not in VALID_TRANSITIONS[self._state]:
                raise StateTransitionError(self._component, self._state.value, to_state.value)
            self._apply(to_state)

    def _apply(self, to_state: ComponentState) -> None:
        if to_state not in VALID_TRANSITIONS[self._state]:
            raise StateTransitionError(self._component, self._state.value, to_state.value)
        logger.debug(f"{self._component}: {self._state.value} -> {to_state.value}")
        self._state = to_state
        self._changed_at = datetime.now(timezone.utc)

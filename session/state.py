"""
Connection lifecycle of a session store instance.

    INIT -> CONNECTING -> CONNECTED      (handshake succeeded)
                       -> DISCONNECTED   (handshake failed, or close())

Observers registered with on_state_change() are called synchronously with
(old_state, new_state) on every transition.
"""

import logging
from enum import Enum
from typing import Callable, List

logger = logging.getLogger(__name__)


class StoreState(str, Enum):
    """Lifecycle states of a session store."""
    INIT = "init"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


StateObserver = Callable[[StoreState, StoreState], None]


class StateMachine:
    """Holds the current state and notifies observers of transitions."""

    def __init__(self, name: str = "session_store"):
        self.name = name
        self._state = StoreState.INIT
        self._observers: List[StateObserver] = []

    @property
    def state(self) -> StoreState:
        return self._state

    def subscribe(self, observer: StateObserver) -> Callable[[], None]:
        """
        Register an observer.

        Returns:
            A callable that removes the observer again.
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def transition(self, new_state: StoreState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        logger.debug(
            "%s switched to state: %s",
            self.name,
            new_state.value,
            extra={"extra_data": {"from": old_state.value, "to": new_state.value}}
        )
        for observer in list(self._observers):
            try:
                observer(old_state, new_state)
            except Exception:
                # Observer failures are logged and never abort a transition
                logger.exception(
                    "State observer failed",
                    extra={"extra_data": {"to": new_state.value}}
                )

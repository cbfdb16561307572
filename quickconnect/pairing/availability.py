"""Global availability state machine for quick connect."""

from datetime import datetime, timedelta
from threading import Lock

from loguru import logger

from quickconnect.pairing.errors import ForbiddenError
from quickconnect.pairing.types import Clock, QuickConnectState, utcnow

DEFAULT_ACTIVATION_WINDOW = timedelta(minutes=5)


class AvailabilityStateMachine:
    """
    Tracks whether quick connect is unavailable, available or active.

    An activation opens a fixed window. There is no timer: every read checks
    the deadline first and demotes Active to Available once it has passed.
    """

    def __init__(
        self,
        activation_window: timedelta = DEFAULT_ACTIVATION_WINDOW,
        clock: Clock = utcnow,
        initial_state: QuickConnectState = QuickConnectState.UNAVAILABLE,
    ):
        self.activation_window = activation_window
        self._clock = clock
        self._lock = Lock()
        self._state = QuickConnectState(initial_state)
        self._expires_at: datetime | None = None
        if self._state == QuickConnectState.ACTIVE:
            self._expires_at = clock() + activation_window

    def _expire_locked(self, now: datetime) -> None:
        if (
            self._state == QuickConnectState.ACTIVE
            and self._expires_at is not None
            and self._expires_at <= now
        ):
            self._state = QuickConnectState.AVAILABLE
            self._expires_at = None
            logger.info("Quick connect activation window expired")

    def current_state(self) -> QuickConnectState:
        """Get the current state, demoting an expired activation first."""
        with self._lock:
            self._expire_locked(self._clock())
            return self._state

    @property
    def activation_expires_at(self) -> datetime | None:
        """Deadline of the running activation window, if any."""
        with self._lock:
            self._expire_locked(self._clock())
            return self._expires_at

    def activate(self) -> datetime:
        """
        Open (or restart) the activation window.

        Returns the new deadline. Raises ForbiddenError while unavailable.
        """
        with self._lock:
            now = self._clock()
            self._expire_locked(now)
            if self._state == QuickConnectState.UNAVAILABLE:
                logger.warning("Rejected quick connect activation: unavailable")
                raise ForbiddenError("Quick connect is unavailable")

            self._state = QuickConnectState.ACTIVE
            self._expires_at = now + self.activation_window
            logger.info(f"Quick connect active until {self._expires_at.isoformat()}")
            return self._expires_at

    def set_state(self, target: QuickConnectState | str) -> None:
        """Administrative override. Raises ValueError for an unknown state."""
        target = QuickConnectState(target)

        with self._lock:
            previous = self._state
            self._state = target
            if target == QuickConnectState.ACTIVE:
                self._expires_at = self._clock() + self.activation_window
            else:
                self._expires_at = None

        logger.info(f"Quick connect state set: {previous.value} -> {target.value}")

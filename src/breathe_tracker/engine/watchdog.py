"""
Connection Watchdog
===================

Timer-driven liveness state machine for the beacon.

States:
    None (neutral)  before tracking starts
    CONNECTED       a frame from the beacon was seen within the window
    DISCONNECTED    the single-shot timer fired with no intervening reset

Transition Rules:
    reset() while not CONNECTED:
        on_recover() → state = CONNECTED → on_transition(CONNECTED)
    reset() while CONNECTED:
        rearm only, no side effects
    timer expiry:
        state = DISCONNECTED → on_transition(DISCONNECTED)

Concurrency:
    Every operation holds one re-entrant lock (shared with the engine).
    reset() cancels the pending timer before arming a new one, and each
    armed timer carries a generation number; a timer that fires after it
    was superseded or stopped is ignored, so a reset racing an expiry can
    never produce both transitions.
"""

import logging
import threading
from typing import Callable, Optional, Protocol

from breathe_tracker.models.state import ConnectionState


logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    """Single-shot timer returned by a timer factory."""

    def cancel(self) -> None:
        ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def thread_timer(delay: float, callback: Callable[[], None]) -> TimerHandle:
    """Default timer factory: a started daemon threading.Timer."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class ConnectionWatchdog:
    """
    Liveness detector declaring loss of contact after a silence window.

    Attributes:
        delay_seconds: Silence window before declaring DISCONNECTED

    Example:
        watchdog = ConnectionWatchdog(
            delay_seconds=180.0,
            on_recover=clear_connection_incident,
            on_transition=publish_connection_state,
        )
        watchdog.start()
        ...
        watchdog.reset()   # on every frame from the beacon
        ...
        watchdog.stop()
    """

    def __init__(
        self,
        delay_seconds: float = 180.0,
        on_recover: Optional[Callable[[], None]] = None,
        on_transition: Optional[Callable[[ConnectionState], None]] = None,
        timer_factory: Optional[TimerFactory] = None,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        """
        Initialize watchdog.

        Args:
            delay_seconds: Silence window in seconds (> 0)
            on_recover: Called on reset() while not CONNECTED, before the
                state becomes CONNECTED
            on_transition: Called after every state change
            timer_factory: Creates and starts single-shot timers
            lock: Re-entrant lock shared with the owner
        """
        if delay_seconds <= 0:
            raise ValueError("delay_seconds must be positive")

        self.delay_seconds = delay_seconds
        self._on_recover = on_recover
        self._on_transition = on_transition
        self._timer_factory = timer_factory or thread_timer
        self._lock = lock or threading.RLock()

        self._state: Optional[ConnectionState] = None
        self._armed: bool = False
        self._timer: Optional[TimerHandle] = None
        self._generation: int = 0

        self._expiry_count: int = 0
        self._recovery_count: int = 0

    @property
    def state(self) -> Optional[ConnectionState]:
        """Current connection state (None before the first reset)."""
        return self._state

    @property
    def armed(self) -> bool:
        """Whether tracking has started and the watchdog is live."""
        return self._armed

    def start(self) -> None:
        """Arm the watchdog (tracking started) and perform the first reset."""
        with self._lock:
            self._armed = True
            logger.info(f"Watchdog armed: delay={self.delay_seconds}s")
            self.reset()

    def reset(self) -> bool:
        """
        Record contact with the beacon and rearm the timer.

        Returns:
            True if the watchdog was armed and the reset applied
        """
        with self._lock:
            if not self._armed:
                return False

            self._cancel_timer()
            self._generation += 1
            generation = self._generation
            self._timer = self._timer_factory(
                self.delay_seconds,
                lambda: self._expire(generation),
            )

            if self._state != ConnectionState.CONNECTED:
                if self._state is not None:
                    logger.info("Reconnection with the sensor detected")
                    self._recovery_count += 1
                if self._on_recover is not None:
                    self._on_recover()
                self._set_state(ConnectionState.CONNECTED)

            return True

    def stop(self) -> None:
        """Disarm and cancel the pending timer synchronously."""
        with self._lock:
            self._armed = False
            self._generation += 1
            self._cancel_timer()
            logger.info("Watchdog stopped")

    def _expire(self, generation: int) -> None:
        """Timer callback."""
        with self._lock:
            if not self._armed or generation != self._generation:
                logger.debug(f"Ignoring stale watchdog timer (generation={generation})")
                return

            self._timer = None
            self._generation += 1
            self._expiry_count += 1
            logger.warning(
                f"No data received from the sensor in {self.delay_seconds:.0f}s"
            )
            self._set_state(ConnectionState.DISCONNECTED)

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state
        if self._on_transition is not None:
            self._on_transition(state)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def get_metrics(self) -> dict:
        """Get watchdog metrics for observability."""
        return {
            "state": self._state.value if self._state else None,
            "armed": self._armed,
            "delay_seconds": self.delay_seconds,
            "expiries": self._expiry_count,
            "recoveries": self._recovery_count,
        }

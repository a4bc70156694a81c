"""
Deadline watchdogs for automatic logout.

Both watchdogs are passive: they hold a deadline and fire when poll() sees the
clock at or past it. The controller polls them from a background job in live
use; tests poll them directly with explicit timestamps.
"""
import logging
from typing import Callable, Optional

from Session_module.session_enums import SessionEndReason
from .tracking_state import SessionTrackingState

logger = logging.getLogger(__name__)

# User input that counts as activity for the inactivity watchdog
INPUT_EVENTS = frozenset({"pointerdown", "pointermove", "keypress", "scroll", "touchstart", "click"})


class DeadlineWatchdog:
    reason: SessionEndReason

    def __init__(self, threshold_seconds: float, on_fire: Callable[[SessionEndReason], None]):
        self.threshold_seconds = threshold_seconds
        self.on_fire = on_fire
        self.deadline: Optional[float] = None
        self.fire_count = 0

    @property
    def armed(self) -> bool:
        return self.deadline is not None

    def arm(self, now: float) -> None:
        self.deadline = now + self.threshold_seconds

    def cancel(self) -> None:
        self.deadline = None

    def poll(self, now: float) -> bool:
        """Fire once if the deadline has passed. The watchdog disarms itself before firing."""
        if self.deadline is None or now < self.deadline:
            return False
        self.deadline = None
        self.fire_count += 1
        logger.info(f"{type(self).__name__} fired ({self.reason.value})")
        self.on_fire(self.reason)
        return True


class InactivityWatchdog(DeadlineWatchdog):
    """Fires `timeout` after threshold_seconds without qualifying foreground input."""

    reason = SessionEndReason.TIMEOUT

    def __init__(self, state: SessionTrackingState, threshold_seconds: float, on_fire):
        super().__init__(threshold_seconds, on_fire)
        self.state = state

    def start(self, now: float) -> None:
        self.state.last_activity_at = now
        self.arm(now)

    def record_input(self, event_type: str, now: float) -> bool:
        """Reset the deadline for a qualifying event. Input while hidden is ignored."""
        if not self.armed or event_type not in INPUT_EVENTS or self.state.is_hidden:
            return False
        self.state.last_activity_at = now
        self.arm(now)
        return True


class VisibilityWatchdog(DeadlineWatchdog):
    """Fires `browser_close` when the tab stays hidden for threshold_seconds."""

    reason = SessionEndReason.BROWSER_CLOSE

    def __init__(self, state: SessionTrackingState, threshold_seconds: float, on_fire):
        super().__init__(threshold_seconds, on_fire)
        self.state = state

    def on_hidden(self, now: float) -> None:
        if self.state.hidden_since is None:
            self.state.hidden_since = now
            self.arm(now)

    def on_visible(self, now: float) -> None:
        self.state.hidden_since = None
        self.cancel()

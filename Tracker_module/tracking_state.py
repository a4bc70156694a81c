"""
State owned by one SessionTrackingController for the life of one authenticated session.
"""
import enum
from dataclasses import dataclass, field
from typing import Optional


class TrackerPhase(str, enum.Enum):
    ACTIVE = "active"
    TERMINATING = "terminating"
    TERMINATED = "terminated"


@dataclass
class OpenPageView:
    page_view_id: int
    session_id: int
    page_path: str
    page_title: str
    entry_time: float  # epoch seconds
    max_scroll_depth: int = 0
    interactions: int = 0

    def record_scroll(self, percent: int) -> None:
        if percent > self.max_scroll_depth:
            self.max_scroll_depth = min(100, percent)

    def record_interaction(self, count: int = 1) -> None:
        self.interactions += count


@dataclass
class SessionTrackingState:
    last_activity_at: float
    session_started_at: float
    hidden_since: Optional[float] = None
    open_page_view: Optional[OpenPageView] = None
    session_token: Optional[str] = None
    credential: Optional[str] = None
    phase: TrackerPhase = field(default=TrackerPhase.ACTIVE)

    @property
    def is_hidden(self) -> bool:
        return self.hidden_since is not None

    @property
    def is_terminating(self) -> bool:
        return self.phase is not TrackerPhase.ACTIVE

    def begin_termination(self) -> bool:
        """Active -> Terminating. Only the caller that gets True may send the session-end report."""
        if self.phase is not TrackerPhase.ACTIVE:
            return False
        self.phase = TrackerPhase.TERMINATING
        return True

    def finish_termination(self) -> None:
        self.phase = TrackerPhase.TERMINATED
        self.open_page_view = None
        self.session_token = None
        self.credential = None

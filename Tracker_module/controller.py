"""
Client-side session tracking.

One SessionTrackingController exists per client. After login (or when boot()
restores a stored login) it owns a SessionTrackingState and wires it to:
  - the inactivity and visibility watchdogs,
  - the page-view recorder,
  - the session-end reporter,
and tears all of them down when the session terminates.

Host events are fed in through the on_* methods; watchdog deadlines are
checked by poll(), which run_in_background() schedules with APScheduler.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import settings
from Session_module.session_enums import SessionEndReason
from .api_client import TrackingApiClient, TrackingApiError
from .client_storage import (
    MemoryStore,
    SESSION_TOKEN_KEY,
    CREDENTIAL_KEY,
    BACKUP_SESSION_TOKEN_KEY,
    BACKUP_CREDENTIAL_KEY,
    SESSION_STARTED_AT_KEY,
    LAST_ACTIVITY_AT_KEY,
)
from .delivery import BeaconDelivery, HttpDelivery, ReliableDelivery
from .page_view_recorder import PageViewRecorder
from .session_end_reporter import SessionEndReporter
from .tracking_state import SessionTrackingState, TrackerPhase
from .watchdogs import InactivityWatchdog, VisibilityWatchdog

logger = logging.getLogger(__name__)

UNLOADED_AT_KEY = "unloadedAt"

# Foreground events counted as page-view interactions
INTERACTION_EVENTS = frozenset({"click", "keydown", "submit"})


class BootResult:
    ANONYMOUS = "anonymous"
    RESUMED = "resumed"
    REFRESHED = "refreshed"
    CLOSED = "closed"


class SessionTrackingController:
    def __init__(
        self,
        api: TrackingApiClient,
        persistent_store: Optional[MemoryStore] = None,
        reload_store: Optional[MemoryStore] = None,
        delivery: Optional[ReliableDelivery] = None,
        clock: Callable[[], float] = time.time,
        inactivity_timeout: float = settings.INACTIVITY_TIMEOUT_SECONDS,
        hidden_timeout: float = settings.HIDDEN_TAB_TIMEOUT_SECONDS
    ):
        self.api = api
        self.persistent_store = persistent_store if persistent_store is not None else MemoryStore()
        self.reload_store = reload_store if reload_store is not None else MemoryStore()
        self.delivery = delivery or ReliableDelivery(HttpDelivery(api), BeaconDelivery(api))
        self.clock = clock
        self.inactivity_timeout = inactivity_timeout
        self.hidden_timeout = hidden_timeout

        self._lock = threading.RLock()
        self._scheduler: Optional[BackgroundScheduler] = None

        self.state: Optional[SessionTrackingState] = None
        self.inactivity: Optional[InactivityWatchdog] = None
        self.visibility: Optional[VisibilityWatchdog] = None
        self.recorder: Optional[PageViewRecorder] = None
        self.reporter: Optional[SessionEndReporter] = None
        self.user: Optional[Dict[str, Any]] = None
        self.last_end_reason: Optional[SessionEndReason] = None

    @property
    def authenticated(self) -> bool:
        return self.state is not None and self.state.phase is TrackerPhase.ACTIVE

    # Lifecycle

    def boot(self) -> str:
        """
        Restore tracking after a (re)load.

        A backup in the reload-scoped store means the previous page was
        refreshed: the stored login and session token carry on. A stored login
        marked as unloaded with no backup means the tab was closed: that
        session is reported as browser_close and the login is dropped.
        """
        with self._lock:
            credential = self.persistent_store.get(CREDENTIAL_KEY)
            backup_credential = self.reload_store.get(BACKUP_CREDENTIAL_KEY)
            backup_token = self.reload_store.get(BACKUP_SESSION_TOKEN_KEY)
            unloaded_at = self._stored_time(UNLOADED_AT_KEY)

            self.reload_store.remove(BACKUP_CREDENTIAL_KEY)
            self.reload_store.remove(BACKUP_SESSION_TOKEN_KEY)
            self.persistent_store.remove(UNLOADED_AT_KEY)

            if backup_credential:
                self.persistent_store.set(CREDENTIAL_KEY, backup_credential)
                if backup_token:
                    self.persistent_store.set(SESSION_TOKEN_KEY, backup_token)
                self._start_session(
                    backup_credential, backup_token, started_at=self._stored_time(SESSION_STARTED_AT_KEY)
                )
                logger.info("Page refresh detected; session restored")
                return BootResult.REFRESHED

            if not credential:
                return BootResult.ANONYMOUS

            session_token = self.persistent_store.get(SESSION_TOKEN_KEY)
            started_at = self._stored_time(SESSION_STARTED_AT_KEY)
            if unloaded_at is not None:
                logger.info("Previous tab was closed; reporting browser_close")
                self._start_session(
                    credential,
                    session_token,
                    arm=False,
                    started_at=started_at,
                    last_activity_at=self._stored_time(LAST_ACTIVITY_AT_KEY),
                )
                # The session ended when the tab went away, not now
                self.reporter.terminate(SessionEndReason.BROWSER_CLOSE, at=unloaded_at)
                return BootResult.CLOSED

            # No unload was recorded (crash or forced kill): best effort, carry on
            self._start_session(credential, session_token, started_at=started_at)
            return BootResult.RESUMED

    def login(self, email: str, otp: str) -> Dict[str, Any]:
        """Verify the code, store the credential and start tracking a fresh session."""
        response = self.api.verify_otp(email, otp)
        with self._lock:
            if self.authenticated:
                self.reporter.terminate(SessionEndReason.LOGOUT)
            credential = response["token"]
            self.persistent_store.set(CREDENTIAL_KEY, credential)
            # A new login always gets a new session token
            self.persistent_store.remove(SESSION_TOKEN_KEY)
            self.persistent_store.remove(LAST_ACTIVITY_AT_KEY)
            self._start_session(credential, None)
            self.user = response.get("user")
            return response

    def logout(self) -> bool:
        """Manual logout. Returns False if no session was active."""
        with self._lock:
            if not self.authenticated:
                return False
            self.recorder.track_action("logout_initiated")
            self.recorder.close_current()
            try:
                self.api.logout(self.state.credential)
            except TrackingApiError as e:
                logger.warning(f"Logout request failed: {e}")
            return self.reporter.terminate(SessionEndReason.LOGOUT)

    # Host events

    def on_user_input(self, event_type: str) -> None:
        with self._lock:
            if not self.authenticated:
                return
            self.inactivity.record_input(event_type, self.clock())

    def on_interaction(self, event_type: str) -> None:
        """click, keydown or submit on the page."""
        with self._lock:
            if not self.authenticated or event_type not in INTERACTION_EVENTS:
                return
            self.recorder.record_interaction()
            # keydown arrives with keypress in a browser; count it as input too
            self.inactivity.record_input("keypress" if event_type == "keydown" else "click", self.clock())

    def on_scroll(self, scroll_top: float, scroll_height: float, viewport_height: float) -> None:
        with self._lock:
            if not self.authenticated:
                return
            self.recorder.record_scroll(scroll_top, scroll_height, viewport_height)
            self.inactivity.record_input("scroll", self.clock())

    def on_visibility_change(self, hidden: bool) -> None:
        with self._lock:
            if not self.authenticated:
                return
            now = self.clock()
            if hidden:
                self.visibility.on_hidden(now)
                self.recorder.close_current()
                self._write_backup()
            else:
                self.visibility.on_visible(now)

    def on_navigate(self, path: str, referrer: Optional[str] = None) -> None:
        with self._lock:
            if not self.authenticated:
                return
            self.recorder.navigate(path, referrer)

    def on_page_unload(self) -> None:
        """
        The page is going away (refresh or close, indistinguishable here).
        Close the page view over the beacon transport and leave a backup so
        the next boot can tell which one it was.
        """
        with self._lock:
            if not self.authenticated:
                return
            self.recorder.close_current(unloading=True)
            self._write_backup()
            self.persistent_store.set(UNLOADED_AT_KEY, self.clock())
            self.inactivity.cancel()
            self.visibility.cancel()

    def poll(self, now: Optional[float] = None) -> Optional[SessionEndReason]:
        """
        Check both watchdogs. Returns the reason if one of them ended the session.

        When both deadlines have passed, the earlier one wins; on a tie the
        hidden-tab watchdog wins, since input stops counting once the tab hides.
        """
        with self._lock:
            if not self.authenticated:
                return None
            now = self.clock() if now is None else now
            due = [w for w in (self.visibility, self.inactivity) if w.armed and w.deadline <= now]
            if not due:
                return None
            watchdog = min(due, key=lambda w: w.deadline)
            watchdog.poll(now)
            return watchdog.reason

    def run_in_background(self, interval_seconds: float = 1.0) -> BackgroundScheduler:
        if self._scheduler is None:
            self._scheduler = BackgroundScheduler()
            self._scheduler.add_job(
                self.poll,
                trigger=IntervalTrigger(seconds=interval_seconds),
                id="session_watchdogs",
                name="Poll session watchdogs",
                replace_existing=True,
            )
            self._scheduler.start()
            logger.info(f"Session watchdog polling every {interval_seconds}s")
        return self._scheduler

    def stop_background(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

    # Internals

    def _start_session(
        self,
        credential: str,
        session_token: Optional[str],
        arm: bool = True,
        started_at: Optional[float] = None,
        last_activity_at: Optional[float] = None
    ) -> None:
        """
        Build tracking state for a new or restored session. Timing restored from
        the store carries over reloads so sessionDuration covers the whole session.
        """
        now = self.clock()
        started_at = now if started_at is None else started_at
        state = SessionTrackingState(
            last_activity_at=started_at if last_activity_at is None else max(started_at, last_activity_at),
            session_started_at=started_at,
            session_token=session_token,
            credential=credential,
        )
        self.state = state
        self.inactivity = InactivityWatchdog(state, self.inactivity_timeout, self._on_watchdog_fired)
        self.visibility = VisibilityWatchdog(state, self.hidden_timeout, self._on_watchdog_fired)
        self.recorder = PageViewRecorder(state, self.api, self.delivery, self.persistent_store, self.clock)
        self.reporter = SessionEndReporter(
            state, self.delivery, self.persistent_store, self.clock, on_terminated=self._on_terminated
        )
        self.persistent_store.set(SESSION_STARTED_AT_KEY, started_at)
        if arm:
            self.inactivity.start(now)

    def _on_watchdog_fired(self, reason: SessionEndReason) -> None:
        self.recorder.close_current()
        self.reporter.terminate(reason)

    def _on_terminated(self, reason: SessionEndReason) -> None:
        self.inactivity.cancel()
        self.visibility.cancel()
        self.reload_store.remove(BACKUP_CREDENTIAL_KEY)
        self.reload_store.remove(BACKUP_SESSION_TOKEN_KEY)
        self.persistent_store.remove(UNLOADED_AT_KEY)
        self.persistent_store.remove(SESSION_STARTED_AT_KEY)
        self.persistent_store.remove(LAST_ACTIVITY_AT_KEY)
        self.user = None
        self.last_end_reason = reason
        logger.info(f"Session terminated ({reason.value})")

    def _stored_time(self, key: str) -> Optional[float]:
        value = self.persistent_store.get(key)
        try:
            return float(value) if value is not None else None
        except (TypeError, ValueError):
            logger.warning(f"Ignoring unreadable {key} in client store: {value!r}")
            return None

    def _write_backup(self) -> None:
        self.persistent_store.set(LAST_ACTIVITY_AT_KEY, self.state.last_activity_at)
        if self.state.credential:
            self.reload_store.set(BACKUP_CREDENTIAL_KEY, self.state.credential)
        if self.state.session_token:
            self.reload_store.set(BACKUP_SESSION_TOKEN_KEY, self.state.session_token)

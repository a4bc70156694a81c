import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from Login_module.Utils.datetime_utils import IST
from Session_module.session_enums import SessionEndReason
from .client_storage import MemoryStore, SESSION_TOKEN_KEY, CREDENTIAL_KEY
from .delivery import ReliableDelivery
from .tracking_state import SessionTrackingState

logger = logging.getLogger(__name__)

SESSION_END_PATH = "/auth/session-end"


class SessionEndReporter:
    """
    Sends the one session-end report for a session, whichever termination
    path (logout, either watchdog, a closed tab found at boot) gets there first.
    """

    def __init__(
        self,
        state: SessionTrackingState,
        delivery: ReliableDelivery,
        store: MemoryStore,
        clock: Callable[[], float],
        on_terminated: Optional[Callable[[SessionEndReason], None]] = None
    ):
        self.state = state
        self.delivery = delivery
        self.store = store
        self.clock = clock
        self.on_terminated = on_terminated
        self.deliveries = 0
        self.last_transport: Optional[str] = None

    def build_payload(self, reason: SessionEndReason, now: float) -> Dict[str, Any]:
        # Active span of the session in milliseconds, up to the last recorded input
        active_ms = max(0, int((self.state.last_activity_at - self.state.session_started_at) * 1000))
        return {
            "reason": reason.value,
            "timestamp": datetime.fromtimestamp(now, IST).isoformat(),
            "sessionDuration": active_ms,
            "token": self.state.credential,
            "sessionToken": self.state.session_token,
        }

    def terminate(self, reason, unloading: bool = False, at: Optional[float] = None) -> bool:
        """
        Report the end of the session and clear local session state.
        `at` is when the session actually ended, if that was earlier than now
        (a closed tab only noticed at the next boot).
        Returns False (and does nothing) if termination already happened. Never raises.
        """
        try:
            reason = SessionEndReason(reason)
        except ValueError:
            logger.error(f"Unknown session end reason {reason!r}; reporting as logout")
            reason = SessionEndReason.LOGOUT

        if not self.state.begin_termination():
            logger.debug(f"Session already {self.state.phase.value}; ignoring {reason.value}")
            return False

        try:
            payload = self.build_payload(reason, self.clock() if at is None else at)
            self.last_transport = self.delivery.deliver(
                SESSION_END_PATH, payload, self.state.credential, unloading=unloading
            )
            self.deliveries += 1
            logger.info(f"Session end ({reason.value}) handed to {self.last_transport} transport")
        except Exception as e:
            logger.error(f"Session end report ({reason.value}) failed: {e}", exc_info=True)
        finally:
            self.store.remove(SESSION_TOKEN_KEY)
            self.store.remove(CREDENTIAL_KEY)
            self.state.finish_termination()

        if self.on_terminated is not None:
            try:
                self.on_terminated(reason)
            except Exception as e:
                logger.error(f"Session end callback failed: {e}", exc_info=True)
        return True

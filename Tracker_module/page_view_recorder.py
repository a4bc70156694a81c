"""
Opens and closes one page-view record per navigation and accumulates scroll
depth and interactions for the open one.
"""
import logging
import math
from datetime import datetime
import secrets
import string
from typing import Callable, Optional

from Login_module.Utils.datetime_utils import IST
from .api_client import TrackingApiClient, TrackingApiError
from .client_storage import MemoryStore, SESSION_TOKEN_KEY
from .delivery import ReliableDelivery
from .page_titles import page_title_for
from .tracking_state import OpenPageView, SessionTrackingState

logger = logging.getLogger(__name__)

PAGE_VIEW_END_PATH = "/page-tracking/end"

_TOKEN_ALPHABET = string.ascii_lowercase + string.digits


def mint_session_token(now: float) -> str:
    """session_<epoch ms>_<9 random base36 chars>"""
    suffix = "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(9))
    return f"session_{int(now * 1000)}_{suffix}"


def scroll_percent(scroll_top: float, scroll_height: float, viewport_height: float) -> int:
    """Share of the scrollable height reached, rounded half up and clamped to 0-100."""
    scrollable = scroll_height - viewport_height
    if scrollable <= 0:
        return 0
    percent = math.floor(scroll_top / scrollable * 100 + 0.5)
    return max(0, min(100, percent))


class PageViewRecorder:
    def __init__(
        self,
        state: SessionTrackingState,
        api: TrackingApiClient,
        delivery: ReliableDelivery,
        store: MemoryStore,
        clock: Callable[[], float]
    ):
        self.state = state
        self.api = api
        self.delivery = delivery
        self.store = store
        self.clock = clock

    def resolve_session_token(self) -> str:
        """Reuse the cached token (reloads keep one session row); mint one on first use."""
        token = self.state.session_token or self.store.get(SESSION_TOKEN_KEY)
        if not token:
            token = mint_session_token(self.clock())
            logger.info(f"Minted session token {token}")
        self.store.set(SESSION_TOKEN_KEY, token)
        self.state.session_token = token
        return token

    def navigate(self, path: str, referrer: Optional[str] = None) -> Optional[OpenPageView]:
        self.close_current()
        if self.state.is_terminating or not self.state.credential:
            return None

        token = self.resolve_session_token()
        title = page_title_for(path)
        entry_time = self.clock()
        try:
            data = self.api.start_page_view(self.state.credential, token, path, title, referrer)
        except TrackingApiError as e:
            logger.warning(f"Failed to start page tracking for {path}: {e}")
            return None

        try:
            page_view = OpenPageView(
                page_view_id=int(data["pageViewId"]),
                session_id=int(data["sessionId"]),
                page_path=path,
                page_title=title,
                entry_time=entry_time,
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Unexpected page tracking response {data!r}: {e}")
            return None

        self.state.open_page_view = page_view
        return page_view

    def record_scroll(self, scroll_top: float, scroll_height: float, viewport_height: float) -> None:
        if self.state.open_page_view is not None:
            self.state.open_page_view.record_scroll(scroll_percent(scroll_top, scroll_height, viewport_height))

    def record_interaction(self) -> None:
        # Only foreground interactions count
        if self.state.open_page_view is not None and not self.state.is_hidden:
            self.state.open_page_view.record_interaction()

    def close_current(self, unloading: bool = False) -> Optional[str]:
        """Close the open page view, if any. Returns the transport used."""
        page_view = self.state.open_page_view
        if page_view is None:
            return None
        self.state.open_page_view = None

        now = self.clock()
        payload = {
            "pageViewId": page_view.page_view_id,
            "exitTime": datetime.fromtimestamp(now, IST).isoformat(),
            "duration": max(0, int(now - page_view.entry_time)),
            "scrollDepth": page_view.max_scroll_depth,
            "interactions": page_view.interactions,
        }
        return self.delivery.deliver(PAGE_VIEW_END_PATH, payload, self.state.credential, unloading=unloading)

    def track_action(self, action: str) -> None:
        """Count a named action (e.g. logout_initiated) as an interaction and report it."""
        page_view = self.state.open_page_view
        if page_view is None:
            return
        page_view.record_interaction()
        try:
            self.api.update_page_view(
                self.state.credential,
                page_view.page_view_id,
                interactions=page_view.interactions,
                action=action,
            )
        except TrackingApiError as e:
            logger.warning(f"Failed to report action {action} on page view {page_view.page_view_id}: {e}")

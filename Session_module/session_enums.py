import enum


class SessionEndReason(str, enum.Enum):
    """Why a tracking session ended"""
    LOGOUT = "logout"
    TIMEOUT = "timeout"
    BROWSER_CLOSE = "browser_close"


# Activity log action written for each end reason
SESSION_END_ACTIONS = {
    SessionEndReason.TIMEOUT: "auto_logout_timeout",
    SessionEndReason.BROWSER_CLOSE: "auto_logout_browser_close",
    SessionEndReason.LOGOUT: "session_end",
}


def activity_action_for(reason: SessionEndReason) -> str:
    return SESSION_END_ACTIONS[SessionEndReason(reason)]

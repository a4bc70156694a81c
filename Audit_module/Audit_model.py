"""
Append-only audit tables. Rows are inserted, never updated or deleted.
"""
import enum

from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON
from database import Base
from Login_module.Utils.datetime_utils import now_ist


class LoginEventType(str, enum.Enum):
    """Lifecycle events recorded in login_logs.session_type"""
    OTP_REQUEST = "otp_request"
    LOGIN = "login"
    LOGOUT = "logout"
    TIMEOUT = "timeout"
    BROWSER_CLOSE = "browser_close"


class LoginLog(Base):
    __tablename__ = "login_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    email = Column(String(255), nullable=True, index=True)
    ip_address = Column(String(50), nullable=True)
    user_agent = Column(String(500), nullable=True)
    browser_name = Column(String(50), nullable=True)
    device_type = Column(String(20), nullable=True)
    operating_system = Column(String(50), nullable=True)
    session_type = Column(String(20), nullable=False, index=True)
    success = Column(Boolean, default=True, nullable=False)
    correlation_id = Column(String(100), nullable=True, index=True)  # For request tracing
    created_at = Column(DateTime(timezone=True), default=now_ist, nullable=False, index=True)


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    entity_type = Column(String(50), nullable=False)  # user, session, page_view, ...
    entity_id = Column(Integer, nullable=True)
    action = Column(String(100), nullable=False, index=True)
    details = Column(JSON, nullable=True)  # Store additional details as JSON
    ip_address = Column(String(50), nullable=True)
    user_agent = Column(String(500), nullable=True)
    correlation_id = Column(String(100), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=now_ist, nullable=False, index=True)

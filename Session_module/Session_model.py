from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, Text
from sqlalchemy.orm import relationship
from database import Base
from Login_module.Utils.datetime_utils import now_ist


class UserSession(Base):
    """
    One authenticated browser session, keyed by the client-minted session token.
    Closed exactly once (end_time and end_reason set together) and never deleted.
    """
    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    session_token = Column(String(255), nullable=False, unique=True, index=True)
    start_time = Column(DateTime(timezone=True), default=now_ist, nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    duration = Column(Integer, nullable=True)  # seconds, end_time - start_time
    total_pages = Column(Integer, default=0, nullable=False)
    ip_address = Column(String(50), nullable=True)
    user_agent = Column(Text, nullable=True)
    browser_name = Column(String(50), nullable=True)
    device_type = Column(String(20), nullable=True)
    operating_system = Column(String(50), nullable=True)
    end_reason = Column(String(20), nullable=True)  # logout / timeout / browser_close
    created_at = Column(DateTime(timezone=True), default=now_ist, nullable=False)

    page_views = relationship(
        "PageView",
        back_populates="session",
        order_by=lambda: [PageView.entry_time, PageView.id],
        lazy="selectin"
    )


class PageView(Base):
    """
    One continuous visit to one page inside a session. Closed at most once;
    scroll_depth and interactions only ever grow.
    """
    __tablename__ = "page_views"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("user_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    page_path = Column(String(500), nullable=False)
    page_title = Column(String(255), nullable=True)
    entry_time = Column(DateTime(timezone=True), default=now_ist, nullable=False)
    exit_time = Column(DateTime(timezone=True), nullable=True)
    duration = Column(Integer, nullable=True)  # seconds, exit_time - entry_time
    scroll_depth = Column(Float, default=0, nullable=False)  # percent, 0-100
    interactions = Column(Integer, default=0, nullable=False)
    referrer = Column(String(500), nullable=True)
    last_action = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_ist, nullable=False)

    session = relationship("UserSession", back_populates="page_views")

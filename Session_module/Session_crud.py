from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import func
from datetime import datetime, timedelta
from typing import Optional, List, Tuple
import logging

from .Session_model import UserSession, PageView
from .session_enums import SessionEndReason
from Login_module.User.user_model import User
from Login_module.Utils.browser_detection import resolve_browser
from Login_module.Utils.datetime_utils import now_ist, to_ist, seconds_between

logger = logging.getLogger(__name__)


def clamp_scroll_depth(value: Optional[float]) -> float:
    if value is None:
        return 0.0
    return float(min(100.0, max(0.0, value)))


def get_session_by_token(db: Session, session_token: str) -> Optional[UserSession]:
    return db.query(UserSession).filter(UserSession.session_token == session_token).first()


def get_session(db: Session, session_id: int) -> Optional[UserSession]:
    return db.query(UserSession).filter(UserSession.id == session_id).first()


def get_or_create_session(
    db: Session,
    user_id: int,
    session_token: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None
) -> Tuple[UserSession, bool]:
    """
    Lookup-or-create by session token. Returns (session, created).

    Two first page views racing on the same unseen token both try the insert;
    the loser hits the unique constraint and re-reads the winner's row.
    """
    existing = get_session_by_token(db, session_token)
    if existing:
        return existing, False

    browser = resolve_browser(user_agent)
    session = UserSession(
        user_id=user_id,
        session_token=session_token,
        start_time=now_ist(),
        total_pages=0,
        ip_address=ip_address,
        user_agent=user_agent,
        browser_name=browser.browser_name,
        device_type=browser.device_type,
        operating_system=browser.operating_system
    )
    db.add(session)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = get_session_by_token(db, session_token)
        if existing is None:
            raise
        logger.info(f"Session token {session_token[:16]}... created concurrently; reusing session {existing.id}")
        return existing, False

    db.refresh(session)
    logger.info(f"Session {session.id} started for user {user_id}")
    return session, True


def start_page_view(
    db: Session,
    session: UserSession,
    user_id: int,
    page_path: str,
    page_title: Optional[str] = None,
    referrer: Optional[str] = None
) -> PageView:
    """
    Insert a page view and bump the session's page counter in one transaction.
    The counter is incremented in SQL so concurrent starts do not lose updates.
    """
    page_view = PageView(
        session_id=session.id,
        user_id=user_id,
        page_path=page_path,
        page_title=page_title,
        referrer=referrer,
        entry_time=now_ist(),
        scroll_depth=0,
        interactions=0
    )
    try:
        db.add(page_view)
        db.query(UserSession).filter(UserSession.id == session.id).update(
            {UserSession.total_pages: UserSession.total_pages + 1},
            synchronize_session=False
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Error starting page view in session {session.id}: {e}")
        raise

    db.refresh(page_view)
    db.refresh(session)
    return page_view


def get_page_view(db: Session, page_view_id: int) -> Optional[PageView]:
    return db.query(PageView).filter(PageView.id == page_view_id).first()


def close_page_view(
    db: Session,
    page_view: PageView,
    exit_time: Optional[datetime] = None,
    scroll_depth: Optional[float] = None,
    interactions: Optional[int] = None
) -> bool:
    """
    Close a page view once; later closes are no-ops and return False.

    The exit time is the client's value when it is plausible, otherwise now.
    Duration is always recomputed from the stored entry time.
    """
    now = now_ist()
    entry = to_ist(page_view.entry_time)
    exit_at = to_ist(exit_time) if exit_time else now
    if exit_at > now:
        exit_at = now
    if exit_at < entry:
        exit_at = entry

    final_scroll = max(clamp_scroll_depth(page_view.scroll_depth), clamp_scroll_depth(scroll_depth))
    final_interactions = max(page_view.interactions or 0, interactions or 0)

    updated = (
        db.query(PageView)
        .filter(PageView.id == page_view.id, PageView.exit_time.is_(None))
        .update(
            {
                PageView.exit_time: exit_at,
                PageView.duration: seconds_between(entry, exit_at),
                PageView.scroll_depth: final_scroll,
                PageView.interactions: final_interactions,
            },
            synchronize_session=False
        )
    )
    db.commit()
    db.refresh(page_view)
    return updated == 1


def update_page_view_activity(
    db: Session,
    page_view: PageView,
    interactions: Optional[int] = None,
    action: Optional[str] = None
) -> PageView:
    """Raise the interaction counter (never lowers it) and remember the last named action."""
    if interactions is not None:
        page_view.interactions = max(page_view.interactions or 0, interactions)
    if action:
        page_view.last_action = action
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(page_view)
    return page_view


def close_open_page_views(db: Session, session_id: int, at: datetime) -> int:
    """Close whatever page views a session left open, stamped at the given time."""
    open_views = (
        db.query(PageView)
        .filter(PageView.session_id == session_id, PageView.exit_time.is_(None))
        .all()
    )
    closed = 0
    for page_view in open_views:
        if close_page_view(db, page_view, exit_time=at):
            closed += 1
    return closed


def close_session(
    db: Session,
    session: UserSession,
    reason: SessionEndReason,
    end_time: Optional[datetime] = None
) -> bool:
    """
    Set end_time, end_reason and duration together, exactly once.
    Returns False when another termination path already closed the session.

    A client-reported end time is kept when it falls between the session start
    and now; otherwise it is clamped into that range.
    """
    now = now_ist()
    start = to_ist(session.start_time)
    end_at = to_ist(end_time) if end_time else now
    if end_at > now:
        end_at = now
    if end_at < start:
        end_at = start

    updated = (
        db.query(UserSession)
        .filter(UserSession.id == session.id, UserSession.end_time.is_(None))
        .update(
            {
                UserSession.end_time: end_at,
                UserSession.end_reason: SessionEndReason(reason).value,
                UserSession.duration: seconds_between(start, end_at),
            },
            synchronize_session=False
        )
    )
    db.commit()

    if updated == 1:
        close_open_page_views(db, session.id, end_at)
        logger.info(f"Session {session.id} closed ({SessionEndReason(reason).value})")
    db.refresh(session)
    return updated == 1


def find_session_to_end(db: Session, user_id: int, session_token: Optional[str]) -> Optional[UserSession]:
    """
    The session a session-end report refers to: the one named by token, or
    the user's most recent open session when no token was sent.
    """
    if session_token:
        session = get_session_by_token(db, session_token)
        if session and session.user_id != user_id:
            logger.warning(f"Session token owned by user {session.user_id} reported by user {user_id}")
            return None
        return session
    return (
        db.query(UserSession)
        .filter(UserSession.user_id == user_id, UserSession.end_time.is_(None))
        .order_by(UserSession.start_time.desc(), UserSession.id.desc())
        .first()
    )


def list_sessions(
    db: Session,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    user_id: Optional[int] = None,
    limit: int = 500
) -> List[Tuple[UserSession, Optional[User]]]:
    """Sessions started in [start, end), newest first, each paired with its user."""
    query = db.query(UserSession, User).outerjoin(User, User.id == UserSession.user_id)
    if start:
        query = query.filter(UserSession.start_time >= start)
    if end:
        query = query.filter(UserSession.start_time < end)
    if user_id:
        query = query.filter(UserSession.user_id == user_id)
    return query.order_by(UserSession.start_time.desc(), UserSession.id.desc()).limit(limit).all()


def last_activity_at(db: Session, session: UserSession) -> datetime:
    """Latest timestamp the session shows any sign of life."""
    latest_entry, latest_exit = (
        db.query(func.max(PageView.entry_time), func.max(PageView.exit_time))
        .filter(PageView.session_id == session.id)
        .one()
    )
    candidates = [to_ist(t) for t in (session.start_time, latest_entry, latest_exit) if t is not None]
    return max(candidates)


def find_stale_sessions(db: Session, idle_hours: int) -> List[Tuple[UserSession, datetime]]:
    """
    Open sessions with no page activity for idle_hours, with the time they went quiet.
    """
    cutoff = now_ist() - timedelta(hours=idle_hours)
    candidates = (
        db.query(UserSession)
        .filter(UserSession.end_time.is_(None), UserSession.start_time < cutoff)
        .all()
    )
    stale = []
    for session in candidates:
        last_seen = last_activity_at(db, session)
        if last_seen < cutoff:
            stale.append((session, last_seen))
    return stale

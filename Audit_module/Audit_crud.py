from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional, Dict, Any, List
import logging

from .Audit_model import LoginLog, ActivityLog
from Login_module.Utils.browser_detection import resolve_browser

logger = logging.getLogger(__name__)


def create_login_log(
    db: Session,
    session_type: str,
    user_id: Optional[int] = None,
    email: Optional[str] = None,
    success: bool = True,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    correlation_id: Optional[str] = None
) -> LoginLog:
    """
    Append a login lifecycle row. Browser, device and OS are derived from the
    raw user agent here so every caller records the same classification.
    """
    browser = resolve_browser(user_agent)
    log = LoginLog(
        user_id=user_id,
        email=email,
        ip_address=ip_address,
        user_agent=user_agent,
        browser_name=browser.browser_name,
        device_type=browser.device_type,
        operating_system=browser.operating_system,
        session_type=session_type,
        success=success,
        correlation_id=correlation_id
    )
    db.add(log)
    db.commit()
    db.refresh(log)
    return log


def create_activity_log(
    db: Session,
    action: str,
    entity_type: str,
    user_id: Optional[int] = None,
    entity_id: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    correlation_id: Optional[str] = None
) -> ActivityLog:
    log = ActivityLog(
        user_id=user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
        correlation_id=correlation_id
    )
    db.add(log)
    db.commit()
    db.refresh(log)
    return log


def record_login_event(db: Session, session_type: str, **kwargs) -> Optional[LoginLog]:
    """Best-effort wrapper: an audit failure never fails the request that triggered it."""
    try:
        return create_login_log(db, session_type=session_type, **kwargs)
    except Exception as e:
        db.rollback()
        logger.warning(f"Failed to create login log ({session_type}): {e}")
        return None


def record_activity(db: Session, action: str, entity_type: str, **kwargs) -> Optional[ActivityLog]:
    """Best-effort wrapper around create_activity_log."""
    try:
        return create_activity_log(db, action=action, entity_type=entity_type, **kwargs)
    except Exception as e:
        db.rollback()
        logger.warning(f"Failed to create activity log ({action}): {e}")
        return None


def list_login_logs(
    db: Session,
    user_id: Optional[int] = None,
    session_type: Optional[str] = None,
    success: Optional[bool] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 100
) -> List[LoginLog]:
    query = db.query(LoginLog)
    if user_id:
        query = query.filter(LoginLog.user_id == user_id)
    if session_type:
        query = query.filter(LoginLog.session_type == session_type)
    if success is not None:
        query = query.filter(LoginLog.success == success)
    if start:
        query = query.filter(LoginLog.created_at >= start)
    if end:
        query = query.filter(LoginLog.created_at < end)
    return query.order_by(LoginLog.created_at.desc(), LoginLog.id.desc()).limit(limit).all()


def list_activity_logs(
    db: Session,
    user_id: Optional[int] = None,
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 50
) -> List[ActivityLog]:
    query = db.query(ActivityLog)
    if user_id:
        query = query.filter(ActivityLog.user_id == user_id)
    if action:
        query = query.filter(ActivityLog.action == action)
    if entity_type:
        query = query.filter(ActivityLog.entity_type == entity_type)
    if start:
        query = query.filter(ActivityLog.created_at >= start)
    if end:
        query = query.filter(ActivityLog.created_at < end)
    return query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit).all()

"""
Periodic maintenance jobs.
- Stale sessions: open sessions with no page activity for STALE_SESSION_HOURS are
  closed as timeouts (covers clients that vanished without reporting).
- Expired OTP codes are purged.
"""
import logging
from sqlalchemy.orm import Session

from config import settings
from database import SessionLocal
from Login_module.OTP.OTP_crud import purge_expired_otps
from Audit_module.Audit_crud import record_login_event, record_activity
from Audit_module.Audit_model import LoginEventType
from .session_enums import SessionEndReason, activity_action_for
from . import Session_crud

logger = logging.getLogger(__name__)


def close_stale_sessions(db: Session, idle_hours: int) -> int:
    closed = 0
    for session, last_seen in Session_crud.find_stale_sessions(db, idle_hours):
        if not Session_crud.close_session(db, session, SessionEndReason.TIMEOUT, end_time=last_seen):
            continue
        closed += 1
        record_login_event(
            db,
            LoginEventType.TIMEOUT.value,
            user_id=session.user_id,
            ip_address=session.ip_address,
            user_agent=session.user_agent
        )
        record_activity(
            db,
            activity_action_for(SessionEndReason.TIMEOUT),
            "session",
            user_id=session.user_id,
            entity_id=session.id,
            details={"source": "stale_session_sweep", "idleHours": idle_hours},
            ip_address=session.ip_address,
            user_agent=session.user_agent
        )
    return closed


def close_stale_sessions_job():
    db: Session = SessionLocal()
    try:
        closed = close_stale_sessions(db, settings.STALE_SESSION_HOURS)
        logger.info(f"Stale session sweep completed. Closed {closed} sessions.")
    except Exception as e:
        logger.error(f"Error during stale session sweep: {str(e)}")
    finally:
        db.close()


def purge_expired_otps_job():
    db: Session = SessionLocal()
    try:
        deleted = purge_expired_otps(db)
        logger.info(f"OTP purge completed. Deleted {deleted} expired codes.")
    except Exception as e:
        logger.error(f"Error during OTP purge: {str(e)}")
    finally:
        db.close()

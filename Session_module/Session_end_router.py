"""
Session-end ingestion. Never fails the client: whatever goes wrong is logged
server-side and the response is still 200.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import ValidationError
from sqlalchemy.orm import Session
from typing import Optional, Dict, Any
import logging
import uuid

from deps import get_db
from Login_module.User.user_crud import get_user_by_id
from Login_module.Utils.auth_user import security_scheme, pick_credential, resolve_token_user_id
from Login_module.Utils.rate_limiter import get_client_ip
from Login_module.Utils.datetime_utils import to_ist_isoformat
from Audit_module.Audit_crud import record_login_event, record_activity
from .Session_schema import SessionEndRequest, MessageResponse
from .session_enums import activity_action_for
from .beacon_body import read_beacon_body
from . import Session_crud

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

ACKNOWLEDGED = MessageResponse(message="Session end recorded")


@router.post("/session-end", response_model=MessageResponse)
def session_end(
    request: Request,
    payload: Optional[Dict[str, Any]] = Depends(read_beacon_body),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    db: Session = Depends(get_db)
):
    """
    Close the reporting user's session and write LoginLog and ActivityLog rows.

    The credential may come from the body or the Authorization header and may
    be expired, as long as its signature verifies.
    """
    client_ip = get_client_ip(request)
    user_agent = request.headers.get("user-agent")

    if payload is None:
        logger.warning(f"Session end with unreadable body from IP {client_ip}")
        return ACKNOWLEDGED

    try:
        req = SessionEndRequest.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Session end with invalid payload from IP {client_ip}: {e.errors()}")
        return ACKNOWLEDGED

    user_id = resolve_token_user_id(pick_credential(credentials, req.token), allow_expired=True)
    if user_id is None:
        logger.warning(
            f"Session end ({req.reason.value}) with no resolvable credential from IP {client_ip}; "
            f"session token {req.session_token!r} left as is"
        )
        return ACKNOWLEDGED

    correlation_id = str(uuid.uuid4())
    try:
        user = get_user_by_id(db, user_id)
        session = Session_crud.find_session_to_end(db, user_id, req.session_token)

        closed = False
        if session:
            closed = Session_crud.close_session(db, session, req.reason, end_time=req.timestamp)
        else:
            logger.info(f"No open session to close for user {user_id} (token {req.session_token!r})")

        record_login_event(
            db,
            req.reason.value,
            user_id=user_id,
            email=user.email if user else None,
            ip_address=client_ip,
            user_agent=user_agent,
            correlation_id=correlation_id
        )
        record_activity(
            db,
            activity_action_for(req.reason),
            "session",
            user_id=user_id,
            entity_id=session.id if session else None,
            details={
                "reason": req.reason.value,
                "clientTimestamp": to_ist_isoformat(req.timestamp),
                "sessionDuration": req.session_duration,
                "sessionToken": req.session_token,
                "serverDuration": session.duration if session else None,
                "alreadyClosed": bool(session) and not closed,
                "browserName": session.browser_name if session else None,
                "deviceType": session.device_type if session else None,
                "operatingSystem": session.operating_system if session else None
            },
            ip_address=client_ip,
            user_agent=user_agent,
            correlation_id=correlation_id
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Error recording session end for user {user_id}: {e}", exc_info=True)

    return ACKNOWLEDGED

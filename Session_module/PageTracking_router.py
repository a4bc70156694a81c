"""
Page tracking endpoints: open, close and annotate page views.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional, Dict, Any
import logging

from deps import get_db
from Login_module.User.user_model import User
from Login_module.Utils.auth_user import (
    get_current_user,
    security_scheme,
    pick_credential,
    resolve_token_user_id
)
from Login_module.Utils.rate_limiter import get_client_ip
from Audit_module.Audit_crud import record_activity
from .Session_schema import (
    PageViewStartRequest,
    PageViewStartResponse,
    PageViewEndRequest,
    PageViewUpdateRequest,
    MessageResponse
)
from .beacon_body import read_beacon_body
from . import Session_crud

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/page-tracking", tags=["Page Tracking"])


@router.post("/start", response_model=PageViewStartResponse)
def start_page_view(
    req: PageViewStartRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Open a page view. The session row is created on first sight of its token,
    with network address and browser details taken from this request.
    """
    session, created = Session_crud.get_or_create_session(
        db,
        user_id=current_user.id,
        session_token=req.session_token,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent")
    )

    if session.user_id != current_user.id:
        logger.warning(
            f"User {current_user.id} tried to track pages under session {session.id} "
            f"owned by user {session.user_id}"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Session token belongs to another user"
        )

    if session.end_time is not None:
        # Token outlived its session (e.g. reused after a sweep); keep recording under it
        logger.info(f"Page view started on already closed session {session.id}")

    page_view = Session_crud.start_page_view(
        db,
        session=session,
        user_id=current_user.id,
        page_path=req.page_path,
        page_title=req.page_title,
        referrer=req.referrer
    )

    return PageViewStartResponse(page_view_id=page_view.id, session_id=session.id)


@router.post("/end", response_model=MessageResponse)
def end_page_view(
    payload: Optional[Dict[str, Any]] = Depends(read_beacon_body),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    db: Session = Depends(get_db)
):
    """
    Close a page view. Accepts the credential from the Authorization header
    or from the body's "token" field, since beacon posts carry no headers.
    """
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be a JSON object"
        )

    req = PageViewEndRequest.model_validate(payload)

    user_id = resolve_token_user_id(pick_credential(credentials, req.token))
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    page_view = Session_crud.get_page_view(db, req.page_view_id)
    if not page_view:
        logger.warning(f"Page view {req.page_view_id} not found (reported by user {user_id})")
        return MessageResponse(message="Page view not found")

    if page_view.user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Page view belongs to another user"
        )

    closed = Session_crud.close_page_view(
        db,
        page_view,
        exit_time=req.exit_time,
        scroll_depth=req.scroll_depth,
        interactions=req.interactions
    )
    if not closed:
        logger.info(f"Page view {page_view.id} was already closed")
        return MessageResponse(message="Page view already closed")

    return MessageResponse(message="Page view ended")


@router.post("/update", response_model=MessageResponse)
def update_page_view(
    req: PageViewUpdateRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Record interactions and a named action (e.g. logout_initiated) on an open page view."""
    page_view = Session_crud.get_page_view(db, req.page_view_id)
    if not page_view or page_view.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Page view not found"
        )

    Session_crud.update_page_view_activity(
        db,
        page_view,
        interactions=req.interactions,
        action=req.action
    )

    if req.action:
        record_activity(
            db,
            f"page_action:{req.action}",
            "page_view",
            user_id=current_user.id,
            entity_id=page_view.id,
            details={"pagePath": page_view.page_path, "sessionId": page_view.session_id},
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent")
        )

    return MessageResponse(message="Page view updated")

"""
Session analytics for administrators: sessions with their ordered page views.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import Optional, List
from datetime import date

from deps import get_db
from Login_module.User.user_model import User
from Login_module.Utils.auth_user import require_admin
from Login_module.Utils.datetime_utils import ist_day_bounds
from .Session_schema import SessionOut
from . import Session_crud

router = APIRouter(prefix="/session-analytics", tags=["Session Analytics"])


def _to_session_out(session, user: Optional[User]) -> SessionOut:
    out = SessionOut.model_validate(session)
    if user:
        out.user_name = user.name
        out.user_email = user.email
    return out


@router.get("", response_model=List[SessionOut])
def get_session_analytics(
    start_date: Optional[date] = Query(None, alias="startDate", description="First day (inclusive)"),
    end_date: Optional[date] = Query(None, alias="endDate", description="Last day (inclusive)"),
    user_id: Optional[int] = Query(None, alias="userId", description="Filter by user ID"),
    limit: int = Query(500, ge=1, le=5000),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Sessions started in the date range, newest first."""
    if start_date and end_date and end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="endDate must not be before startDate"
        )
    start, end = ist_day_bounds(start_date, end_date)
    rows = Session_crud.list_sessions(db, start=start, end=end, user_id=user_id, limit=limit)
    return [_to_session_out(session, user) for session, user in rows]


@router.get("/{session_id}", response_model=SessionOut)
def get_session_detail(
    session_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """One session with its page views."""
    session = Session_crud.get_session(db, session_id)
    if not session:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found"
        )
    user = db.query(User).filter(User.id == session.user_id).first()
    return _to_session_out(session, user)

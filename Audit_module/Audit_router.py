"""
Audit log query endpoints (admin only).
Useful for compliance, forensics, and debugging.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date

from deps import get_db
from Login_module.Utils.auth_user import require_admin
from Login_module.Utils.datetime_utils import to_ist_isoformat, ist_day_bounds
from Login_module.User.user_model import User
from .Audit_crud import list_login_logs, list_activity_logs

router = APIRouter(tags=["Audit"])


@router.get("/login-logs")
def get_login_logs(
    user_id: Optional[int] = Query(None, alias="userId", description="Filter by user ID"),
    session_type: Optional[str] = Query(None, alias="sessionType", description="otp_request, login, logout, timeout, browser_close"),
    success: Optional[bool] = Query(None, description="Filter by outcome"),
    start_date: Optional[date] = Query(None, alias="startDate", description="First day (inclusive)"),
    end_date: Optional[date] = Query(None, alias="endDate", description="Last day (inclusive)"),
    limit: int = Query(100, ge=1, le=1000, description="Limit results"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Login lifecycle audit trail, newest first."""
    start, end = ist_day_bounds(start_date, end_date)
    logs = list_login_logs(
        db,
        user_id=user_id,
        session_type=session_type,
        success=success,
        start=start,
        end=end,
        limit=limit
    )

    return {
        "status": "success",
        "count": len(logs),
        "data": [
            {
                "id": log.id,
                "userId": log.user_id,
                "email": log.email,
                "ipAddress": log.ip_address,
                "userAgent": log.user_agent,
                "browserName": log.browser_name,
                "deviceType": log.device_type,
                "operatingSystem": log.operating_system,
                "sessionType": log.session_type,
                "success": log.success,
                "correlationId": log.correlation_id,
                "createdAt": to_ist_isoformat(log.created_at)
            }
            for log in logs
        ]
    }


@router.get("/activity-logs")
def get_activity_logs(
    user_id: Optional[int] = Query(None, alias="userId"),
    action: Optional[str] = Query(None, description="Filter by action"),
    entity_type: Optional[str] = Query(None, alias="entityType"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    limit: int = Query(50, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Generic activity trail, newest first."""
    start, end = ist_day_bounds(start_date, end_date)
    logs = list_activity_logs(
        db,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        start=start,
        end=end,
        limit=limit
    )

    return {
        "status": "success",
        "count": len(logs),
        "data": [
            {
                "id": log.id,
                "userId": log.user_id,
                "entityType": log.entity_type,
                "entityId": log.entity_id,
                "action": log.action,
                "details": log.details,
                "ipAddress": log.ip_address,
                "userAgent": log.user_agent,
                "correlationId": log.correlation_id,
                "createdAt": to_ist_isoformat(log.created_at)
            }
            for log in logs
        ]
    }

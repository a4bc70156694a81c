from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
import logging
import uuid

from .OTP_schema import (
    RequestOTPRequest,
    VerifyOTPRequest,
    VerifyOTPResponse,
    MessageResponse,
    AuthUser
)
from config import settings
from deps import get_db
from ..Utils import security
from ..Utils.auth_user import get_current_user
from ..Utils.rate_limiter import get_client_ip, check_ip_rate_limit
from ..User.user_crud import get_user_by_email, stamp_last_login, normalize_email
from ..User.user_model import User
from . import otp_manager
from . import OTP_crud
from Audit_module.Audit_crud import record_login_event, record_activity
from Audit_module.Audit_model import LoginEventType
from Notification_module.email_service import send_otp_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/request-otp", response_model=MessageResponse)
def request_otp(req: RequestOTPRequest, request: Request, db: Session = Depends(get_db)):
    """
    Issue a one-time code for a registered email and send it by mail.
    """
    email = normalize_email(req.email)
    client_ip = get_client_ip(request)
    user_agent = request.headers.get("user-agent")
    correlation_id = str(uuid.uuid4())

    user = get_user_by_email(db, email)
    if not user:
        logger.info(f"OTP requested for unknown email {email} from IP {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    if not otp_manager.can_request_otp(email):
        logger.warning(f"OTP request limit reached for {email} from IP {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many OTP requests. Please try again later."
        )

    otp = otp_manager.generate_otp()
    OTP_crud.create_otp(db, email=email, otp=otp, expires_in=settings.OTP_EXPIRY_SECONDS)

    # Delivery failure is logged inside the email service, never surfaced
    send_otp_email(email, otp)

    record_login_event(
        db,
        LoginEventType.OTP_REQUEST.value,
        user_id=user.id,
        email=email,
        ip_address=client_ip,
        user_agent=user_agent,
        correlation_id=correlation_id
    )

    return MessageResponse(message="OTP sent to your email")


@router.post("/verify-otp", response_model=VerifyOTPResponse)
def verify_otp(req: VerifyOTPRequest, request: Request, db: Session = Depends(get_db)):
    """
    Verify the code and issue an access token.
    """
    email = normalize_email(req.email)
    client_ip = get_client_ip(request)
    user_agent = request.headers.get("user-agent")
    correlation_id = str(uuid.uuid4())

    is_allowed, _ = check_ip_rate_limit(client_ip)
    if not is_allowed:
        logger.warning(f"OTP verification rate limit exceeded for IP {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many verification attempts. Please try again later."
        )

    user = get_user_by_email(db, email)
    code = req.otp.strip()
    stored = OTP_crud.get_valid_otp(db, email, code) if otp_manager.is_valid_otp_format(code) else None

    if not stored or not OTP_crud.mark_otp_used(db, stored.id):
        logger.warning(f"Invalid or expired OTP for {email} from IP {client_ip}")
        record_login_event(
            db,
            LoginEventType.LOGIN.value,
            user_id=user.id if user else None,
            email=email,
            success=False,
            ip_address=client_ip,
            user_agent=user_agent,
            correlation_id=correlation_id
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired OTP"
        )

    if not user or not user.is_active:
        record_login_event(
            db,
            LoginEventType.LOGIN.value,
            user_id=user.id if user else None,
            email=email,
            success=False,
            ip_address=client_ip,
            user_agent=user_agent,
            correlation_id=correlation_id
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive"
        )

    try:
        user = stamp_last_login(db, user)
        token = security.create_access_token({
            "sub": str(user.id),
            "email": user.email,
            "role": user.role
        })
    except Exception as e:
        db.rollback()
        logger.error(f"Error issuing access token for {email}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error generating access token."
        )

    record_login_event(
        db,
        LoginEventType.LOGIN.value,
        user_id=user.id,
        email=user.email,
        ip_address=client_ip,
        user_agent=user_agent,
        correlation_id=correlation_id
    )
    record_activity(
        db,
        "login",
        "user",
        user_id=user.id,
        entity_id=user.id,
        details={"email": user.email},
        ip_address=client_ip,
        user_agent=user_agent,
        correlation_id=correlation_id
    )

    logger.info(f"OTP verified successfully for user {user.id} from IP {client_ip}")

    return VerifyOTPResponse(
        message="Login successful",
        token=token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_SECONDS,
        user=AuthUser(id=user.id, email=user.email, name=user.name, role=user.role)
    )


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Record a manual logout. The tracking session itself is closed by /auth/session-end.
    """
    record_activity(
        db,
        "logout",
        "user",
        user_id=current_user.id,
        entity_id=current_user.id,
        details={"email": current_user.email},
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        correlation_id=str(uuid.uuid4())
    )
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=AuthUser)
def me(current_user: User = Depends(get_current_user)):
    """Current authenticated user."""
    return AuthUser(
        id=current_user.id,
        email=current_user.email,
        name=current_user.name,
        role=current_user.role
    )

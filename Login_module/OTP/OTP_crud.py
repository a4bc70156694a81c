from sqlalchemy.orm import Session
from datetime import timedelta
from typing import Optional
import logging

from .OTP_model import OTPCode
from Login_module.Utils.datetime_utils import now_ist
from Login_module.Utils.security import hash_value

logger = logging.getLogger(__name__)


def create_otp(db: Session, email: str, otp: str, expires_in: int) -> OTPCode:
    """
    Store a new code for the email. The plaintext never reaches the database.
    """
    row = OTPCode(
        email=email,
        otp_hash=hash_value(otp),
        expires_at=now_ist() + timedelta(seconds=expires_in),
        is_used=False
    )
    try:
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    except Exception as e:
        db.rollback()
        logger.error(f"Error storing OTP for {email}: {e}")
        raise


def get_valid_otp(db: Session, email: str, otp: str) -> Optional[OTPCode]:
    """Unused, unexpired code matching email and value, newest first."""
    return (
        db.query(OTPCode)
        .filter(
            OTPCode.email == email,
            OTPCode.otp_hash == hash_value(otp),
            OTPCode.is_used == False,
            OTPCode.expires_at > now_ist()
        )
        .order_by(OTPCode.id.desc())
        .first()
    )


def mark_otp_used(db: Session, otp_id: int) -> bool:
    """
    Flip is_used exactly once. Returns False if another request already consumed the code.
    """
    updated = (
        db.query(OTPCode)
        .filter(OTPCode.id == otp_id, OTPCode.is_used == False)
        .update({OTPCode.is_used: True}, synchronize_session=False)
    )
    db.commit()
    return updated == 1


def purge_expired_otps(db: Session, grace_hours: int = 24) -> int:
    """Delete codes that expired more than grace_hours ago."""
    cutoff = now_ist() - timedelta(hours=grace_hours)
    deleted = (
        db.query(OTPCode)
        .filter(OTPCode.expires_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted

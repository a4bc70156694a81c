from sqlalchemy import Column, Integer, String, DateTime, Boolean
from database import Base
from Login_module.Utils.datetime_utils import now_ist


class OTPCode(Base):
    """
    One-time passcodes issued for email login. Only the SHA-256 of the code is stored.
    """
    __tablename__ = "otp_codes"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, index=True)
    otp_hash = Column(String(64), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    is_used = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=now_ist, nullable=False)

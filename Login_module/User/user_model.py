import enum

from sqlalchemy import Column, Integer, String, DateTime, Boolean, func
from database import Base


class UserRole(str, enum.Enum):
    """CRM roles"""
    ADMIN = "admin"
    SALES = "sales"
    SUPPORT = "support"
    RM = "rm"  # relationship manager
    VIEWER = "viewer"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.VIEWER.value)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

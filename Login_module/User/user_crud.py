from sqlalchemy.orm import Session
from typing import Optional
import logging

from .user_model import User, UserRole
from Login_module.Utils.datetime_utils import now_ist

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    """
    Retrieve user by ID.
    """
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    """
    Retrieve user by email (case-insensitive).
    """
    return db.query(User).filter(User.email == normalize_email(email)).first()


def create_user(
    db: Session,
    email: str,
    name: str,
    role: str = UserRole.VIEWER.value,
    phone: Optional[str] = None,
    is_active: bool = True
) -> User:
    user = User(
        email=normalize_email(email),
        name=name,
        role=role,
        phone=phone,
        is_active=is_active
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def stamp_last_login(db: Session, user: User) -> User:
    user.last_login = now_ist()
    db.commit()
    db.refresh(user)
    return user


def get_or_create_user(db: Session, email: str, name: str, role: str) -> User:
    user = get_user_by_email(db, email)
    if user:
        return user
    logger.info(f"Creating seed user {normalize_email(email)} with role {role}")
    return create_user(db, email=email, name=name, role=role)

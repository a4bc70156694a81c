import logging

from config import settings
from database import SessionLocal
from .user_crud import get_or_create_user
from .user_model import UserRole

logger = logging.getLogger(__name__)


def seed_default_admin() -> None:
    """
    Ensure a default administrator exists so the first OTP login is possible.
    """
    try:
        with SessionLocal() as session:
            get_or_create_user(
                session,
                email=settings.DEFAULT_ADMIN_EMAIL,
                name=settings.DEFAULT_ADMIN_NAME,
                role=UserRole.ADMIN.value,
            )
    except Exception as exc:
        logger.warning("Unable to seed default admin user: %s", exc)

"""
IP-based rate limiting for the OTP verification endpoint, plus client IP extraction.
Prevents brute force attacks from the same IP address.
"""
import logging
from typing import Tuple

from config import settings

logger = logging.getLogger(__name__)


def _ip_rate_limit_key(ip: str) -> str:
    """Generate Redis key for IP-based rate limiting"""
    return f"ip_rate_limit:verify_otp:{ip}"


def check_ip_rate_limit(ip: str) -> Tuple[bool, int]:
    """
    Check if IP address has exceeded rate limit for OTP verification.
    Returns (is_allowed, remaining_attempts)
    """
    max_attempts = settings.VERIFY_OTP_MAX_ATTEMPTS_PER_IP
    if not settings.OTP_RATE_LIMIT_ENABLED:
        return True, max_attempts
    if not ip or ip == "unknown":
        return True, max_attempts

    try:
        # Lazy import, the Redis client lives with the OTP manager
        from Login_module.OTP.otp_manager import get_redis_client

        redis_client = get_redis_client()
        key = _ip_rate_limit_key(ip)
        attempts = redis_client.get(key)

        if attempts is None:
            redis_client.set(key, 1, ex=settings.VERIFY_OTP_WINDOW_SECONDS)
            return True, max_attempts - 1

        attempts = int(attempts)
        if attempts >= max_attempts:
            return False, 0

        redis_client.incr(key)
        return True, max(0, max_attempts - attempts - 1)
    except Exception as e:
        logger.error(f"Redis error checking IP rate limit: {e}")
        # Fail closed - deny if Redis is down
        return False, 0


def get_client_ip(request) -> str:
    """Extract client IP address from request"""
    # Behind proxy/load balancer
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"

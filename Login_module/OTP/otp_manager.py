import re
import secrets
import logging
from typing import Optional

import redis

from config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    """
    Lazily connect to Redis. Only the OTP throttles use it, so the service
    starts without Redis when OTP_RATE_LIMIT_ENABLED is off.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        logger.info(f"Redis client configured for {settings.REDIS_URL}")
    return _redis_client


def _otp_req_key(email: str) -> str:
    return f"otp_req:{email}"


def generate_otp(length: Optional[int] = None) -> str:
    # numeric OTP
    length = length or settings.OTP_LENGTH
    return "".join(secrets.choice("0123456789") for _ in range(length))


def is_valid_otp_format(otp: str) -> bool:
    return bool(otp) and re.fullmatch(rf"\d{{{settings.OTP_LENGTH}}}", otp) is not None


def can_request_otp(email: str) -> bool:
    """
    Rate limiting per-hour by storing a counter that expires in 3600 seconds.
    Fails closed if Redis is down.
    """
    if not settings.OTP_RATE_LIMIT_ENABLED:
        return True
    try:
        client = get_redis_client()
        req_key = _otp_req_key(email)
        cnt = client.get(req_key)
        if cnt is None:
            client.set(req_key, 1, ex=3600)
            return True
        if int(cnt) >= settings.OTP_MAX_REQUESTS_PER_HOUR:
            return False
        client.incr(req_key)
        return True
    except redis.RedisError as e:
        logger.error(f"Redis error checking OTP request limit: {e}")
        return False
